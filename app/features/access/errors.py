"""
Typed errors raised by the access-control core.

Three families, mapped to HTTP statuses in app.main:
- NotFoundError     -> 404
- InvalidInputError -> 400
- ConflictError     -> 409
"""


class AccessControlError(Exception):
    """Base error; `code` is stable and safe to show to API clients."""
    code = "access_control_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class NotFoundError(AccessControlError):
    code = "not_found"


class InvalidInputError(AccessControlError):
    code = "invalid_input"


class ConflictError(AccessControlError):
    code = "conflict"


# Not found

class PermissionNotFound(NotFoundError):
    code = "permission_not_found"

    def __init__(self, permission_id: str):
        super().__init__(f"Permission {permission_id!r} not found")
        self.permission_id = permission_id


class RoleNotFound(NotFoundError):
    code = "role_not_found"

    def __init__(self, role_id: str):
        super().__init__(f"Role {role_id!r} not found")
        self.role_id = role_id


class AssignmentNotFound(NotFoundError):
    code = "assignment_not_found"

    def __init__(self, user_id: str, role_id: str):
        super().__init__(f"No active assignment of role {role_id!r} to user {user_id!r}")
        self.user_id = user_id
        self.role_id = role_id


class RequestNotFound(NotFoundError):
    code = "request_not_found"

    def __init__(self, request_id: str):
        super().__init__(f"Role request {request_id!r} not found")
        self.request_id = request_id


class TemplateNotFound(NotFoundError):
    code = "template_not_found"

    def __init__(self, template_id: str):
        super().__init__(f"Role template {template_id!r} not found")
        self.template_id = template_id


# Validation

class UnknownPermission(InvalidInputError):
    code = "unknown_permission"

    def __init__(self, permission_ids):
        ids = sorted(permission_ids)
        super().__init__(f"Unknown permission id(s): {', '.join(ids)}")
        self.permission_ids = ids


class InvalidScope(InvalidInputError):
    code = "invalid_scope"


class InvalidRolePatch(InvalidInputError):
    code = "invalid_role_patch"


class InvalidDecision(InvalidInputError):
    code = "invalid_decision"


# State conflicts

class DuplicateResourceAction(ConflictError):
    code = "duplicate_resource_action"

    def __init__(self, resource: str, action: str):
        super().__init__(f"A permission for {action!r} on {resource!r} already exists")
        self.resource = resource
        self.action = action


class DuplicateRoleName(ConflictError):
    code = "duplicate_role_name"

    def __init__(self, name: str):
        super().__init__(f"Role with name {name!r} already exists")
        self.name = name


class DuplicateRoleId(ConflictError):
    code = "duplicate_role_id"

    def __init__(self, role_id: str):
        super().__init__(f"Role with id {role_id!r} already exists")
        self.role_id = role_id


class ImmutableSystemRole(ConflictError):
    code = "immutable_system_role"

    def __init__(self, role_id: str, fields):
        super().__init__(
            f"System role {role_id!r} only allows toggling is_active (got {', '.join(sorted(fields))})"
        )
        self.role_id = role_id


class SystemRoleProtected(ConflictError):
    code = "system_role_protected"

    def __init__(self, role_id: str):
        super().__init__(f"System role {role_id!r} cannot be deleted")
        self.role_id = role_id


class RoleInUse(ConflictError):
    code = "role_in_use"

    def __init__(self, role_id: str, count: int):
        super().__init__(f"Role {role_id!r} is assigned to {count} user(s)")
        self.role_id = role_id
        self.count = count


class RoleInactive(ConflictError):
    code = "role_inactive"

    def __init__(self, role_id: str):
        super().__init__(f"Role {role_id!r} is inactive")
        self.role_id = role_id


class DuplicateAssignment(ConflictError):
    code = "duplicate_assignment"

    def __init__(self, user_id: str, role_id: str):
        super().__init__(f"User {user_id!r} already has role {role_id!r}")
        self.user_id = user_id
        self.role_id = role_id


class RoleCapacityExceeded(ConflictError):
    code = "role_capacity_exceeded"

    def __init__(self, role_id: str, limit: int):
        super().__init__(f"Role {role_id!r} is limited to {limit} active assignee(s)")
        self.role_id = role_id
        self.limit = limit


class ApprovalRequired(ConflictError):
    code = "approval_required"

    def __init__(self, role_id: str):
        super().__init__(f"Role {role_id!r} can only be granted through an approved request")
        self.role_id = role_id


class AlreadyReviewed(ConflictError):
    code = "already_reviewed"

    def __init__(self, request_id: str, status: str):
        super().__init__(f"Role request {request_id!r} was already {status}")
        self.request_id = request_id
        self.status = status
