"""
Persistence collaborator for the access-control core.

The registries call an AccessStore synchronously after every successful
mutation. NullStore keeps everything in memory only; SqlAlchemyStore writes
through to the relational tables in app.features.access.models and can
rebuild the full state with load().
"""
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.features.access.domain import (
    Assignment,
    AssignmentScope,
    AuditEntry,
    Permission,
    Role,
    RoleRequest,
    RoleRestrictions,
    RoleTemplate,
    as_utc,
)
from app.features.access.models import (
    AssignmentRecord,
    AuditRecord,
    PermissionRecord,
    RoleRecord,
    RoleRequestRecord,
    RoleTemplateRecord,
)
from app.utils import get_logger


log = get_logger(__name__)


@dataclass
class AccessSnapshot:
    permissions: List[Permission] = field(default_factory=list)
    roles: List[Role] = field(default_factory=list)
    templates: List[RoleTemplate] = field(default_factory=list)
    assignments: List[Assignment] = field(default_factory=list)
    requests: List[RoleRequest] = field(default_factory=list)
    audit: List[AuditEntry] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.permissions or self.roles or self.templates)


class AccessStore(Protocol):
    def save_permission(self, permission: Permission) -> None: ...

    def save_role(self, role: Role) -> None: ...

    def delete_role(self, role_id: str) -> None: ...

    def save_template(self, template: RoleTemplate) -> None: ...

    def save_assignment(self, assignment: Assignment) -> None: ...

    def save_request(self, request: RoleRequest) -> None: ...

    def append_audit(self, entry: AuditEntry) -> None: ...

    def load(self) -> AccessSnapshot: ...


class NullStore:
    """Store that keeps nothing; the service's memory is the only copy."""

    def save_permission(self, permission: Permission) -> None:
        pass

    def save_role(self, role: Role) -> None:
        pass

    def delete_role(self, role_id: str) -> None:
        pass

    def save_template(self, template: RoleTemplate) -> None:
        pass

    def save_assignment(self, assignment: Assignment) -> None:
        pass

    def save_request(self, request: RoleRequest) -> None:
        pass

    def append_audit(self, entry: AuditEntry) -> None:
        pass

    def load(self) -> AccessSnapshot:
        return AccessSnapshot()


# ============================================================================
# SQLAlchemy store
# ============================================================================

def _scope_to_json(scope: Optional[AssignmentScope]):
    if scope is None:
        return None
    return {key: sorted(ids) for key, ids in scope.model_dump().items()}


def _scope_from_json(data) -> Optional[AssignmentScope]:
    if data is None:
        return None
    return AssignmentScope(**data)


class SqlAlchemyStore:
    """
    Write-through store backed by a SQLAlchemy session factory.

    Usage:
        store = SqlAlchemyStore(SessionLocal)
        service = AccessControlService.from_store(store)
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def _write(self, record) -> None:
        with self._session_factory() as session:
            session.merge(record)
            session.commit()

    def save_permission(self, permission: Permission) -> None:
        self._write(PermissionRecord(
            id=permission.id,
            resource=permission.resource,
            action=permission.action,
            name=permission.name,
            description=permission.description,
            scope=permission.scope.value,
            category=permission.category.value,
            is_active=permission.is_active,
            created_at=permission.created_at,
            updated_at=permission.updated_at,
        ))

    def save_role(self, role: Role) -> None:
        self._write(RoleRecord(
            id=role.id,
            name=role.name,
            description=role.description,
            level=role.level,
            type=role.type.value,
            permission_ids=list(role.permission_ids),
            restrictions=role.restrictions.model_dump(),
            is_active=role.is_active,
            created_by=role.created_by,
            created_at=role.created_at,
            updated_at=role.updated_at,
        ))

    def delete_role(self, role_id: str) -> None:
        with self._session_factory() as session:
            session.execute(delete(RoleRecord).where(RoleRecord.id == role_id))
            session.commit()

    def save_template(self, template: RoleTemplate) -> None:
        self._write(RoleTemplateRecord(
            id=template.id,
            name=template.name,
            description=template.description,
            category=template.category,
            permission_ids=list(template.permission_ids),
            is_default=template.is_default,
            church_types=list(template.church_types),
            created_at=template.created_at,
            updated_at=template.updated_at,
        ))

    def save_assignment(self, assignment: Assignment) -> None:
        self._write(AssignmentRecord(
            id=assignment.id,
            user_id=assignment.user_id,
            role_id=assignment.role_id,
            assigned_by=assignment.assigned_by,
            assigned_at=assignment.assigned_at,
            expires_at=assignment.expires_at,
            scope=_scope_to_json(assignment.scope),
            is_active=assignment.is_active,
            revoked_by=assignment.revoked_by,
            revoked_at=assignment.revoked_at,
            details=dict(assignment.metadata),
        ))

    def save_request(self, request: RoleRequest) -> None:
        self._write(RoleRequestRecord(
            id=request.id,
            user_id=request.user_id,
            requested_role_id=request.requested_role_id,
            requested_by=request.requested_by,
            reason=request.reason,
            status=request.status.value,
            requested_at=request.requested_at,
            reviewed_by=request.reviewed_by,
            reviewed_at=request.reviewed_at,
            review_notes=request.review_notes,
            expires_at=request.expires_at,
            scope=_scope_to_json(request.scope),
        ))

    def append_audit(self, entry: AuditEntry) -> None:
        with self._session_factory() as session:
            session.add(AuditRecord(
                id=entry.id,
                sequence=entry.sequence,
                user_id=entry.user_id,
                action=entry.action,
                resource=entry.resource,
                resource_id=entry.resource_id,
                permission_id=entry.permission_id,
                granted=entry.granted,
                reason=entry.reason,
                kind=entry.kind.value,
                details=dict(entry.details),
                timestamp=entry.timestamp,
            ))
            session.commit()

    def load(self) -> AccessSnapshot:
        with self._session_factory() as session:
            snapshot = AccessSnapshot(
                permissions=[
                    Permission(
                        resource=r.resource,
                        action=r.action,
                        name=r.name,
                        description=r.description,
                        scope=r.scope,
                        category=r.category,
                        is_active=r.is_active,
                        created_at=as_utc(r.created_at),
                        updated_at=as_utc(r.updated_at),
                    )
                    for r in session.scalars(select(PermissionRecord))
                ],
                roles=[
                    Role(
                        id=r.id,
                        name=r.name,
                        description=r.description,
                        level=r.level,
                        type=r.type,
                        permission_ids=r.permission_ids,
                        restrictions=RoleRestrictions(**r.restrictions),
                        is_active=r.is_active,
                        created_by=r.created_by,
                        created_at=as_utc(r.created_at),
                        updated_at=as_utc(r.updated_at),
                    )
                    for r in session.scalars(select(RoleRecord))
                ],
                templates=[
                    RoleTemplate(
                        id=r.id,
                        name=r.name,
                        description=r.description,
                        category=r.category,
                        permission_ids=r.permission_ids,
                        is_default=r.is_default,
                        church_types=tuple(r.church_types),
                        created_at=as_utc(r.created_at),
                        updated_at=as_utc(r.updated_at),
                    )
                    for r in session.scalars(select(RoleTemplateRecord))
                ],
                assignments=[
                    Assignment(
                        id=r.id,
                        user_id=r.user_id,
                        role_id=r.role_id,
                        assigned_by=r.assigned_by,
                        assigned_at=as_utc(r.assigned_at),
                        expires_at=as_utc(r.expires_at),
                        scope=_scope_from_json(r.scope),
                        is_active=r.is_active,
                        revoked_by=r.revoked_by,
                        revoked_at=as_utc(r.revoked_at),
                        metadata=r.details or {},
                    )
                    for r in session.scalars(select(AssignmentRecord).order_by(AssignmentRecord.assigned_at))
                ],
                requests=[
                    RoleRequest(
                        id=r.id,
                        user_id=r.user_id,
                        requested_role_id=r.requested_role_id,
                        requested_by=r.requested_by,
                        reason=r.reason,
                        status=r.status,
                        requested_at=as_utc(r.requested_at),
                        reviewed_by=r.reviewed_by,
                        reviewed_at=as_utc(r.reviewed_at),
                        review_notes=r.review_notes,
                        expires_at=as_utc(r.expires_at),
                        scope=_scope_from_json(r.scope),
                    )
                    for r in session.scalars(select(RoleRequestRecord).order_by(RoleRequestRecord.requested_at))
                ],
                audit=[
                    AuditEntry(
                        id=r.id,
                        sequence=r.sequence,
                        user_id=r.user_id,
                        action=r.action,
                        resource=r.resource,
                        resource_id=r.resource_id,
                        permission_id=r.permission_id,
                        granted=r.granted,
                        reason=r.reason,
                        kind=r.kind,
                        details=r.details or {},
                        timestamp=as_utc(r.timestamp),
                    )
                    for r in session.scalars(select(AuditRecord).order_by(AuditRecord.sequence))
                ],
            )
        log.info(
            "Loaded %d permissions, %d roles, %d assignments, %d requests, %d audit entries",
            len(snapshot.permissions), len(snapshot.roles), len(snapshot.assignments),
            len(snapshot.requests), len(snapshot.audit),
        )
        return snapshot
