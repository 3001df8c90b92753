# tests/test_routes.py

"""
Tests for the HTTP API.
"""

from fastapi.testclient import TestClient

from app.core import config
from app.features.users.auth import issue_token
from app.main import create_app


ADMIN_ID = "admin-user"
MEMBER_ID = "member-user"


def role_id(client, headers, name):
    roles = client.get("/access/roles", headers=headers).json()
    return next(r["id"] for r in roles if r["name"] == name)


def test_health(client: TestClient):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_missing_token(client: TestClient):
    response = client.get("/access/roles")
    assert response.status_code in (401, 403)


def test_invalid_token(client: TestClient):
    response = client.get("/access/roles", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_me(client: TestClient, admin_headers):
    response = client.get("/users/me", headers=admin_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["id"] == ADMIN_ID
    assert data["email"] == "admin@example.com"
    assert data["level"] == 10
    assert [r["name"] for r in data["roles"]] == ["Super Administrator"]


def test_singular_user_path_is_not_served(client: TestClient, admin_headers):
    assert client.get("/user/me", headers=admin_headers).status_code == 404


def test_check_own_permission(client: TestClient, admin_headers, member_headers):
    response = client.post("/access/check", json={"resource": "users", "action": "manage"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json() == {"has_permission": True, "permission_id": "users:manage", "reason": None}

    response = client.post("/access/check", json={"resource": "users", "action": "manage"}, headers=member_headers)
    assert response.json() == {"has_permission": False, "permission_id": "", "reason": "insufficient permissions"}


def test_check_for_other_user_needs_users_manage(client: TestClient, member_headers):
    response = client.post(
        "/access/check",
        json={"resource": "people", "action": "read", "user_id": ADMIN_ID},
        headers=member_headers,
    )
    assert response.status_code == 403


def test_check_validation_error(client: TestClient, admin_headers):
    response = client.post("/access/check", json={"resource": "users"}, headers=admin_headers)
    assert response.status_code == 400
    assert "action" in response.json()


def test_assign_and_check_scoped_role(client: TestClient, admin_headers, member_headers):
    pastor_id = role_id(client, admin_headers, "Pastor")

    response = client.post(
        "/access/assignments",
        json={"user_id": MEMBER_ID, "role_id": pastor_id, "scope": {"church_ids": ["church1"]}},
        headers=admin_headers,
    )
    assert response.status_code == 201
    assert response.json()["scope"]["church_ids"] == ["church1"]

    check = {"resource": "events", "action": "create", "church_id": "church1"}
    assert client.post("/access/check", json=check, headers=member_headers).json()["has_permission"] is True
    check["church_id"] = "church2"
    assert client.post("/access/check", json=check, headers=member_headers).json()["has_permission"] is False

    roles = client.get(f"/access/users/{MEMBER_ID}/roles", headers=member_headers).json()
    assert roles["level"] == 7
    assert [r["name"] for r in roles["roles"]] == ["Pastor"]


def test_church_specific_role_without_scope(client: TestClient, admin_headers):
    pastor_id = role_id(client, admin_headers, "Pastor")
    response = client.post(
        "/access/assignments", json={"user_id": MEMBER_ID, "role_id": pastor_id}, headers=admin_headers
    )
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_scope"


def test_duplicate_assignment_is_conflict(client: TestClient, admin_headers):
    member_role = role_id(client, admin_headers, "Member")
    body = {"user_id": MEMBER_ID, "role_id": member_role}

    assert client.post("/access/assignments", json=body, headers=admin_headers).status_code == 201
    response = client.post("/access/assignments", json=body, headers=admin_headers)
    assert response.status_code == 409
    assert response.json()["error"] == "duplicate_assignment"


def test_member_cannot_assign_roles(client: TestClient, admin_headers, member_headers):
    member_role = role_id(client, admin_headers, "Member")
    response = client.post(
        "/access/assignments", json={"user_id": "someone", "role_id": member_role}, headers=member_headers
    )
    assert response.status_code == 403


def test_revoke_assignment(client: TestClient, admin_headers):
    member_role = role_id(client, admin_headers, "Member")
    client.post("/access/assignments", json={"user_id": MEMBER_ID, "role_id": member_role}, headers=admin_headers)

    response = client.delete(f"/access/assignments/{MEMBER_ID}/{member_role}", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["revoked_by"] == ADMIN_ID

    response = client.delete(f"/access/assignments/{MEMBER_ID}/{member_role}", headers=admin_headers)
    assert response.status_code == 404


def test_custom_role_lifecycle(client: TestClient, admin_headers):
    response = client.post(
        "/access/roles",
        json={"name": "Greeter", "level": 3, "permission_ids": ["people:read", "people:read"]},
        headers=admin_headers,
    )
    assert response.status_code == 201
    role = response.json()
    assert role["type"] == "custom"
    assert role["permission_ids"] == ["people:read"]

    response = client.put(f"/access/roles/{role['id']}", json={"description": "Front door"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["description"] == "Front door"

    response = client.put(f"/access/roles/{role['id']}", json={}, headers=admin_headers)
    assert response.status_code == 400

    client.post("/access/assignments", json={"user_id": MEMBER_ID, "role_id": role["id"]}, headers=admin_headers)
    response = client.delete(f"/access/roles/{role['id']}", headers=admin_headers)
    assert response.status_code == 409
    assert response.json()["error"] == "role_in_use"

    client.delete(f"/access/assignments/{MEMBER_ID}/{role['id']}", headers=admin_headers)
    assert client.delete(f"/access/roles/{role['id']}", headers=admin_headers).status_code == 204
    assert client.get(f"/access/roles/{role['id']}", headers=admin_headers).status_code == 404


def test_unknown_permission_on_create(client: TestClient, admin_headers):
    response = client.post(
        "/access/roles", json={"name": "Ghost", "permission_ids": ["ghost:read"]}, headers=admin_headers
    )
    assert response.status_code == 400
    assert response.json()["error"] == "unknown_permission"


def test_system_role_edit_is_conflict(client: TestClient, admin_headers):
    pastor_id = role_id(client, admin_headers, "Pastor")
    response = client.put(f"/access/roles/{pastor_id}", json={"name": "Reverend"}, headers=admin_headers)
    assert response.status_code == 409
    assert response.json()["error"] == "immutable_system_role"


def test_permissions_catalog(client: TestClient, admin_headers, member_headers):
    response = client.get("/access/permissions", params={"resource": "events"}, headers=member_headers)
    assert response.status_code == 200
    assert all(p["resource"] == "events" for p in response.json())

    response = client.get("/access/permissions/events:create", headers=member_headers)
    assert response.json()["scope"] == "church"

    grouped = client.get("/access/permissions/by-category", headers=member_headers).json()
    assert {"core", "admin", "ministry", "financial"} <= set(grouped)

    body = {"resource": "sermons", "action": "publish", "name": "Publish Sermons", "scope": "church"}
    assert client.post("/access/permissions", json=body, headers=member_headers).status_code == 403
    response = client.post("/access/permissions", json=body, headers=admin_headers)
    assert response.status_code == 201
    assert response.json()["id"] == "sermons:publish"
    assert client.post("/access/permissions", json=body, headers=admin_headers).status_code == 409

    response = client.post("/access/permissions/sermons:publish/deactivate", headers=admin_headers)
    assert response.json()["is_active"] is False


def test_role_hierarchy(client: TestClient, admin_headers):
    nodes = client.get("/access/roles/hierarchy", headers=admin_headers).json()
    assert nodes[0]["role"]["name"] == "Super Administrator"
    assert nodes[0]["level"] == 10


def test_template_role(client: TestClient, admin_headers):
    templates = client.get("/access/templates", headers=admin_headers).json()
    finance = next(t for t in templates if t["name"] == "Finance Team")

    response = client.post(
        f"/access/templates/{finance['id']}/roles",
        json={"name": "Counters", "removed_permissions": ["people:read"]},
        headers=admin_headers,
    )
    assert response.status_code == 201
    assert response.json()["permission_ids"] == ["financial:read", "reports:read"]


def test_role_request_workflow(client: TestClient, admin_headers, member_headers):
    member_role = role_id(client, admin_headers, "Member")

    response = client.post(
        "/access/requests", json={"role_id": member_role, "reason": "New here"}, headers=member_headers
    )
    assert response.status_code == 201
    request = response.json()
    assert request["user_id"] == MEMBER_ID
    assert request["status"] == "pending"

    assert client.get(f"/access/requests/{request['id']}", headers=member_headers).status_code == 200
    assert client.get("/access/requests", headers=member_headers).status_code == 403

    pending = client.get("/access/requests", params={"status": "pending"}, headers=admin_headers).json()
    assert [r["id"] for r in pending] == [request["id"]]

    response = client.post(
        f"/access/requests/{request['id']}/review", json={"decision": "approved"}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["status"] == "approved"

    response = client.post(
        f"/access/requests/{request['id']}/review", json={"decision": "rejected"}, headers=admin_headers
    )
    assert response.status_code == 409

    me = client.get("/users/me", headers=member_headers).json()
    assert [r["name"] for r in me["roles"]] == ["Member"]


def test_other_users_request_is_hidden(client: TestClient, admin_headers, member_headers):
    member_role = role_id(client, admin_headers, "Member")
    request = client.post(
        "/access/requests", json={"role_id": member_role, "user_id": "third-user"}, headers=admin_headers
    ).json()

    assert client.get(f"/access/requests/{request['id']}", headers=member_headers).status_code == 403


def test_expire_assignments(client: TestClient, admin_headers):
    member_role = role_id(client, admin_headers, "Member")
    client.post(
        "/access/assignments",
        json={"user_id": MEMBER_ID, "role_id": member_role, "expires_at": "2000-01-01T00:00:00Z"},
        headers=admin_headers,
    )

    response = client.post("/access/assignments/expire", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["count"] == 1


def test_audit_logs(client: TestClient, admin_headers, member_headers):
    client.post("/access/check", json={"resource": "users", "action": "manage"}, headers=member_headers)

    assert client.get("/access/audit-logs", headers=member_headers).status_code == 403

    response = client.get(
        "/access/audit-logs",
        params={"user_id": MEMBER_ID, "kind": "decision", "limit": 10},
        headers=admin_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["page"] == 1
    assert data["items"][0]["granted"] is False
    assert data["items"][0]["reason"] == "insufficient permissions"

    assert client.get("/access/audit-logs", params={"limit": 0}, headers=admin_headers).status_code == 400


def test_check_is_rate_limited(admin_service, admin_headers):
    app = create_app(admin_service)
    with TestClient(app) as client:
        body = {"resource": "people", "action": "read"}
        statuses = [client.post("/access/check", json=body, headers=admin_headers).status_code for _ in range(125)]
    assert statuses[0] == 200
    assert statuses[-1] == 429


def test_startup_builds_service_from_config(monkeypatch):
    monkeypatch.setattr(config, "PERSIST", False)
    monkeypatch.setattr(config, "SEED_DEFAULTS", True)
    monkeypatch.setattr(config, "BOOTSTRAP_ADMIN_ID", "first-admin")

    app = create_app()
    with TestClient(app) as client:
        headers = {"Authorization": f"Bearer {issue_token('first-admin')}"}
        response = client.post("/access/check", json={"resource": "system", "action": "manage"}, headers=headers)
    assert response.json()["has_permission"] is True
