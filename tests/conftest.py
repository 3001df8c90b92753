# tests/conftest.py

"""
Pytest configuration and shared fixtures for testing.
"""

import pytest
from fastapi.testclient import TestClient
from typing import Generator

from app.core.limiter import limiter
from app.features.access.domain import Permission, PermissionCategory, PermissionScope, Role
from app.features.access.service import AccessControlService
from app.features.users.auth import issue_token
from app.main import create_app


ADMIN_ID = "admin-user"
MEMBER_ID = "member-user"


@pytest.fixture
def service() -> AccessControlService:
    """A service with the default catalog, system roles and templates."""
    service = AccessControlService()
    service.load_defaults()
    return service


@pytest.fixture
def bare_service() -> AccessControlService:
    """A service with nothing registered."""
    return AccessControlService()


@pytest.fixture
def church_permission(bare_service) -> Permission:
    permission = Permission(
        resource="events",
        action="create",
        name="Create Events",
        scope=PermissionScope.CHURCH,
        category=PermissionCategory.MINISTRY,
    )
    bare_service.register_permission(permission)
    return permission


@pytest.fixture
def global_permission(bare_service) -> Permission:
    permission = Permission(resource="people", action="read", name="View People")
    bare_service.register_permission(permission)
    return permission


@pytest.fixture
def custom_role(bare_service, global_permission) -> Role:
    return bare_service.create_role(Role(name="Greeter", level=3, permission_ids=[global_permission.id]))


@pytest.fixture
def admin_service(service) -> AccessControlService:
    service.bootstrap_admin(ADMIN_ID)
    return service


@pytest.fixture(scope="function")
def app(admin_service):
    """Create a test FastAPI application instance."""
    return create_app(admin_service)


@pytest.fixture(scope="function")
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI application."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {issue_token(ADMIN_ID, email='admin@example.com')}"}


@pytest.fixture
def member_headers():
    return {"Authorization": f"Bearer {issue_token(MEMBER_ID, email='member@example.com')}"}


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Reset rate limit counters before each test."""
    limiter.reset()
    yield
    limiter.reset()
