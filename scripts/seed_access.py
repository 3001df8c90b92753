"""
Seed script to populate the default permission catalog, system roles and
role templates.

Run this script against the configured DATABASE_URL before the first start
(or let the server do it with SEED_DEFAULTS=1). Existing rows are kept;
only missing defaults are added.

Usage:
    uv run python -m scripts.seed_access [ADMIN_USER_ID]
"""
import sys

from app.core.database.engine import SessionLocal, init_db
from app.features.access.defaults import SYSTEM_ROLES
from app.features.access.service import AccessControlService
from app.features.access.store import SqlAlchemyStore
from app.utils import get_logger


log = get_logger(__name__)


def main(admin_id: str | None = None):
    """Seed defaults and optionally bootstrap a Super Administrator."""
    log.info("Starting access seeding...")

    log.info("Initializing database tables...")
    init_db()

    service = AccessControlService.from_store(SqlAlchemyStore(SessionLocal))
    service.load_defaults()

    if admin_id:
        service.bootstrap_admin(admin_id)

    log.info("Access seeding completed successfully!")
    log.info("")
    log.info("System roles:")
    for spec in SYSTEM_ROLES:
        log.info("  - %s (level %d): %s", spec.name, spec.level, spec.description)


if __name__ == "__main__":
    main(sys.argv[1] if len(sys.argv) > 1 else None)
