"""Database seeding.

Creates the schema and the default roles. Both steps are idempotent, so
this can run on every start.
"""

import logging

from sqlalchemy.orm import Session

from inventory.core.rbac.roles import DEFAULT_ROLES
from inventory.db.base import Base
from inventory.db.models import Role

logger = logging.getLogger(__name__)


def seed_default_roles(db: Session) -> dict[str, Role]:
    """
    Create the default roles that do not exist yet.

    Existing system roles keep whatever permissions an administrator has
    given them since.

    Returns:
        Dict mapping role key to Role object
    """
    roles = {}

    for role_key, role_config in DEFAULT_ROLES.items():
        existing = db.query(Role).filter(Role.name == role_config["name"]).first()
        if existing:
            roles[role_key] = existing
            continue

        role = Role(
            name=role_config["name"],
            permissions=list(role_config["permissions"]),
            is_system=True,
        )
        db.add(role)
        roles[role_key] = role
        logger.info(f"Created default role {role.name}")

    db.flush()
    return roles


def init_db(engine, session_factory) -> None:
    """Create missing tables and seed the default roles."""
    import inventory.db.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    db = session_factory()
    try:
        seed_default_roles(db)
        db.commit()
    finally:
        db.close()


def main() -> None:
    from inventory.core.config import get_settings
    from inventory.core.logger import configure_from_settings
    from inventory.db.session import SessionLocal, engine

    configure_from_settings(get_settings())
    init_db(engine, SessionLocal)
    logger.info("Database initialized")


if __name__ == "__main__":
    main()
