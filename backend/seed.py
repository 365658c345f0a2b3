import logging
from datetime import UTC, datetime

from sqlmodel import Session, select

from departments import SEED_DEPARTMENTS
from models import Administrator, Department

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "SYSTEM"


def seed_database(session: Session, fallback_admin: str) -> None:
    """Insert the built-in departments and the first administrator on an empty database."""
    now = datetime.now(UTC)

    if session.exec(select(Department)).first() is None:
        session.add_all(
            Department(name=name, active=True, created_at=now, created_by=SYSTEM_ACTOR)
            for name in SEED_DEPARTMENTS
        )
        logger.info(f"Seeded {len(SEED_DEPARTMENTS)} departments")

    if fallback_admin and session.exec(select(Administrator)).first() is None:
        session.add(
            Administrator(
                login=fallback_admin,
                display_name="System Administrator",
                active=True,
                note="First administrator - created automatically",
                created_at=now,
                created_by=SYSTEM_ACTOR,
            )
        )
        logger.info(f"Seeded administrator {fallback_admin}")

    session.commit()


if __name__ == "__main__":
    from db import create_db_and_tables, engine
    from settings import get_settings

    logging.basicConfig(level=logging.INFO)
    create_db_and_tables()
    with Session(engine) as session:
        seed_database(session, get_settings().fallback_admin)
