import logging
import os
from collections.abc import Mapping

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_PATH = "./timeregistration.db"


def resolve_database_url(environ: Mapping[str, str] = os.environ) -> str:
    """DATABASE_URL if set, otherwise a local SQLite file outside production."""
    url = environ.get("DATABASE_URL")
    if not url:
        env = environ.get("ENV", "dev").lower()
        # Guard against SQLite fallback in production
        if env in ("prod", "production"):
            raise RuntimeError(
                "DATABASE_URL missing in production; refusing to start with SQLite. "
                "Please configure DATABASE_URL environment variable."
            )
        url = f"sqlite:///{environ.get('DATABASE_PATH', DEFAULT_DATABASE_PATH)}"

    # Some hosts hand out postgres:// but SQLAlchemy needs postgresql://
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


def build_engine(url: str) -> Engine:
    driver = url.split(":", 1)[0] if ":" in url else "unknown"
    logger.info(f"DB_URL_DRIVER={driver}")

    connect_args = {}
    if driver.startswith("sqlite"):
        # Request handlers run in FastAPI's threadpool
        connect_args["check_same_thread"] = False
    return create_engine(url, echo=False, connect_args=connect_args)


engine = build_engine(resolve_database_url())


def create_db_and_tables():
    """Create database and tables if they don't exist.
    This is safe to call multiple times - it won't wipe existing data.
    """
    SQLModel.metadata.create_all(engine)


def get_session():
    """Get database session."""
    with Session(engine) as session:
        yield session
