"""
Migration: Add case_number to registrations and case-insensitive unique indexes.

This migration:
1. Adds the case_number column to databases created before it existed
2. Creates the unique index on lower(department.name)
3. Creates the unique index on lower(administrator.login)

Index creation fails if existing rows already clash case-insensitively; those
must be merged by hand first.
"""
import logging
from sqlalchemy import text

logger = logging.getLogger(__name__)

INDEXES = [
    ("uniq_department_name_lower", "department", "lower(name)"),
    ("uniq_administrator_login_lower", "administrator", "lower(login)"),
]


def is_postgres(engine):
    """Check if database is PostgreSQL."""
    return "postgresql" in str(engine.url).lower()


def migrate(engine):
    """Run migration."""
    with engine.connect() as conn:
        trans = conn.begin()

        try:
            if is_postgres(engine):
                columns = _postgres_columns(conn, "registration")
            else:
                columns = _sqlite_columns(conn, "registration")

            if not columns:
                logger.info("Registration table does not exist, skipping migration")
                trans.commit()
                return

            if "case_number" not in columns:
                logger.info("Adding case_number column...")
                conn.execute(text("ALTER TABLE registration ADD COLUMN case_number VARCHAR(60)"))
            else:
                logger.info("case_number column already exists")

            for name, table, expression in INDEXES:
                conn.execute(text(f"CREATE UNIQUE INDEX IF NOT EXISTS {name} ON {table} ({expression})"))

            trans.commit()
            logger.info("Migration 001 completed successfully")
        except Exception as e:
            trans.rollback()
            logger.error(f"Migration 001 failed: {str(e)}")
            raise


def _postgres_columns(conn, table):
    result = conn.execute(text("""
        SELECT column_name
        FROM information_schema.columns
        WHERE table_name = :table
    """), {"table": table})
    return [row[0] for row in result.fetchall()]


def _sqlite_columns(conn, table):
    result = conn.execute(text(f"PRAGMA table_info({table})"))
    return [row[1] for row in result.fetchall()]


if __name__ == "__main__":
    from db import engine
    logging.basicConfig(level=logging.INFO)
    migrate(engine)
