import logging

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from models import Administrator

logger = logging.getLogger(__name__)


class AdminResolver:
    """Decides whether a principal is an administrator.

    The fallback identity is always an administrator, whatever the
    Administrator table contains. Store errors are downgraded to the fallback
    comparison and never reach the caller.
    """

    def __init__(self, fallback_identity: str):
        self.fallback_identity = fallback_identity

    def is_fallback(self, principal: str) -> bool:
        return bool(self.fallback_identity) and principal.lower() == self.fallback_identity.lower()

    def is_admin(self, session: Session, principal: str | None) -> bool:
        if not principal:
            return False

        try:
            found = session.exec(
                select(Administrator.id)
                .where(func.lower(Administrator.login) == func.lower(principal))
                .where(Administrator.active == True)  # noqa: E712
            ).first()
        except SQLAlchemyError as e:
            logger.warning(f"Administrator lookup failed for {principal}, using fallback check: {e}")
            session.rollback()
            return self.is_fallback(principal)

        if found is not None:
            return True
        return self.is_fallback(principal)
