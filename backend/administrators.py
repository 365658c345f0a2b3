import logging
from datetime import UTC, datetime

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from directory import DirectoryLookup, resolve_user, strip_domain
from errors import NotFoundError, ValidationError
from models import Administrator

logger = logging.getLogger(__name__)

LAST_ADMIN_MESSAGE = (
    "Cannot remove the last active administrator. There must always be at least one active administrator."
)


def qualify_login(login: str, domain: str) -> str:
    """jdoe -> IBK\\jdoe; already qualified logins are kept as given."""
    login = login.strip()
    if "\\" in login or not domain:
        return login
    return f"{domain}\\{login}"


def _find_by_login(session: Session, login: str, exclude_id: int | None = None) -> Administrator | None:
    stmt = select(Administrator).where(func.lower(Administrator.login) == func.lower(login))
    if exclude_id is not None:
        stmt = stmt.where(Administrator.id != exclude_id)
    return session.exec(stmt).first()


def _active_count(session: Session) -> int:
    return session.exec(
        select(func.count(Administrator.id)).where(Administrator.active == True)  # noqa: E712
    ).one()


def _clean(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    return value.strip()


def list_administrators(session: Session) -> list[Administrator]:
    return list(
        session.exec(
            select(Administrator).order_by(func.coalesce(Administrator.display_name, Administrator.login))
        ).all()
    )


def lookup_candidate(session: Session, username: str, directory: DirectoryLookup | None, domain: str) -> str:
    """Directory display name for someone who is not yet an administrator."""
    if not username or not username.strip():
        raise ValidationError("Username is required")
    login = qualify_login(username, domain)
    if _find_by_login(session, login):
        raise ValidationError(f"'{strip_domain(login)}' is already an administrator")

    display_name = None
    if directory is not None:
        try:
            display_name = directory.lookup_display_name(strip_domain(login))
        except Exception as e:
            logger.warning(f"Directory lookup failed for {login}: {e}")
    if not display_name:
        raise NotFoundError(f"'{strip_domain(login)}' was not found in the directory")
    return display_name


def create_administrator(
    session: Session,
    login: str,
    display_name: str | None = None,
    active: bool = True,
    note: str | None = None,
    actor: str | None = None,
    directory: DirectoryLookup | None = None,
    domain: str = "",
) -> Administrator:
    if not login or not login.strip():
        raise ValidationError("Username is required")
    login = qualify_login(login, domain)
    if _find_by_login(session, login):
        raise ValidationError(f"An administrator with username '{login}' already exists")

    display_name = _clean(display_name)
    if display_name is None and directory is not None:
        info = resolve_user(directory, login)
        # resolve_user falls back to the bare username, which is not a real display name
        display_name = info.display_name if info.display_name != info.username else None

    administrator = Administrator(
        login=login,
        display_name=display_name,
        active=active,
        note=_clean(note),
        created_at=datetime.now(UTC),
        created_by=actor,
    )
    session.add(administrator)
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise ValidationError(f"An administrator with username '{login}' already exists") from e
    session.refresh(administrator)

    logger.info(f"Administrator created: {login} ({display_name}) by {actor}")
    return administrator


def update_administrator(
    session: Session,
    admin_id: int,
    login: str,
    display_name: str | None,
    active: bool,
    note: str | None = None,
    actor: str | None = None,
) -> Administrator:
    if not login or not login.strip():
        raise ValidationError("Username is required")
    administrator = session.get(Administrator, admin_id)
    if administrator is None:
        raise NotFoundError(f"Administrator {admin_id} was not found")

    login = login.strip()
    if _find_by_login(session, login, exclude_id=admin_id):
        raise ValidationError(f"Another administrator with username '{login}' already exists")
    if administrator.active and not active and _active_count(session) <= 1:
        raise ValidationError(LAST_ADMIN_MESSAGE)

    old_login = administrator.login
    administrator.login = login
    administrator.display_name = _clean(display_name)
    administrator.active = active
    administrator.note = _clean(note)
    administrator.updated_at = datetime.now(UTC)
    administrator.updated_by = actor
    session.add(administrator)
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise ValidationError(f"Another administrator with username '{login}' already exists") from e
    session.refresh(administrator)

    logger.info(f"Administrator updated: {old_login} -> {login} by {actor}")
    return administrator


def delete_administrator(session: Session, admin_id: int, actor: str | None = None) -> str:
    administrator = session.get(Administrator, admin_id)
    if administrator is None:
        raise NotFoundError(f"Administrator {admin_id} was not found")
    if administrator.active and _active_count(session) <= 1:
        raise ValidationError(LAST_ADMIN_MESSAGE)

    login = administrator.login
    session.delete(administrator)
    session.commit()
    logger.info(f"Administrator deleted: {login} by {actor}")
    return f"Administrator '{login}' was deleted."
