"""Two-phase bulk rename of the department on registrations.

``preview_rename`` shows who is affected; ``execute_rename`` re-validates,
then rewrites history and the master list in one transaction.
"""
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy import func
from sqlmodel import Session, select

from errors import ValidationError
from models import Department, Registration

logger = logging.getLogger(__name__)


@dataclass
class AffectedUser:
    name: str
    count: int


@dataclass
class RenamePreview:
    old_name: str
    new_name: str
    affected_count: int
    affected_users: list[AffectedUser] = field(default_factory=list)


@dataclass
class RenameResult:
    old_name: str
    new_name: str
    changed_count: int
    message: str


def _validate_names(old_name: str | None, new_name: str | None) -> tuple[str, str]:
    if not old_name or not old_name.strip() or not new_name or not new_name.strip():
        raise ValidationError("Both the old and the new department name are required")
    old_name = old_name.strip()
    new_name = new_name.strip()
    if old_name.lower() == new_name.lower():
        raise ValidationError("The old and the new name cannot be the same")
    return old_name, new_name


def _nothing_to_change(old_name: str) -> ValidationError:
    return ValidationError(f"Nothing to change: no registrations found with department '{old_name}'")


def preview_rename(session: Session, old_name: str, new_name: str) -> RenamePreview:
    old_name, new_name = _validate_names(old_name, new_name)

    affected = session.exec(select(Registration).where(Registration.department == old_name)).all()
    if not affected:
        raise _nothing_to_change(old_name)

    groups: dict[tuple[str, str | None], int] = {}
    for registration in affected:
        key = (registration.login, registration.display_name)
        groups[key] = groups.get(key, 0) + 1

    users = sorted(
        (AffectedUser(name=display_name or login, count=count) for (login, display_name), count in groups.items()),
        key=lambda u: u.name,
    )
    return RenamePreview(old_name=old_name, new_name=new_name, affected_count=len(affected), affected_users=users)


def execute_rename(session: Session, old_name: str, new_name: str, actor: str | None = None) -> RenameResult:
    """Move every registration on ``old_name`` to ``new_name`` and update the master list.

    Everything is committed once; on any error the session is rolled back and
    neither the departments nor the registrations change.
    """
    old_name, new_name = _validate_names(old_name, new_name)

    try:
        # Re-fetch under row locks, the preview may be stale
        registrations = session.exec(
            select(Registration).where(Registration.department == old_name).with_for_update()
        ).all()
        if not registrations:
            raise _nothing_to_change(old_name)

        now = datetime.now(UTC)

        old_master = session.exec(
            select(Department).where(Department.name == old_name).with_for_update()
        ).first()
        if old_master is not None:
            old_master.active = False
            old_master.updated_at = now
            old_master.updated_by = actor
            session.add(old_master)

        # Master names are unique regardless of case; reuse the existing spelling
        new_master = session.exec(
            select(Department).where(func.lower(Department.name) == func.lower(new_name)).with_for_update()
        ).first()
        if new_master is not None:
            new_name = new_master.name
            new_master.active = True
            new_master.updated_at = now
            new_master.updated_by = actor
            session.add(new_master)
        else:
            session.add(Department(name=new_name, active=True, created_at=now, created_by=actor))

        for registration in registrations:
            registration.department = new_name
            session.add(registration)

        changed = len(registrations)
        session.commit()
    except Exception:
        session.rollback()
        raise

    if old_master is not None:
        master_message = f"Department '{old_name}' was made inactive and '{new_name}' was created or activated."
    else:
        master_message = f"Department '{new_name}' was created or activated."

    logger.warning(
        f"Mass rename executed: '{old_name}' -> '{new_name}' on {changed} registrations by {actor}. {master_message}"
    )
    return RenameResult(
        old_name=old_name,
        new_name=new_name,
        changed_count=changed,
        message=f"Mass rename completed. {changed} registrations were updated. {master_message}",
    )
