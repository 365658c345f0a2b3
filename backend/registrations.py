"""Time registrations owned by a single principal."""
import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Any

from sqlmodel import Session, select

from errors import ForbiddenError, NotFoundError, ValidationError
from models import Registration

logger = logging.getLogger(__name__)

MAX_CASE_NUMBER = 60
MAX_NOTES = 1000
MAX_DEPARTMENT = 100

EDITABLE_FIELDS = ("minutes", "department", "notes", "performed_on", "case_number")


@dataclass
class OwnerSummary:
    total_minutes: int
    hours: int
    minutes: int
    recent: list[Registration]


@dataclass
class ChangeResult:
    registration_id: int
    message: str
    audit: str | None = None


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _validate(minutes: int, department: str | None, notes: str | None, case_number: str | None) -> None:
    if minutes is None or minutes <= 0:
        raise ValidationError("Minutes must be greater than 0")
    if not department or not department.strip():
        raise ValidationError("A department must be selected")
    if len(department.strip()) > MAX_DEPARTMENT:
        raise ValidationError(f"Department may be at most {MAX_DEPARTMENT} characters")
    if notes and len(notes) > MAX_NOTES:
        raise ValidationError(f"Notes may be at most {MAX_NOTES} characters")
    if case_number and len(case_number) > MAX_CASE_NUMBER:
        raise ValidationError(f"Case number may be at most {MAX_CASE_NUMBER} characters")


def create_registration(
    session: Session,
    owner: str,
    display_name: str | None,
    org_unit: str | None,
    minutes: int,
    department: str,
    notes: str | None = None,
    case_number: str | None = None,
    performed_on: date | None = None,
) -> Registration:
    """Record minutes spent for ``owner``. Entry date is now, work date defaults to today."""
    notes = _clean(notes)
    case_number = _clean(case_number)
    _validate(minutes, department, notes, case_number)

    now = datetime.now(UTC)
    registration = Registration(
        recorded_at=now,
        minutes=minutes,
        department=department.strip(),
        login=owner,
        display_name=display_name,
        org_unit=org_unit,
        case_number=case_number,
        notes=notes,
        performed_on=performed_on or date.today(),
        created_at=now,
    )
    session.add(registration)
    session.commit()
    session.refresh(registration)

    logger.info(f"Registration {registration.id} saved: {minutes} minutes on {registration.department} by {owner}")
    return registration


def list_for_owner(session: Session, owner: str) -> list[Registration]:
    return list(
        session.exec(
            select(Registration)
            .where(Registration.login == owner)
            .order_by(Registration.recorded_at.desc(), Registration.id.desc())
        ).all()
    )


def owner_summary(session: Session, owner: str, recent: int = 5) -> OwnerSummary:
    """Total time and the latest entries for the front page."""
    registrations = list_for_owner(session, owner)
    total = sum(r.minutes for r in registrations)
    return OwnerSummary(total_minutes=total, hours=total // 60, minutes=total % 60, recent=registrations[:recent])


def _get_for_change(session: Session, registration_id: int, actor: str, is_admin: bool) -> Registration:
    registration = session.get(Registration, registration_id)
    if registration is None:
        raise NotFoundError(f"Registration {registration_id} was not found")
    if registration.login != actor and not is_admin:
        logger.warning(f"{actor} tried to change registration {registration_id} owned by {registration.login}")
        raise ForbiddenError("You can only change your own registrations")
    return registration


def _describe(registration: Registration) -> str:
    return (
        f"{registration.minutes} minutes on '{registration.department}'"
        f", performed {registration.performed_on or '-'}"
        f", case {registration.case_number or '-'}"
        f", notes '{registration.notes or ''}'"
    )


def update_registration(
    session: Session,
    registration_id: int,
    actor: str,
    is_admin: bool,
    changes: dict[str, Any],
) -> ChangeResult:
    """Apply ``changes`` to a registration owned by ``actor``, or any registration for admins."""
    registration = _get_for_change(session, registration_id, actor, is_admin)

    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Fields cannot be changed: {', '.join(sorted(unknown))}")

    merged = {field: getattr(registration, field) for field in EDITABLE_FIELDS}
    merged.update(changes)
    merged["notes"] = _clean(merged["notes"])
    merged["case_number"] = _clean(merged["case_number"])
    _validate(merged["minutes"], merged["department"], merged["notes"], merged["case_number"])
    merged["department"] = merged["department"].strip()

    audit = None
    if registration.login != actor:
        audit = (
            f"Administrator {actor} changed registration {registration.id} belonging to "
            f"{registration.display_name or registration.login}. Previous values: {_describe(registration)}"
        )

    for field, value in merged.items():
        setattr(registration, field, value)

    try:
        session.add(registration)
        session.commit()
    except Exception:
        session.rollback()
        raise

    if audit:
        logger.warning(audit)
    else:
        logger.info(f"Registration {registration_id} updated by {actor}")
    return ChangeResult(registration_id=registration_id, message="Registration updated", audit=audit)


def delete_registration(session: Session, registration_id: int, actor: str, is_admin: bool) -> ChangeResult:
    registration = _get_for_change(session, registration_id, actor, is_admin)

    audit = None
    if registration.login != actor:
        audit = (
            f"Administrator {actor} deleted registration {registration.id} belonging to "
            f"{registration.display_name or registration.login}. Previous values: {_describe(registration)}"
        )

    try:
        session.delete(registration)
        session.commit()
    except Exception:
        session.rollback()
        raise

    if audit:
        logger.warning(audit)
    else:
        logger.info(f"Registration {registration_id} deleted by {actor}")
    return ChangeResult(registration_id=registration_id, message="Registration deleted", audit=audit)
