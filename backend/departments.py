"""Department master data.

Renaming a department supersedes it: the old row is deactivated and a new row
is created, so registrations that carry the old name keep a valid meaning.
Rewriting registrations is left to the mass rename workflow.
"""
import logging
from datetime import UTC, datetime

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from errors import NotFoundError, ValidationError
from models import Department, Registration

logger = logging.getLogger(__name__)

SEED_DEPARTMENTS = [
    "Arbejdsmarkedsafdelingen",
    "Børne- og Familieafdelingen",
    "Dagtilbudsafdelingen",
    "Erhvervsafdelingen og Ledelsessekretariat",
    "Fælles",
    "IT-afdelingen",
    "Kultur- og Fritidsafdelingen",
    "Skoleafdelingen",
    "Socialafdelingen",
    "Sundheds- og Ældreafdelingen",
    "Teknik- og Miljøafdelingen",
    "Økonomi- og Personaleafdelingen",
]

MAX_NAME = 100


def _find_by_name(session: Session, name: str, exclude_id: int | None = None) -> Department | None:
    stmt = select(Department).where(func.lower(Department.name) == func.lower(name))
    if exclude_id is not None:
        stmt = stmt.where(Department.id != exclude_id)
    return session.exec(stmt).first()


def _clean_name(name: str | None) -> str:
    if not name or not name.strip():
        raise ValidationError("Department name is required")
    name = name.strip()
    if len(name) > MAX_NAME:
        raise ValidationError(f"Department name may be at most {MAX_NAME} characters")
    return name


def list_departments(session: Session) -> list[Department]:
    return list(session.exec(select(Department).order_by(Department.name)).all())


def department_usage(session: Session) -> dict[str, int]:
    """Registration count per department name in use, master or not."""
    rows = session.exec(
        select(Registration.department, func.count(Registration.id)).group_by(Registration.department)
    ).all()
    return {name: count for name, count in rows}


def active_department_names(session: Session) -> list[str]:
    """Names for selection lists; the seed list stands in when the master table is empty or unreadable."""
    try:
        names = list(
            session.exec(select(Department.name).where(Department.active == True).order_by(Department.name)).all()  # noqa: E712
        )
    except SQLAlchemyError as e:
        logger.warning(f"Could not load departments, using built-in list: {e}")
        session.rollback()
        return list(SEED_DEPARTMENTS)
    return names or list(SEED_DEPARTMENTS)


def create_department(session: Session, name: str, active: bool = True, actor: str | None = None) -> Department:
    name = _clean_name(name)
    if _find_by_name(session, name):
        raise ValidationError(f"A department named '{name}' already exists")

    department = Department(name=name, active=active, created_at=datetime.now(UTC), created_by=actor)
    session.add(department)
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise ValidationError(f"A department named '{name}' already exists") from e
    session.refresh(department)

    logger.info(f"Department created: {name} by {actor}")
    return department


def update_department(
    session: Session,
    department_id: int,
    new_name: str,
    active: bool,
    actor: str | None = None,
) -> tuple[Department, str]:
    """Rename (by superseding) or toggle a department. Returns the resulting row and a message."""
    new_name = _clean_name(new_name)
    department = session.get(Department, department_id)
    if department is None:
        raise NotFoundError(f"Department {department_id} was not found")

    now = datetime.now(UTC)
    old_name = department.name

    if old_name.lower() == new_name.lower():
        department.active = active
        department.updated_at = now
        department.updated_by = actor
        session.add(department)
        session.commit()
        session.refresh(department)
        state = "active" if active else "inactive"
        logger.info(f"Department status updated: '{old_name}' set to {state} by {actor}")
        return department, f"Department '{old_name}' set to {state}."

    if _find_by_name(session, new_name, exclude_id=department.id):
        raise ValidationError(f"A department named '{new_name}' already exists")

    department.active = False
    department.updated_at = now
    department.updated_by = actor
    replacement = Department(name=new_name, active=active, created_at=now, created_by=actor)
    session.add(department)
    session.add(replacement)
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise ValidationError(f"A department named '{new_name}' already exists") from e
    session.refresh(replacement)

    logger.info(f"Department renamed: '{old_name}' made inactive, '{new_name}' created by {actor}")
    return replacement, (
        f"Department '{old_name}' was made inactive and '{new_name}' was created. "
        "Existing registrations keep their original department name."
    )


def delete_department(session: Session, department_id: int, actor: str | None = None) -> str:
    department = session.get(Department, department_id)
    if department is None:
        raise NotFoundError(f"Department {department_id} was not found")

    in_use = session.exec(
        select(func.count(Registration.id)).where(Registration.department == department.name)
    ).one()
    if in_use > 0:
        raise ValidationError(
            f"Cannot delete department '{department.name}': {in_use} registrations still use it. "
            "Use the mass rename first."
        )

    name = department.name
    session.delete(department)
    session.commit()
    logger.info(f"Department deleted: {name} by {actor}")
    return f"Department '{name}' was deleted."
