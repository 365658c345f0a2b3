import logging
import os
from contextlib import asynccontextmanager
from datetime import date
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from sqlmodel import Session

import administrators
import departments
import mass_rename
import registrations
import report
from auth import AdminResolver
from db import create_db_and_tables, engine, get_session
from directory import DirectoryLookup, load_directory, resolve_user
from errors import DomainError
from models import Registration
from schemas import (
    AdminStatusResponse,
    AdministratorCreate,
    AdministratorRead,
    AdministratorUpdate,
    ChangeResponse,
    DepartmentChangeResponse,
    DepartmentListResponse,
    DepartmentRead,
    DepartmentWrite,
    LookupRequest,
    LookupResponse,
    MassRenameRequest,
    MeResponse,
    MessageResponse,
    OverviewResponse,
    RegistrationCreate,
    RegistrationRead,
    RegistrationUpdate,
)
from seed import seed_database
from settings import Settings, get_settings

# Configure logging
logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)


def _http_error(e: DomainError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=str(e))


@lru_cache
def _directory_for(directory_file: str | None) -> DirectoryLookup:
    return load_directory(directory_file)


def get_directory(settings: Settings = Depends(get_settings)) -> DirectoryLookup:
    return _directory_for(settings.directory_file)


def get_admin_resolver(settings: Settings = Depends(get_settings)) -> AdminResolver:
    return AdminResolver(settings.fallback_admin)


def get_principal(request: Request, settings: Settings = Depends(get_settings)) -> str:
    """Authenticated login as handed over by the hosting web server."""
    principal = (request.headers.get(settings.principal_header) or "").strip()
    if not principal:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return principal


def require_admin(
    principal: str = Depends(get_principal),
    session: Session = Depends(get_session),
    resolver: AdminResolver = Depends(get_admin_resolver),
) -> str:
    if not resolver.is_admin(session, principal):
        logger.warning(f"Unauthorized access to admin functions attempted by {principal}")
        raise HTTPException(status_code=403, detail="You do not have access to the administration area")
    return principal


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    create_db_and_tables()

    try:
        from migrations.migrate_001_add_case_number import migrate as migrate_001
        migrate_001(engine)
    except ImportError as e:
        logger.debug(f"Migration 001 module not found: {e}")
    except Exception as e:
        # Don't raise - allow app to start, but log the error clearly
        logger.error(f"Migration 001 failed: {str(e)}")

    try:
        with Session(engine) as session:
            seed_database(session, get_settings().fallback_admin)
    except Exception as e:
        logger.error(f"Seeding failed: {str(e)}")

    logger.info("Database initialized")
    yield


# Create FastAPI app
app = FastAPI(title="Time Registration API", version="1.0.0", lifespan=lifespan)


@app.get("/")
def root():
    """Root endpoint."""
    return {"message": "Time Registration API", "docs": "/docs"}


@app.get("/me", response_model=MeResponse)
def get_me(
    principal: str = Depends(get_principal),
    session: Session = Depends(get_session),
    directory: DirectoryLookup = Depends(get_directory),
    resolver: AdminResolver = Depends(get_admin_resolver),
):
    """Who am I, plus my total time and latest registrations."""
    user = resolve_user(directory, principal)
    try:
        summary = registrations.owner_summary(session, principal)
    except Exception as e:
        logger.error(f"Error loading summary for {principal}: {str(e)}")
        raise HTTPException(status_code=500, detail="Could not load your registrations") from e

    return MeResponse(
        login=user.login,
        username=user.username,
        display_name=user.display_name,
        org_unit=user.org_unit,
        is_admin=resolver.is_admin(session, principal),
        total_minutes=summary.total_minutes,
        hours=summary.hours,
        minutes=summary.minutes,
        recent=[RegistrationRead.model_validate(r) for r in summary.recent],
    )


@app.get("/departments/active", response_model=list[str])
def get_active_departments(
    principal: str = Depends(get_principal),
    session: Session = Depends(get_session),
):
    """Department names offered when registering time."""
    return departments.active_department_names(session)


@app.post("/registrations", response_model=RegistrationRead, status_code=201)
def create_registration(
    request: RegistrationCreate,
    principal: str = Depends(get_principal),
    session: Session = Depends(get_session),
    directory: DirectoryLookup = Depends(get_directory),
):
    """Register minutes spent. Display name and org unit are cached from the directory."""
    user = resolve_user(directory, principal)
    logger.info(f"Registration request from {principal}: {request.minutes} minutes on {request.department}")

    try:
        return registrations.create_registration(
            session,
            owner=principal,
            display_name=user.display_name,
            org_unit=user.org_unit,
            minutes=request.minutes,
            department=request.department,
            notes=request.notes,
            case_number=request.case_number,
            performed_on=request.performed_on,
        )
    except DomainError as e:
        raise _http_error(e) from e
    except Exception as e:
        session.rollback()
        logger.error(f"Error saving registration for {principal}: {str(e)}")
        raise HTTPException(status_code=500, detail="Could not save the registration") from e


@app.get("/registrations", response_model=list[RegistrationRead])
def list_registrations(
    principal: str = Depends(get_principal),
    session: Session = Depends(get_session),
):
    """The caller's own registrations, newest first."""
    try:
        return registrations.list_for_owner(session, principal)
    except Exception as e:
        logger.error(f"Error listing registrations for {principal}: {str(e)}")
        raise HTTPException(status_code=500, detail="Could not load your registrations") from e


@app.put("/registrations/{registration_id}", response_model=ChangeResponse)
def update_registration(
    registration_id: int,
    request: RegistrationUpdate,
    principal: str = Depends(get_principal),
    session: Session = Depends(get_session),
    resolver: AdminResolver = Depends(get_admin_resolver),
):
    """Edit a registration. Owners edit their own; administrators may edit any."""
    logger.info(f"Update registration {registration_id} requested by {principal}")

    try:
        registration = session.get(Registration, registration_id)
        is_admin = registration is not None and registration.login != principal and resolver.is_admin(session, principal)
        result = registrations.update_registration(
            session, registration_id, principal, is_admin, request.model_dump(exclude_unset=True)
        )
        return ChangeResponse(ok=True, id=result.registration_id, message=result.message, audit=result.audit)
    except DomainError as e:
        raise _http_error(e) from e
    except Exception as e:
        session.rollback()
        logger.error(f"Error updating registration {registration_id} by {principal}: {str(e)}")
        raise HTTPException(status_code=500, detail="Could not update the registration") from e


@app.delete("/registrations/{registration_id}", response_model=ChangeResponse)
def delete_registration(
    registration_id: int,
    principal: str = Depends(get_principal),
    session: Session = Depends(get_session),
    resolver: AdminResolver = Depends(get_admin_resolver),
):
    """Delete a registration. Owners delete their own; administrators may delete any."""
    logger.info(f"Delete registration {registration_id} requested by {principal}")

    try:
        registration = session.get(Registration, registration_id)
        is_admin = registration is not None and registration.login != principal and resolver.is_admin(session, principal)
        result = registrations.delete_registration(session, registration_id, principal, is_admin)
        return ChangeResponse(ok=True, id=result.registration_id, message=result.message, audit=result.audit)
    except DomainError as e:
        raise _http_error(e) from e
    except Exception as e:
        session.rollback()
        logger.error(f"Error deleting registration {registration_id} by {principal}: {str(e)}")
        raise HTTPException(status_code=500, detail="Could not delete the registration") from e


def _report_filter(
    date_from: date | None = Query(None, description="Entries recorded on or after (YYYY-MM-DD)"),
    date_to: date | None = Query(None, description="Entries recorded on or before (YYYY-MM-DD)"),
    department: str | None = Query(None),
    org_unit: str | None = Query(None),
    case_number: str | None = Query(None, description="Substring of the case number"),
    user: str | None = Query(None, description="Display name"),
    settings: Settings = Depends(get_settings),
) -> report.ReportFilter:
    return report.ReportFilter(
        date_from=date_from,
        date_to=date_to,
        department=department or None,
        org_unit=org_unit or None,
        case_number=case_number or None,
        user=user or None,
        tz=settings.tz,
    )


@app.get("/overview", response_model=OverviewResponse)
def get_overview(
    filters: report.ReportFilter = Depends(_report_filter),
    sort: report.SortKey = Query(report.SortKey.date),
    descending: bool = Query(True),
    principal: str = Depends(get_principal),
    session: Session = Depends(get_session),
):
    """All registrations, filtered and sorted."""
    logger.info(f"Overview request by {principal}: {filters}, sort={sort.value}, descending={descending}")

    try:
        overview = report.list_registrations(session, filters, sort, descending)
    except Exception as e:
        logger.error(f"Error building overview for {principal} ({filters}): {str(e)}")
        raise HTTPException(status_code=500, detail="Could not load the overview") from e

    return OverviewResponse(
        registrations=[RegistrationRead.model_validate(r) for r in overview.registrations],
        total_count=overview.total_count,
        total_minutes=overview.total_minutes,
        total_hours=overview.total_hours,
    )


@app.get("/statistics", response_model=report.Statistics)
def get_statistics(
    filters: report.ReportFilter = Depends(_report_filter),
    principal: str = Depends(get_principal),
    session: Session = Depends(get_session),
):
    """Totals, top users, departments, months and weekdays for the filtered set."""
    try:
        return report.build_statistics(session, filters)
    except Exception as e:
        logger.error(f"Error building statistics for {principal} ({filters}): {str(e)}")
        raise HTTPException(status_code=500, detail="Could not build the statistics") from e


@app.get("/filters", response_model=report.FilterOptions)
def get_filter_options(
    principal: str = Depends(get_principal),
    session: Session = Depends(get_session),
):
    try:
        return report.filter_options(session)
    except Exception as e:
        logger.error(f"Error loading filter options for {principal}: {str(e)}")
        raise HTTPException(status_code=500, detail="Could not load filter options") from e


@app.get("/admin/status", response_model=AdminStatusResponse)
def get_admin_status(
    principal: str = Depends(get_principal),
    session: Session = Depends(get_session),
    resolver: AdminResolver = Depends(get_admin_resolver),
):
    """Whether to show the administration link."""
    return AdminStatusResponse(is_admin=resolver.is_admin(session, principal))


@app.get("/admin/departments", response_model=DepartmentListResponse)
def get_departments(
    admin: str = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Master departments plus how many registrations use each name."""
    try:
        return DepartmentListResponse(
            departments=[DepartmentRead.model_validate(d) for d in departments.list_departments(session)],
            usage=departments.department_usage(session),
        )
    except Exception as e:
        logger.error(f"Error loading departments: {str(e)}")
        raise HTTPException(status_code=500, detail="Could not load departments") from e


@app.post("/admin/departments", response_model=DepartmentChangeResponse, status_code=201)
def create_department(
    request: DepartmentWrite,
    admin: str = Depends(require_admin),
    session: Session = Depends(get_session),
):
    try:
        department = departments.create_department(session, request.name, request.active, admin)
        return DepartmentChangeResponse(
            ok=True,
            message=f"Department '{department.name}' was created.",
            department=DepartmentRead.model_validate(department),
        )
    except DomainError as e:
        raise _http_error(e) from e
    except Exception as e:
        session.rollback()
        logger.error(f"Error creating department {request.name} by {admin}: {str(e)}")
        raise HTTPException(status_code=500, detail="Could not create the department") from e


@app.put("/admin/departments/{department_id}", response_model=DepartmentChangeResponse)
def update_department(
    department_id: int,
    request: DepartmentWrite,
    admin: str = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Toggle a department, or rename it by superseding the old row."""
    try:
        department, message = departments.update_department(
            session, department_id, request.name, request.active, admin
        )
        return DepartmentChangeResponse(ok=True, message=message, department=DepartmentRead.model_validate(department))
    except DomainError as e:
        raise _http_error(e) from e
    except Exception as e:
        session.rollback()
        logger.error(f"Error updating department {department_id} by {admin}: {str(e)}")
        raise HTTPException(status_code=500, detail="Could not update the department") from e


@app.delete("/admin/departments/{department_id}", response_model=MessageResponse)
def delete_department(
    department_id: int,
    admin: str = Depends(require_admin),
    session: Session = Depends(get_session),
):
    try:
        return MessageResponse(ok=True, message=departments.delete_department(session, department_id, admin))
    except DomainError as e:
        raise _http_error(e) from e
    except Exception as e:
        session.rollback()
        logger.error(f"Error deleting department {department_id} by {admin}: {str(e)}")
        raise HTTPException(status_code=500, detail="Could not delete the department") from e


@app.get("/admin/administrators", response_model=list[AdministratorRead])
def get_administrators(
    admin: str = Depends(require_admin),
    session: Session = Depends(get_session),
):
    try:
        return administrators.list_administrators(session)
    except Exception as e:
        logger.error(f"Error loading administrators: {str(e)}")
        raise HTTPException(status_code=500, detail="Could not load administrators") from e


@app.post("/admin/administrators/lookup", response_model=LookupResponse)
def lookup_administrator(
    request: LookupRequest,
    admin: str = Depends(require_admin),
    session: Session = Depends(get_session),
    directory: DirectoryLookup = Depends(get_directory),
    settings: Settings = Depends(get_settings),
):
    """Look up a prospective administrator in the directory."""
    try:
        display_name = administrators.lookup_candidate(session, request.username, directory, settings.domain_prefix)
        return LookupResponse(
            ok=True, display_name=display_name, message=f"User '{request.username.strip()}' found in the directory."
        )
    except DomainError as e:
        raise _http_error(e) from e
    except Exception as e:
        logger.error(f"Error looking up user {request.username}: {str(e)}")
        raise HTTPException(status_code=500, detail="Could not look up the user") from e


@app.post("/admin/administrators", response_model=AdministratorRead, status_code=201)
def create_administrator(
    request: AdministratorCreate,
    admin: str = Depends(require_admin),
    session: Session = Depends(get_session),
    directory: DirectoryLookup = Depends(get_directory),
    settings: Settings = Depends(get_settings),
):
    try:
        return administrators.create_administrator(
            session,
            login=request.login,
            display_name=request.display_name,
            active=request.active,
            note=request.note,
            actor=admin,
            directory=directory,
            domain=settings.domain_prefix,
        )
    except DomainError as e:
        raise _http_error(e) from e
    except Exception as e:
        session.rollback()
        logger.error(f"Error creating administrator {request.login} by {admin}: {str(e)}")
        raise HTTPException(status_code=500, detail="Could not create the administrator") from e


@app.put("/admin/administrators/{admin_id}", response_model=AdministratorRead)
def update_administrator(
    admin_id: int,
    request: AdministratorUpdate,
    admin: str = Depends(require_admin),
    session: Session = Depends(get_session),
):
    try:
        return administrators.update_administrator(
            session, admin_id, request.login, request.display_name, request.active, request.note, admin
        )
    except DomainError as e:
        raise _http_error(e) from e
    except Exception as e:
        session.rollback()
        logger.error(f"Error updating administrator {admin_id} by {admin}: {str(e)}")
        raise HTTPException(status_code=500, detail="Could not update the administrator") from e


@app.delete("/admin/administrators/{admin_id}", response_model=MessageResponse)
def delete_administrator(
    admin_id: int,
    admin: str = Depends(require_admin),
    session: Session = Depends(get_session),
):
    try:
        return MessageResponse(ok=True, message=administrators.delete_administrator(session, admin_id, admin))
    except DomainError as e:
        raise _http_error(e) from e
    except Exception as e:
        session.rollback()
        logger.error(f"Error deleting administrator {admin_id} by {admin}: {str(e)}")
        raise HTTPException(status_code=500, detail="Could not delete the administrator") from e


@app.post("/admin/mass-rename/preview", response_model=mass_rename.RenamePreview)
def preview_mass_rename(
    request: MassRenameRequest,
    admin: str = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Show which users' registrations a rename would touch."""
    try:
        return mass_rename.preview_rename(session, request.old_name, request.new_name)
    except DomainError as e:
        raise _http_error(e) from e
    except Exception as e:
        logger.error(f"Error previewing mass rename '{request.old_name}' -> '{request.new_name}': {str(e)}")
        raise HTTPException(status_code=500, detail="Could not preview the mass rename") from e


@app.post("/admin/mass-rename/execute", response_model=mass_rename.RenameResult)
def execute_mass_rename(
    request: MassRenameRequest,
    admin: str = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Rewrite the department on every matching registration. Not reversible."""
    logger.info(f"Mass rename '{request.old_name}' -> '{request.new_name}' requested by {admin}")

    try:
        return mass_rename.execute_rename(session, request.old_name, request.new_name, admin)
    except DomainError as e:
        raise _http_error(e) from e
    except Exception as e:
        logger.error(
            f"Error executing mass rename '{request.old_name}' -> '{request.new_name}' by {admin}: {str(e)}"
        )
        raise HTTPException(status_code=500, detail="The mass rename failed; nothing was changed") from e


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
