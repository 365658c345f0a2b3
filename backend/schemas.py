from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator
from sqlmodel import SQLModel


class RegistrationCreate(BaseModel):
    minutes: int
    department: str
    notes: str | None = Field(default=None, max_length=1000)
    case_number: str | None = Field(default=None, max_length=60)
    performed_on: date | None = None

    @field_validator("minutes")
    @classmethod
    def validate_minutes(cls, v):
        if v <= 0:
            raise ValueError("Minutes must be greater than 0")
        return v

    @field_validator("department")
    @classmethod
    def validate_department(cls, v):
        if not v or not v.strip():
            raise ValueError("A department must be selected")
        return v.strip()


class RegistrationUpdate(BaseModel):
    minutes: int | None = None
    department: str | None = None
    notes: str | None = Field(default=None, max_length=1000)
    case_number: str | None = Field(default=None, max_length=60)
    performed_on: date | None = None


class RegistrationRead(SQLModel):
    id: int
    recorded_at: datetime
    minutes: int
    department: str
    login: str
    display_name: str | None = None
    org_unit: str | None = None
    case_number: str | None = None
    notes: str | None = None
    performed_on: date | None = None
    created_at: datetime


class ChangeResponse(BaseModel):
    ok: bool
    id: int
    message: str
    audit: str | None = None


class MeResponse(BaseModel):
    login: str
    username: str
    display_name: str
    org_unit: str
    is_admin: bool
    total_minutes: int
    hours: int
    minutes: int
    recent: list[RegistrationRead]


class OverviewResponse(BaseModel):
    registrations: list[RegistrationRead]
    total_count: int
    total_minutes: int
    total_hours: float


class AdminStatusResponse(BaseModel):
    is_admin: bool


class DepartmentWrite(BaseModel):
    name: str
    active: bool = True


class DepartmentRead(SQLModel):
    id: int
    name: str
    active: bool
    created_at: datetime
    updated_at: datetime | None = None
    created_by: str | None = None
    updated_by: str | None = None


class DepartmentListResponse(BaseModel):
    departments: list[DepartmentRead]
    usage: dict[str, int]


class DepartmentChangeResponse(BaseModel):
    ok: bool
    message: str
    department: DepartmentRead | None = None


class AdministratorCreate(BaseModel):
    login: str
    display_name: str | None = None
    active: bool = True
    note: str | None = Field(default=None, max_length=200)


class AdministratorUpdate(BaseModel):
    login: str
    display_name: str | None = None
    active: bool
    note: str | None = Field(default=None, max_length=200)


class AdministratorRead(SQLModel):
    id: int
    login: str
    display_name: str | None = None
    active: bool
    note: str | None = None
    created_at: datetime
    updated_at: datetime | None = None
    created_by: str | None = None
    updated_by: str | None = None


class LookupRequest(BaseModel):
    username: str


class LookupResponse(BaseModel):
    ok: bool
    display_name: str
    message: str


class MessageResponse(BaseModel):
    ok: bool
    message: str


class MassRenameRequest(BaseModel):
    old_name: str
    new_name: str
