from datetime import UTC, date, datetime

from sqlalchemy import Index, func
from sqlmodel import Field, SQLModel


class Registration(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(UTC), index=True)  # Entry date, UTC
    minutes: int
    department: str = Field(max_length=100, index=True)  # Copy of a master name, not a foreign key
    login: str = Field(max_length=50, index=True)  # Domain-qualified login, e.g. IBK\jdoe
    display_name: str | None = Field(default=None, max_length=100)
    org_unit: str | None = Field(default=None, max_length=100)
    case_number: str | None = Field(default=None, max_length=60)
    notes: str | None = Field(default=None, max_length=1000)
    performed_on: date | None = Field(default=None)  # Day the work was done
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class Department(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(max_length=100)
    active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime | None = Field(default=None)
    created_by: str | None = Field(default=None, max_length=100)
    updated_by: str | None = Field(default=None, max_length=100)


class Administrator(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    login: str = Field(max_length=100)
    display_name: str | None = Field(default=None, max_length=100)
    active: bool = Field(default=True)
    note: str | None = Field(default=None, max_length=200)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime | None = Field(default=None)
    created_by: str | None = Field(default=None, max_length=100)
    updated_by: str | None = Field(default=None, max_length=100)


# Case-insensitive uniqueness lives in the database, not only in the services
Index("uniq_department_name_lower", func.lower(Department.__table__.c.name), unique=True)
Index("uniq_administrator_login_lower", func.lower(Administrator.__table__.c.login), unique=True)
