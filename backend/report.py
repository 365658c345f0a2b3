"""Overview and statistics over registrations.

Everything is computed from the freshly filtered set on each call; nothing
is stored or cached.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo
from enum import Enum
from typing import Callable, Dict, List, Optional

import pytz
from sqlmodel import Session, select

from models import Department, Registration

TOP_USERS = 10
MINUTES_PER_WORKDAY = 480

MONTH_NAMES = [
    "januar", "februar", "marts", "april", "maj", "juni",
    "juli", "august", "september", "oktober", "november", "december",
]
WEEKDAY_NAMES = ["Mandag", "Tirsdag", "Onsdag", "Torsdag", "Fredag", "Lørdag", "Søndag"]


def _user_label(registration: Registration) -> str:
    return registration.display_name or registration.login.split("\\")[-1]


def recorded_utc(registration: Registration) -> datetime:
    """Entry time as an aware UTC datetime; stores without time zone support hand back naive UTC."""
    value = registration.recorded_at
    if value.tzinfo is None:
        return value.replace(tzinfo=pytz.utc)
    return value.astimezone(pytz.utc)


def _local(registration: Registration, tz: tzinfo) -> datetime:
    return recorded_utc(registration).astimezone(tz)


def _day_start(day: date, tz: tzinfo) -> datetime:
    """Local midnight of ``day``, as UTC."""
    return tz.localize(datetime.combine(day, time.min)).astimezone(pytz.utc)


class SortKey(str, Enum):
    date = "date"
    user = "user"
    department = "department"
    duration = "duration"

    @property
    def key(self) -> Callable[[Registration], object]:
        return _SORT_KEYS[self]


_SORT_KEYS: Dict[SortKey, Callable[[Registration], object]] = {
    SortKey.date: recorded_utc,
    SortKey.user: lambda r: (r.display_name or "").lower(),
    SortKey.department: lambda r: r.department.lower(),
    SortKey.duration: lambda r: r.minutes,
}


@dataclass
class ReportFilter:
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    department: Optional[str] = None
    org_unit: Optional[str] = None
    case_number: Optional[str] = None
    user: Optional[str] = None
    tz: tzinfo = pytz.utc  # Zone the dates are given in and results are bucketed by


def fetch_filtered(session: Session, filters: ReportFilter) -> List[Registration]:
    """AND-combine the filters; the case number filter is a substring match."""
    stmt = select(Registration)
    if filters.date_from:
        stmt = stmt.where(Registration.recorded_at >= _day_start(filters.date_from, filters.tz))
    if filters.date_to:
        stmt = stmt.where(Registration.recorded_at < _day_start(filters.date_to + timedelta(days=1), filters.tz))
    if filters.department:
        stmt = stmt.where(Registration.department == filters.department)
    if filters.org_unit:
        stmt = stmt.where(Registration.org_unit == filters.org_unit)
    if filters.user:
        stmt = stmt.where(Registration.display_name == filters.user)

    stmt = stmt.order_by(Registration.recorded_at.desc(), Registration.id.desc())
    registrations = list(session.exec(stmt).all())

    # Python-side so the match is case-sensitive on every backend
    if filters.case_number:
        registrations = [r for r in registrations if r.case_number and filters.case_number in r.case_number]
    return registrations


@dataclass
class Overview:
    registrations: List[Registration]
    total_count: int
    total_minutes: int
    total_hours: float


def list_registrations(
    session: Session,
    filters: ReportFilter,
    sort: SortKey = SortKey.date,
    descending: bool = True,
) -> Overview:
    registrations = sorted(fetch_filtered(session, filters), key=sort.key, reverse=descending)
    total = sum(r.minutes for r in registrations)
    return Overview(
        registrations=registrations,
        total_count=len(registrations),
        total_minutes=total,
        total_hours=round(total / 60, 1),
    )


@dataclass
class UserStat:
    login: str
    display_name: str
    registrations: int
    total_minutes: int
    hours: int
    minutes: int
    departments: int
    latest_activity: datetime


@dataclass
class DepartmentStat:
    name: str
    registrations: int
    total_minutes: int
    hours: int
    minutes: int
    percent: float
    users: int


@dataclass
class MonthStat:
    year: int
    month: int
    label: str
    registrations: int
    total_minutes: int
    hours: int
    users: int


@dataclass
class WeekdayStat:
    weekday: int  # 0 = Monday
    label: str
    registrations: int
    total_minutes: int
    hours: int


@dataclass
class Statistics:
    total_registrations: int = 0
    total_minutes: int = 0
    hours: int = 0
    minutes: int = 0
    total_hours: float = 0.0
    workdays: float = 0.0
    user_count: int = 0
    average_hours_per_user: float = 0.0
    department_count: int = 0
    most_used_department: Optional[str] = None
    first_registration: Optional[datetime] = None
    latest_registration: Optional[datetime] = None
    top_users: List[UserStat] = field(default_factory=list)
    departments: List[DepartmentStat] = field(default_factory=list)
    months: List[MonthStat] = field(default_factory=list)
    weekdays: List[WeekdayStat] = field(default_factory=list)


def top_users(registrations: List[Registration], limit: int = TOP_USERS) -> List[UserStat]:
    groups: Dict[tuple, List[Registration]] = defaultdict(list)
    for registration in registrations:
        groups[(registration.login, registration.display_name)].append(registration)

    stats = []
    for (login, _), items in groups.items():
        total = sum(r.minutes for r in items)
        stats.append(
            UserStat(
                login=login,
                display_name=_user_label(items[0]),
                registrations=len(items),
                total_minutes=total,
                hours=total // 60,
                minutes=total % 60,
                departments=len({r.department for r in items}),
                latest_activity=max(recorded_utc(r) for r in items),
            )
        )
    stats.sort(key=lambda s: s.total_minutes, reverse=True)
    return stats[:limit]


def department_stats(registrations: List[Registration], total_minutes: int) -> List[DepartmentStat]:
    """Per-department totals with their share of ``total_minutes``; empty when the total is zero."""
    if total_minutes <= 0:
        return []

    groups: Dict[str, List[Registration]] = defaultdict(list)
    for registration in registrations:
        groups[registration.department].append(registration)

    stats = []
    for name, items in groups.items():
        minutes = sum(r.minutes for r in items)
        stats.append(
            DepartmentStat(
                name=name,
                registrations=len(items),
                total_minutes=minutes,
                hours=minutes // 60,
                minutes=minutes % 60,
                percent=round(minutes / total_minutes * 100, 1),
                users=len({r.login for r in items}),
            )
        )
    stats.sort(key=lambda s: s.total_minutes, reverse=True)
    return stats


def month_stats(registrations: List[Registration], tz: tzinfo = pytz.utc) -> List[MonthStat]:
    groups: Dict[tuple, List[Registration]] = defaultdict(list)
    for registration in registrations:
        local = _local(registration, tz)
        groups[(local.year, local.month)].append(registration)

    stats = []
    for (year, month), items in sorted(groups.items()):
        minutes = sum(r.minutes for r in items)
        stats.append(
            MonthStat(
                year=year,
                month=month,
                label=f"{MONTH_NAMES[month - 1]} {year}",
                registrations=len(items),
                total_minutes=minutes,
                hours=minutes // 60,
                users=len({r.login for r in items}),
            )
        )
    return stats


def weekday_stats(registrations: List[Registration], tz: tzinfo = pytz.utc) -> List[WeekdayStat]:
    """Seven buckets, Monday first, including empty days."""
    counts = [0] * 7
    minutes = [0] * 7
    for registration in registrations:
        day = _local(registration, tz).weekday()
        counts[day] += 1
        minutes[day] += registration.minutes

    return [
        WeekdayStat(weekday=day, label=WEEKDAY_NAMES[day], registrations=counts[day],
                    total_minutes=minutes[day], hours=minutes[day] // 60)
        for day in range(7)
    ]


def build_statistics(session: Session, filters: ReportFilter) -> Statistics:
    registrations = fetch_filtered(session, filters)
    stats = Statistics(weekdays=weekday_stats(registrations, filters.tz))
    if not registrations:
        return stats

    total = sum(r.minutes for r in registrations)
    users = len({r.login for r in registrations})

    stats.total_registrations = len(registrations)
    stats.total_minutes = total
    stats.hours = total // 60
    stats.minutes = total % 60
    stats.total_hours = round(total / 60, 1)
    stats.workdays = round(total / MINUTES_PER_WORKDAY, 2)
    stats.user_count = users
    stats.average_hours_per_user = round(total / users / 60, 1) if users else 0.0
    stats.first_registration = min(recorded_utc(r) for r in registrations)
    stats.latest_registration = max(recorded_utc(r) for r in registrations)
    stats.top_users = top_users(registrations)
    stats.departments = department_stats(registrations, total)
    stats.department_count = len(stats.departments)
    stats.most_used_department = stats.departments[0].name if stats.departments else None
    stats.months = month_stats(registrations, filters.tz)
    return stats


@dataclass
class FilterOptions:
    departments: List[str]
    users: List[str]
    org_units: List[str]
    case_numbers: List[str]


def _distinct(session: Session, column) -> List[str]:
    values = session.exec(select(column).where(column.is_not(None)).where(column != "").distinct()).all()
    return sorted(values)


def filter_options(session: Session) -> FilterOptions:
    """Drop-down values; departments fall back to the names in use when the master list is empty."""
    departments = list(
        session.exec(select(Department.name).where(Department.active == True).order_by(Department.name)).all()  # noqa: E712
    )
    if not departments:
        departments = _distinct(session, Registration.department)
    return FilterOptions(
        departments=departments,
        users=_distinct(session, Registration.display_name),
        org_units=_distinct(session, Registration.org_unit),
        case_numbers=_distinct(session, Registration.case_number),
    )
