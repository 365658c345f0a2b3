from datetime import UTC, date, datetime

import pytest

from conftest import ADMIN, OTHER_USER, USER
from errors import ForbiddenError, NotFoundError, ValidationError
from models import Registration
from registrations import (
    create_registration,
    delete_registration,
    list_for_owner,
    owner_summary,
    update_registration,
)
from report import recorded_utc


def _create(session, minutes=30, **kwargs):
    return create_registration(
        session,
        owner=kwargs.pop("owner", USER),
        display_name="Jane Doe",
        org_unit="IT-afdelingen",
        minutes=minutes,
        department=kwargs.pop("department", "IT-afdelingen"),
        **kwargs,
    )


@pytest.mark.parametrize("minutes", [0, -1, -60])
def test_non_positive_minutes_are_rejected(test_session, minutes):
    with pytest.raises(ValidationError):
        _create(test_session, minutes=minutes)


def test_blank_department_is_rejected(test_session):
    with pytest.raises(ValidationError):
        _create(test_session, department="   ")


def test_create_defaults_performed_on_to_today(test_session):
    registration = _create(test_session, notes="  ", case_number=" 24/77 ")

    assert registration.id is not None
    assert registration.performed_on == date.today()
    assert registration.recorded_at.date() == datetime.now(UTC).date()
    assert registration.notes is None
    assert registration.case_number == "24/77"


def test_create_keeps_given_performed_on(test_session):
    registration = _create(test_session, performed_on=date(2024, 3, 1))
    assert registration.performed_on == date(2024, 3, 1)


def test_timestamps_default_to_aware_utc():
    registration = Registration(minutes=5, department="Fælles", login=USER)
    assert registration.recorded_at.utcoffset().total_seconds() == 0
    assert registration.created_at.utcoffset().total_seconds() == 0


def test_entry_time_is_recorded_in_utc(test_session):
    before = datetime.now(UTC).replace(microsecond=0)
    registration = _create(test_session)

    assert before <= recorded_utc(registration) <= datetime.now(UTC)
    assert list_for_owner(test_session, USER) == [registration]


def test_list_for_owner_newest_first(test_session, add_registration):
    older = add_registration(recorded_at=datetime(2024, 1, 10, 9, 0, tzinfo=UTC))
    newer = add_registration(recorded_at=datetime(2024, 2, 10, 9, 0, tzinfo=UTC))
    add_registration(login=OTHER_USER, recorded_at=datetime(2024, 3, 10, 9, 0, tzinfo=UTC))

    assert [r.id for r in list_for_owner(test_session, USER)] == [newer.id, older.id]


def test_owner_summary_splits_hours(test_session, add_registration):
    for minutes in (60, 45, 30, 20, 10, 5):
        add_registration(minutes=minutes)

    summary = owner_summary(test_session, USER)
    assert summary.total_minutes == 170
    assert summary.hours == 2
    assert summary.minutes == 50
    assert len(summary.recent) == 5


def test_update_by_owner_has_no_audit(test_session, add_registration):
    registration = add_registration()

    result = update_registration(test_session, registration.id, USER, False, {"department": "Fælles"})
    assert result.audit is None
    assert registration.department == "Fælles"


def test_update_rejects_unknown_fields(test_session, add_registration):
    registration = add_registration()

    with pytest.raises(ValidationError):
        update_registration(test_session, registration.id, USER, False, {"login": OTHER_USER})


def test_update_by_stranger_is_forbidden(test_session, add_registration):
    registration = add_registration(minutes=30)

    with pytest.raises(ForbiddenError):
        update_registration(test_session, registration.id, OTHER_USER, False, {"minutes": 1})
    test_session.refresh(registration)
    assert registration.minutes == 30


def test_update_by_admin_records_previous_values(test_session, add_registration):
    registration = add_registration(minutes=30, case_number="A-1")

    result = update_registration(test_session, registration.id, ADMIN, True, {"minutes": 90})
    assert "30 minutes" in result.audit
    assert "A-1" in result.audit
    assert registration.minutes == 90


def test_update_missing_registration(test_session):
    with pytest.raises(NotFoundError):
        update_registration(test_session, 12345, USER, False, {"minutes": 5})


def test_delete_rules(test_session, add_registration):
    registration = add_registration()

    with pytest.raises(ForbiddenError):
        delete_registration(test_session, registration.id, OTHER_USER, False)

    result = delete_registration(test_session, registration.id, ADMIN, True)
    assert result.audit is not None
    assert list_for_owner(test_session, USER) == []

    with pytest.raises(NotFoundError):
        delete_registration(test_session, registration.id, USER, False)
