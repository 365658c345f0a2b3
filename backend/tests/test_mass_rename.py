import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from conftest import ADMIN, FALLBACK_ADMIN, OTHER_USER, USER, headers
from departments import create_department
from errors import ValidationError
from mass_rename import execute_rename, preview_rename
from models import Department, Registration


@pytest.fixture
def a_and_b(test_session, add_registration):
    """Department A with three registrations by Jane and two by Adam."""
    create_department(test_session, "A", actor=ADMIN)
    for _ in range(3):
        add_registration(department="A")
    for _ in range(2):
        add_registration(department="A", login=OTHER_USER, display_name="Adam Smith", org_unit="Skoleafdelingen")
    add_registration(department="Other")


def _departments(session):
    return {d.name: d.active for d in session.exec(select(Department)).all()}


def _count(session, department):
    return len(session.exec(select(Registration).where(Registration.department == department)).all())


def test_preview_groups_by_user(test_session, a_and_b):
    preview = preview_rename(test_session, "A", "B")

    assert preview.old_name == "A"
    assert preview.new_name == "B"
    assert preview.affected_count == 5
    assert [(u.name, u.count) for u in preview.affected_users] == [("Adam Smith", 2), ("Jane Doe", 3)]
    # Preview changes nothing
    assert _count(test_session, "A") == 5


def test_execute_moves_registrations_and_master(test_session, a_and_b):
    result = execute_rename(test_session, "A", "B", actor=ADMIN)

    assert result.changed_count == 5
    assert "5 registrations" in result.message
    assert _count(test_session, "A") == 0
    assert _count(test_session, "B") == 5
    assert _count(test_session, "Other") == 1
    assert _departments(test_session) == {"A": False, "B": True}

    with pytest.raises(ValidationError) as excinfo:
        preview_rename(test_session, "A", "B")
    assert "Nothing to change" in str(excinfo.value)


def test_execute_reactivates_existing_target(test_session, a_and_b):
    create_department(test_session, "Bee", active=False, actor=ADMIN)

    result = execute_rename(test_session, "A", "BEE", actor=ADMIN)

    assert result.new_name == "Bee"
    assert _count(test_session, "Bee") == 5
    assert _departments(test_session) == {"A": False, "Bee": True}


def test_execute_without_old_master_row(test_session, add_registration):
    """Registrations may carry names that were never in the master list."""
    add_registration(department="Legacy")

    result = execute_rename(test_session, "Legacy", "IT-afdelingen", actor=ADMIN)

    assert result.changed_count == 1
    assert _departments(test_session) == {"IT-afdelingen": True}


def test_old_name_match_is_exact(test_session, add_registration):
    add_registration(department="a")

    with pytest.raises(ValidationError):
        execute_rename(test_session, "A", "B", actor=ADMIN)
    assert _count(test_session, "a") == 1


@pytest.mark.parametrize(
    "old_name, new_name",
    [
        ("A", "a"),
        ("A", "A"),
        ("", "B"),
        ("A", "   "),
    ],
)
def test_invalid_names_are_rejected(test_session, a_and_b, old_name, new_name):
    with pytest.raises(ValidationError):
        preview_rename(test_session, old_name, new_name)
    with pytest.raises(ValidationError):
        execute_rename(test_session, old_name, new_name, actor=ADMIN)
    assert _count(test_session, "A") == 5


def test_failed_commit_changes_nothing(test_session, a_and_b, monkeypatch):
    create_department(test_session, "B", active=False, actor=ADMIN)

    def failing_commit():
        test_session.flush()
        raise OperationalError("COMMIT", {}, Exception("connection lost"))

    monkeypatch.setattr(test_session, "commit", failing_commit)
    with pytest.raises(OperationalError):
        execute_rename(test_session, "A", "B", actor=ADMIN)
    monkeypatch.undo()

    assert _count(test_session, "B") == 0
    assert _count(test_session, "A") == 5
    assert _departments(test_session) == {"A": True, "B": False}


def test_mass_rename_endpoints(client, admin_row, a_and_b):
    preview = client.post("/admin/mass-rename/preview", json={"old_name": "A", "new_name": "B"}, headers=headers(ADMIN))
    assert preview.status_code == 200
    data = preview.json()
    assert data["affected_count"] == 5
    assert data["affected_users"] == [{"name": "Adam Smith", "count": 2}, {"name": "Jane Doe", "count": 3}]

    executed = client.post(
        "/admin/mass-rename/execute", json={"old_name": "A", "new_name": "B"}, headers=headers(ADMIN)
    )
    assert executed.status_code == 200
    assert executed.json()["changed_count"] == 5

    again = client.post("/admin/mass-rename/execute", json={"old_name": "A", "new_name": "B"}, headers=headers(ADMIN))
    assert again.status_code == 400
    assert "Nothing to change" in again.json()["detail"]

    same = client.post("/admin/mass-rename/preview", json={"old_name": "B", "new_name": "b"}, headers=headers(ADMIN))
    assert same.status_code == 400

    mine = client.get("/registrations", headers=headers(USER)).json()
    assert {r["department"] for r in mine} == {"B", "Other"}


def test_store_failure_returns_generic_error(client, test_session, a_and_b, monkeypatch):
    """Driver errors are logged, not returned, and the rename leaves no trace."""

    def failing_commit():
        test_session.flush()
        raise OperationalError("COMMIT", {}, Exception("server closed connection host=db1 password=hunter2"))

    monkeypatch.setattr(test_session, "commit", failing_commit)
    response = client.post(
        "/admin/mass-rename/execute", json={"old_name": "A", "new_name": "B"}, headers=headers(FALLBACK_ADMIN)
    )
    monkeypatch.undo()

    assert response.status_code == 500
    assert response.json() == {"detail": "The mass rename failed; nothing was changed"}
    assert "hunter2" not in response.text
    assert "db1" not in response.text
    assert _count(test_session, "A") == 5
    assert _count(test_session, "B") == 0
    assert _departments(test_session) == {"A": True}
