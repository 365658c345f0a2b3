"""Tests for the administrator check and the directory fallback."""
import pytest
from sqlalchemy.exc import OperationalError

from auth import AdminResolver
from conftest import ADMIN, FALLBACK_ADMIN, USER
from directory import NullDirectory, StaticDirectory, load_directory, resolve_user
from models import Administrator


class BrokenSession:
    """Stands in for a session whose database is unreachable."""

    def exec(self, *args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("unable to open database file"))

    def rollback(self):
        pass


class BrokenDirectory:
    def lookup_display_name(self, identity):
        raise ConnectionError("directory unreachable")

    def lookup_org_unit(self, identity):
        raise ConnectionError("directory unreachable")


@pytest.fixture
def resolver():
    return AdminResolver(FALLBACK_ADMIN)


def test_fallback_is_admin_with_empty_table(resolver, test_session):
    assert resolver.is_admin(test_session, FALLBACK_ADMIN) is True
    assert resolver.is_admin(test_session, FALLBACK_ADMIN.upper()) is True


def test_other_identity_is_not_admin_with_empty_table(resolver, test_session):
    assert resolver.is_admin(test_session, USER) is False
    assert resolver.is_admin(test_session, "") is False
    assert resolver.is_admin(test_session, None) is False


def test_active_administrator_matches_case_insensitively(resolver, test_session, admin_row):
    assert resolver.is_admin(test_session, ADMIN) is True
    assert resolver.is_admin(test_session, ADMIN.lower()) is True


def test_inactive_administrator_is_not_admin(resolver, test_session):
    test_session.add(Administrator(login=USER, active=False))
    test_session.commit()

    assert resolver.is_admin(test_session, USER) is False


def test_fallback_stays_admin_when_table_has_other_admins(resolver, test_session, admin_row):
    """The fallback identity is consulted even when the lookup succeeds."""
    assert resolver.is_admin(test_session, FALLBACK_ADMIN) is True


def test_store_error_downgrades_to_fallback(resolver):
    session = BrokenSession()
    assert resolver.is_admin(session, FALLBACK_ADMIN) is True
    assert resolver.is_admin(session, ADMIN) is False


def test_fallback_identity_is_configurable(test_session):
    resolver = AdminResolver("CORP\\ops")
    assert resolver.is_admin(test_session, "corp\\OPS") is True
    assert resolver.is_admin(test_session, FALLBACK_ADMIN) is False


def test_resolve_user_from_directory():
    directory = StaticDirectory({"jdoe": {"display_name": "Jane Doe", "org_unit": "IT-afdelingen"}})

    user = resolve_user(directory, "IBK\\JDoe")
    assert user.login == "IBK\\JDoe"
    assert user.username == "JDoe"
    assert user.display_name == "Jane Doe"
    assert user.org_unit == "IT-afdelingen"


@pytest.mark.parametrize("directory", [None, NullDirectory(), BrokenDirectory()])
def test_resolve_user_degrades_without_directory(directory):
    user = resolve_user(directory, "IBK\\jdoe")
    assert user.display_name == "jdoe"
    assert user.org_unit == "Unknown"


def test_load_directory_from_file(tmp_path):
    path = tmp_path / "directory.json"
    path.write_text('{"IBK\\\\jdoe": {"display_name": "Jane Doe"}}', encoding="utf-8")

    directory = load_directory(str(path))
    assert directory.lookup_display_name("jdoe") == "Jane Doe"
    assert directory.lookup_org_unit("jdoe") is None


def test_load_directory_missing_file_means_no_directory(tmp_path):
    directory = load_directory(str(tmp_path / "missing.json"))
    assert isinstance(directory, NullDirectory)
