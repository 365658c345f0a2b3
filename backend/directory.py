"""Directory (Active Directory) lookup capability.

The service never talks to the directory itself. Whatever sits behind
``DirectoryLookup`` may be missing or failing; ``resolve_user`` degrades to
the bare username and an "Unknown" org unit in that case.
"""
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

UNKNOWN_ORG_UNIT = "Unknown"


class DirectoryLookup(Protocol):
    def lookup_display_name(self, identity: str) -> str | None: ...

    def lookup_org_unit(self, identity: str) -> str | None: ...


class NullDirectory:
    """No directory configured: nothing is ever found."""

    def lookup_display_name(self, identity: str) -> str | None:
        return None

    def lookup_org_unit(self, identity: str) -> str | None:
        return None


class StaticDirectory:
    """Directory backed by a mapping of username -> {display_name, org_unit}.

    Keys are matched on the bare username, case-insensitively.
    """

    def __init__(self, entries: dict[str, dict[str, str]]):
        self._entries = {strip_domain(k).lower(): v for k, v in entries.items()}

    @classmethod
    def from_file(cls, path: str) -> "StaticDirectory":
        with Path(path).open(encoding="utf-8") as fh:
            return cls(json.load(fh))

    def _entry(self, identity: str) -> dict[str, str]:
        return self._entries.get(strip_domain(identity).lower(), {})

    def lookup_display_name(self, identity: str) -> str | None:
        return self._entry(identity).get("display_name")

    def lookup_org_unit(self, identity: str) -> str | None:
        return self._entry(identity).get("org_unit")


@dataclass(frozen=True)
class UserInfo:
    login: str
    username: str
    display_name: str
    org_unit: str


def strip_domain(identity: str) -> str:
    """IBK\\jdoe -> jdoe"""
    return identity.split("\\", 1)[1] if "\\" in identity else identity


def resolve_user(directory: DirectoryLookup | None, identity: str) -> UserInfo:
    """Look up display data for a login, falling back to the raw username."""
    username = strip_domain(identity)
    display_name = None
    org_unit = None

    if directory is not None:
        try:
            display_name = directory.lookup_display_name(username)
            org_unit = directory.lookup_org_unit(username)
        except Exception as e:
            logger.warning(f"Directory lookup failed for {identity}: {e}")
            display_name = None
            org_unit = None

    return UserInfo(
        login=identity,
        username=username,
        display_name=display_name or username,
        org_unit=org_unit or UNKNOWN_ORG_UNIT,
    )


def load_directory(directory_file: str | None) -> DirectoryLookup:
    """Build the configured directory; a broken file means no directory."""
    if not directory_file:
        return NullDirectory()
    try:
        return StaticDirectory.from_file(directory_file)
    except (OSError, ValueError) as e:
        logger.warning(f"Could not load directory file {directory_file}: {e}")
        return NullDirectory()
