"""Application settings read from the environment."""
import os
from dataclasses import dataclass
from datetime import tzinfo
from functools import lru_cache

import pytz


@dataclass(frozen=True)
class Settings:
    fallback_admin: str = "IBK\\admin"
    domain_prefix: str = "IBK"
    principal_header: str = "X-Remote-User"
    directory_file: str | None = None
    log_level: str = "INFO"
    timezone: str = "Europe/Copenhagen"  # Report dates and month/weekday buckets

    @property
    def tz(self) -> tzinfo:
        return pytz.timezone(self.timezone)


@lru_cache
def get_settings() -> Settings:
    """Build settings once per process. Tests override this as a dependency."""
    return Settings(
        fallback_admin=os.getenv("FALLBACK_ADMIN", "IBK\\admin").strip(),
        domain_prefix=os.getenv("DOMAIN_PREFIX", "IBK").strip(),
        principal_header=os.getenv("PRINCIPAL_HEADER", "X-Remote-User"),
        directory_file=os.getenv("DIRECTORY_FILE") or None,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        timezone=os.getenv("TIMEZONE", "Europe/Copenhagen"),
    )
