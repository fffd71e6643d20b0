from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import os


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _as_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _normalize_database_url(value: str | None, require_ssl: bool = False) -> str:
    raw = (value or "").strip()
    # Some dashboards accidentally store quoted values.
    if (raw.startswith('"') and raw.endswith('"')) or (raw.startswith("'") and raw.endswith("'")):
        raw = raw[1:-1].strip()

    if "://" not in raw:
        return raw

    scheme, suffix = raw.split("://", 1)
    scheme = scheme.lower()

    # Force a driver we install.
    if scheme in {
        "postgres",
        "postgresql",
        "postgresql+psycopg",
        "postgresql+asyncpg",
        "postgresql+pg8000",
        "postgresql+psycopg2",
    }:
        url = f"postgresql+psycopg2://{suffix}"
        if require_ssl and "sslmode" not in url:
            separator = "&" if "?" in url else "?"
            url = f"{url}{separator}sslmode=require"
        return url

    return raw


@dataclass(frozen=True)
class Settings:
    database_url: str
    db_pool_size: int
    db_max_overflow: int
    db_pool_timeout: int
    db_pool_recycle: int
    db_connect_timeout: int
    bootstrap_plan: str
    log_level: str

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def db_backend(self) -> str:
        return "sqlite" if self.is_sqlite else "postgres"

    def validate(self) -> None:
        """Raise early when there is nothing to connect to."""
        if not self.database_url:
            raise RuntimeError("DATABASE_URL is required to bootstrap the schema")


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if environ is None else environ
    return Settings(
        database_url=_normalize_database_url(
            env.get("DATABASE_URL"),
            require_ssl=_as_bool(env.get("DB_REQUIRE_SSL"), False),
        ),
        db_pool_size=max(1, _as_int(env.get("DB_POOL_SIZE"), 1)),
        db_max_overflow=max(0, _as_int(env.get("DB_MAX_OVERFLOW"), 0)),
        db_pool_timeout=max(1, _as_int(env.get("DB_POOL_TIMEOUT"), 30)),
        db_pool_recycle=max(60, _as_int(env.get("DB_POOL_RECYCLE"), 1800)),
        db_connect_timeout=max(1, _as_int(env.get("DB_CONNECT_TIMEOUT"), 10)),
        bootstrap_plan=env.get("BOOTSTRAP_PLAN", "organizations").strip().lower() or "organizations",
        log_level=env.get("LOG_LEVEL", "INFO").strip().upper(),
    )
