"""
Runtime configuration for accurate-sync.

``Settings`` is a pydantic-settings model: every field is read from one
environment variable, with the nearest ``.env`` file as a lower-priority
source.  Nothing here falls back to a default credential: each command asks
only for what it needs (``require_signing`` for Accurate calls,
``require_database_url`` for database work) and a missing value is a
``ConfigError`` raised before any network or database call is attempted.
"""

from __future__ import annotations

from typing import Mapping, Optional, Tuple

from dotenv import find_dotenv
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL

from .errors import ConfigError

DEFAULT_ACCURATE_BASE_URL = "https://cday5l.pvt1.accurate.id/accurate/api"
DEFAULT_BACKEND_BASE_URL = "http://localhost:3000"
DEFAULT_HTTP_TIMEOUT = 30.0


class Settings(BaseSettings):
    """Settings for one command run, keyed by environment variable name."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    database_url: Optional[str] = Field(None, validation_alias="DATABASE_URL")
    pg_host: Optional[str] = Field(None, validation_alias="PGHOST")
    pg_port: Optional[int] = Field(None, validation_alias="PGPORT")
    pg_user: Optional[str] = Field(None, validation_alias="PGUSER")
    pg_password: Optional[str] = Field(None, validation_alias="PGPASSWORD")
    pg_database: Optional[str] = Field(None, validation_alias="PGDATABASE")

    accurate_base_url: str = Field(DEFAULT_ACCURATE_BASE_URL, validation_alias="ACCURATE_BASE_URL")
    accurate_client_id: Optional[str] = Field(None, validation_alias="ACCURATE_CLIENT_ID")
    accurate_signature_secret: Optional[str] = Field(None, validation_alias="ACCURATE_SIGNATURE_SECRET")
    accurate_session_id: Optional[str] = Field(None, validation_alias="ACCURATE_SESSION_ID")

    backend_base_url: str = Field(DEFAULT_BACKEND_BASE_URL, validation_alias="BACKEND_BASE_URL")
    http_timeout: float = Field(DEFAULT_HTTP_TIMEOUT, gt=0, validation_alias="ACCURATE_HTTP_TIMEOUT")
    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")

    @field_validator(
        "database_url",
        "pg_host",
        "pg_port",
        "pg_user",
        "pg_password",
        "pg_database",
        "accurate_client_id",
        "accurate_signature_secret",
        "accurate_session_id",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("accurate_base_url", "backend_base_url", "http_timeout", "log_level", mode="before")
    @classmethod
    def _blank_to_default(cls, value, info):
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return cls.model_fields[info.field_name].default
        return value

    @field_validator("accurate_base_url", "backend_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    def require_signing(self) -> Tuple[str, str]:
        """Return ``(client_id, secret)`` or raise if either is unset."""
        if not self.accurate_signature_secret:
            raise ConfigError("ACCURATE_SIGNATURE_SECRET is not set")
        if not self.accurate_client_id:
            raise ConfigError("ACCURATE_CLIENT_ID is not set")
        return self.accurate_client_id, self.accurate_signature_secret

    def require_database_url(self) -> str:
        """Return a SQLAlchemy URL built from DATABASE_URL or the PG* variables.

        Discrete parameters are only used when DATABASE_URL is absent, and
        then all of host, user, password and database must be present.
        """
        if self.database_url:
            return normalize_database_url(self.database_url)
        discrete = {
            "PGHOST": self.pg_host,
            "PGUSER": self.pg_user,
            "PGPASSWORD": self.pg_password,
            "PGDATABASE": self.pg_database,
        }
        if not any(discrete.values()):
            raise ConfigError("DATABASE_URL is not set (or provide PGHOST/PGUSER/PGPASSWORD/PGDATABASE)")
        missing = [name for name, value in discrete.items() if not value]
        if missing:
            raise ConfigError(f"Incomplete database configuration, missing: {', '.join(missing)}")
        url = URL.create(
            "postgresql+psycopg2",
            username=self.pg_user,
            password=self.pg_password,
            host=self.pg_host,
            port=self.pg_port,
            database=self.pg_database,
        )
        return url.render_as_string(hide_password=False)


class _MappingSettings(Settings):
    """Settings taken only from the values passed in, never the process environment."""

    @classmethod
    def settings_customise_sources(cls, settings_cls, init_settings, env_settings, dotenv_settings, file_secret_settings):
        return (init_settings,)


def normalize_database_url(url: str) -> str:
    # libpq-style URLs (as exported by most hosts) -> SQLAlchemy psycopg2 URLs
    if url.startswith("postgres://"):
        return "postgresql+psycopg2://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        return "postgresql+psycopg2://" + url[len("postgresql://"):]
    return url


def _describe(exc: ValidationError) -> str:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    return f"Invalid configuration: {problems}"


def load_settings(env: Optional[Mapping[str, str]] = None, *, use_dotenv: bool = True) -> Settings:
    """Build :class:`Settings` from ``env``, or from the process environment.

    With no ``env`` the nearest ``.env`` file (searching up from the working
    directory) is read as well; variables set in the process win over it.
    Invalid values (a non-numeric ``PGPORT``, say) raise ``ConfigError``.
    """
    try:
        if env is not None:
            return _MappingSettings(**{key.upper(): value for key, value in env.items()})
        env_file = find_dotenv(usecwd=True) if use_dotenv else ""
        return Settings(_env_file=env_file or None)
    except ValidationError as exc:
        raise ConfigError(_describe(exc)) from exc


def mask_secret(value: Optional[str], visible: int = 4) -> str:
    """Show only the first and last few characters of a secret for logs."""
    if not value:
        return "<unset>"
    if len(value) <= visible * 2:
        return "*" * len(value)
    return f"{value[:visible]}...{value[-visible:]}"


__all__ = ["Settings", "load_settings", "normalize_database_url", "mask_secret"]
