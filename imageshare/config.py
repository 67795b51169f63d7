"""Application configuration via environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Literal
from urllib.parse import parse_qsl, urlsplit

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings

# Origin of the React development server; always allowed alongside frontend_url.
DEV_ORIGIN = "http://localhost:5200"

POSTGRES_SCHEMES = ("postgres", "postgresql")
SQLITE_SCHEME = "sqlite"

# sslmode values that never negotiate TLS, or may silently fall back to plaintext.
INSECURE_SSL_MODES = {"disable", "allow", "prefer"}


def dsn_sslmode(dsn: str) -> str | None:
    """The sslmode named in a database URL, if any."""
    for key, value in parse_qsl(urlsplit(dsn).query, keep_blank_values=True):
        if key == "sslmode":
            return value
    return None


class Settings(BaseSettings):
    """ImageShare settings loaded from environment variables."""

    # Required: postgres://..., postgresql://... or sqlite:///path/to.db
    database_url: str

    # Deployment mode; controls how strict TLS and storage checks are
    environment: Literal["development", "production"] = "production"

    # TLS to PostgreSQL
    ssl_verify_cert: bool = True
    ssl_ca_file: Path | None = None

    # CORS (single extra origin, in addition to the local dev server)
    frontend_url: str | None = None

    # HTTP
    api_prefix: str = ""
    host: str = "0.0.0.0"
    port: int = 5002

    # Share policy
    max_upload_size_mb: int = 5
    share_ttl_days: int = 30
    share_cache_max_age: int = 3600

    log_level: str = "INFO"

    model_config = {
        "env_prefix": "IMAGESHARE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("database_url")
    @classmethod
    def _check_database_url(cls, value: str) -> str:
        value = value.strip()
        scheme = urlsplit(value).scheme
        if scheme not in POSTGRES_SCHEMES and scheme != SQLITE_SCHEME:
            raise ValueError(
                f"Unsupported database URL scheme {scheme!r}; "
                "expected postgres://, postgresql:// or sqlite:///"
            )
        if scheme == SQLITE_SCHEME and not value.startswith("sqlite:///"):
            raise ValueError("SQLite URLs must look like sqlite:///path/to/file.db")
        return value

    @field_validator("api_prefix")
    @classmethod
    def _check_api_prefix(cls, value: str) -> str:
        if value and (not value.startswith("/") or value.endswith("/")):
            raise ValueError("api_prefix must be empty or start with '/' and not end with '/'")
        return value

    @field_validator("frontend_url")
    @classmethod
    def _blank_frontend_url(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip().rstrip("/") or None

    @field_validator("max_upload_size_mb", "share_ttl_days", "port")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level {value!r}")
        return value

    @model_validator(mode="after")
    def _check_transport_security(self) -> "Settings":
        if not self.is_production:
            return self

        if self.database_backend == "sqlite":
            raise ValueError(
                "SQLite storage is for development and tests only; "
                "set IMAGESHARE_ENVIRONMENT=development or use PostgreSQL"
            )
        if not self.ssl_verify_cert:
            raise ValueError(
                "ssl_verify_cert=false is only accepted when environment=development"
            )
        mode = self.database_sslmode
        if mode is not None and mode in INSECURE_SSL_MODES:
            raise ValueError(
                f"sslmode={mode} does not guarantee TLS and is refused in production"
            )
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def database_backend(self) -> Literal["postgresql", "sqlite"]:
        scheme = urlsplit(self.database_url).scheme
        return "sqlite" if scheme == SQLITE_SCHEME else "postgresql"

    @property
    def database_sslmode(self) -> str | None:
        """The sslmode already present in the database URL, if any."""
        return dsn_sslmode(self.database_url)

    @property
    def allowed_origins(self) -> list[str]:
        origins = [DEV_ORIGIN]
        if self.frontend_url and self.frontend_url not in origins:
            origins.append(self.frontend_url)
        return origins

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024


@lru_cache
def get_settings() -> Settings:
    """Resolve settings once per process."""
    return Settings()
