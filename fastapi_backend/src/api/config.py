from functools import lru_cache

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_DB_HOST = "localhost"
DEFAULT_DB_NAME = "users_db"
BIND_HOST = "127.0.0.1"
BIND_PORT = 8080

_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class ConfigurationError(RuntimeError):
    """Raised when a required setting is missing or invalid at startup."""


class Settings(BaseSettings):
    """Service settings loaded from environment variables (and a local .env file)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        frozen=True,
    )

    # Required credentials; an empty value counts as missing.
    db_user: str = Field(..., min_length=1, alias="DATABASE_USER")
    db_password: str = Field(..., min_length=1, alias="DATABASE_PASSWORD")

    db_host: str = Field(default=DEFAULT_DB_HOST, alias="DATABASE_HOST")
    db_name: str = Field(default=DEFAULT_DB_NAME, alias="DATABASE_NAME")
    bind_host: str = BIND_HOST
    bind_port: int = BIND_PORT

    pool_acquire_timeout: float = Field(default=30.0, gt=0, alias="DB_POOL_ACQUIRE_TIMEOUT")
    statement_timeout_ms: int = Field(default=30000, ge=0, alias="DB_STATEMENT_TIMEOUT_MS")
    connect_timeout: int = Field(default=10, ge=0, alias="DB_CONNECT_TIMEOUT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"must be one of {', '.join(_LOG_LEVELS)}")
        return level


def _env_name(loc) -> str:
    name = str(loc[0]) if loc else "settings"
    field = Settings.model_fields.get(name)
    if field is not None and field.alias:
        return field.alias
    return name


# PUBLIC_INTERFACE
def load_settings() -> Settings:
    """
    Read settings from the environment (and a .env file, if present).

    Requires DATABASE_USER and DATABASE_PASSWORD; everything else has a default.
    Raises ConfigurationError instead of substituting a value for a missing one.
    """
    try:
        return Settings()
    except ValidationError as exc:
        problems = "; ".join(f"{_env_name(err['loc'])}: {err['msg']}" for err in exc.errors())
        raise ConfigurationError(
            f"Invalid or missing environment configuration ({problems}). "
            "Set it in the environment or in a local .env file."
        ) from exc


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings, loaded on first use."""
    return load_settings()
