import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def _make_database_url() -> str:
    """Construct a database URL from the DB_* environment variables.

    When CLOUDSQL_INSTANCE_CONNECTION_NAME is set the connection goes
    through the Cloud SQL Unix socket; otherwise it falls back to TCP
    using DB_HOST and DB_PORT.
    """
    user = os.getenv("DB_USER", "postgres")
    password = os.getenv("DB_PASSWORD", "")
    db_name = os.getenv("DB_NAME", "postgres")
    instance_connection_name = os.getenv("CLOUDSQL_INSTANCE_CONNECTION_NAME")
    if instance_connection_name:
        return (
            f"postgresql+asyncpg://{user}:{password}@/{db_name}?host=/cloudsql/{instance_connection_name}"
        )
    host = os.getenv("DB_HOST", "127.0.0.1")
    port = os.getenv("DB_PORT", "5432")
    return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{db_name}"


class Settings(BaseSettings):
    """Global configuration for the Serenity backend."""

    database_url: str = Field(default_factory=_make_database_url)
    create_tables: bool = True
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="SERENITY_", extra="ignore")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unsupported log level: {value}")
        return level


settings = Settings()  # type: ignore[call-arg]
