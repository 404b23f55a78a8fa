"""Bootstrap settings via pydantic-settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL


class Settings(BaseSettings):
    """Target database configuration loaded from environment variables with DB_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    # --- Target database ---
    name: str = "myapp"
    user: str = "appuser"
    port: int = 5000
    host: str = "localhost"

    # --- Role the DDL runs as ---
    admin_user: str = "postgres"
    admin_password: str = ""

    # --- Logging ---
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_format: str = Field(default="console", validation_alias="LOG_FORMAT")

    @property
    def database_url(self) -> str:
        """asyncpg URL for the privileged connection to the target database."""
        url = URL.create(
            "postgresql+asyncpg",
            username=self.admin_user,
            password=self.admin_password or None,
            host=self.host,
            port=self.port,
            database=self.name,
        )
        return url.render_as_string(hide_password=False)


@lru_cache
def get_settings() -> Settings:
    """Get cached bootstrap settings."""
    return Settings()
