from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration, read from ``IPGEO_*`` environment variables or a local ``.env`` file."""

    model_config = SettingsConfigDict(env_prefix="IPGEO_", env_file=".env", extra="ignore")

    database_url: str = Field(
        default="sqlite:///./ipgeo.db",
        description="SQLAlchemy database URL for users, tokens and search history.",
    )
    ipinfo_base_url: str = Field(default="https://ipinfo.io", description="Base URL of the geolocation provider.")
    ipinfo_token: str | None = Field(
        default=None,
        description="Optional ipinfo.io access token, sent as the `token` query parameter.",
    )
    lookup_timeout_seconds: float = Field(default=10.0, gt=0)
    token_name: str = Field(default="auth_token", description="Label stored alongside issued access tokens.")


@lru_cache
def get_settings() -> Settings:
    return Settings()
