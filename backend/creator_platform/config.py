from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application runtime configuration."""

    database_url: str = Field(
        default=f"sqlite:///{(Path(__file__).resolve().parents[2] / 'data' / 'creator_platform.db')}"
    )
    api_prefix: str = ""
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    frontend_url: str = Field(default="http://localhost:5173")
    backend_url: str = Field(default="http://localhost:3000")
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:5173"])

    jwt_secret_key: str = Field(default="change-me")
    access_token_expire_minutes: int = Field(default=60 * 24)
    refresh_token_expire_days: int = Field(default=7)
    refresh_token_rotate_days: int = Field(default=2)
    email_verification_expire_minutes: int = Field(default=10)
    reset_token_expire_minutes: int = Field(default=60)
    cookie_secure: bool = Field(default=True)

    mail_host: str = Field(default="localhost")
    mail_port: int = Field(default=587)
    mail_user: str = Field(default="")
    mail_password: str = Field(default="")
    mail_secure: bool = Field(default=False)
    mail_from: str = Field(default="Creator Platform <no-reply@localhost>")

    opp_api_base_url: str = Field(default="https://api-sandbox.onlinebetaalplatform.nl/v1")
    opp_api_key: str = Field(default="")
    opp_timeout_seconds: float = Field(default=30.0)

    spaces_key: str = Field(default="")
    spaces_secret: str = Field(default="")
    spaces_bucket: str = Field(default="creator-platform")
    spaces_region: str = Field(default="ams3")
    spaces_endpoint: str = Field(default="https://ams3.digitaloceanspaces.com")

    max_image_upload_mb: int = Field(default=5)
    max_video_upload_mb: int = Field(default=100)

    model_config = SettingsConfigDict(env_file=".env", env_prefix="CREATOR_PLATFORM_")

    @property
    def public_api_url(self) -> str:
        """Externally reachable base of the routers, including ``api_prefix``."""
        prefix = self.api_prefix.strip("/")
        base = self.backend_url.rstrip("/")
        return f"{base}/{prefix}" if prefix else base

    @property
    def opp_notify_url(self) -> str:
        return f"{self.public_api_url}/creator/onboard/notify"

    @property
    def opp_return_url(self) -> str:
        return f"{self.public_api_url}/creator/onboard/return"

    @property
    def allowed_origins(self) -> List[str]:
        origins = [self.frontend_url, *self.cors_origins]
        return list(dict.fromkeys(origin.rstrip("/") for origin in origins if origin))


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings()


class PaginationParams(BaseModel):
    """Common pagination parameters."""

    limit: int = Field(default=50, ge=1, le=500)
    offset: int = Field(default=0, ge=0)
