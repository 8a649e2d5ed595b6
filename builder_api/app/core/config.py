from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env from repo root if present
ENV_PATH = Path(__file__).resolve().parents[3] / ".env"
if ENV_PATH.exists():
    load_dotenv(dotenv_path=ENV_PATH)


class Settings(BaseSettings):
    """Build request service settings (loaded from env).

    Collaborators:
      - Build store: Redis (records hash + package-name index).
      - Icon storage: local directory served at /icons, or an S3 bucket.
      - CI dispatch: GitHub repository_dispatch on `github_repo`.
    """

    # --- service ---
    service_name: str = Field(default="app-builder-api", description="Service name")
    version: str = Field(default="0.1.0", description="Service version")
    environment: str = Field(default="dev", description="Environment name (dev/staging/prod)")
    host: str = Field(default="0.0.0.0", description="API bind host")
    port: int = Field(default=8000, description="API bind port")

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_format: str = Field(default="text", description="text|json")

    # --- Redis / build store ---
    redis_url: str = Field(default="redis://redis:6379/0", description="Redis connection URL")
    build_key_prefix: str = Field(default="builds", description="Key prefix for build records")

    # --- Uploads ---
    max_upload_bytes: int = Field(
        default=5 * 1024 * 1024,
        description="Max request body / icon size in bytes",
    )

    # --- Icon storage ---
    icon_storage_backend: str = Field(default="local", description="local|s3")
    icon_storage_root: Path = Field(
        default=Path("workspace/icons"),
        description="Directory for the local icon backend (served at /icons)",
    )
    public_base_url: str = Field(
        default="http://localhost:8000",
        description="Externally reachable base URL of this service",
    )
    icon_s3_bucket: str = Field(default="app-icons", description="S3 bucket for icons")
    icon_s3_region: str = Field(default="", description="S3 region (optional)")
    icon_s3_endpoint: str = Field(default="", description="S3-compatible endpoint URL (optional)")
    icon_s3_access_key: str = Field(default="", description="S3 access key (optional)")
    icon_s3_secret_key: str = Field(default="", description="S3 secret key (optional)")
    icon_public_base_url: str = Field(
        default="",
        description="Public URL prefix for stored icons; derived from bucket when empty",
    )

    # --- CI dispatch (GitHub) ---
    github_api_url: str = Field(default="https://api.github.com", description="GitHub API base URL")
    github_repo: str = Field(default="", description="owner/name of the build pipeline repo")
    github_token: str = Field(default="", description="Token allowed to create repository dispatches")
    dispatch_event_type: str = Field(default="build-app", description="repository_dispatch event_type")
    dispatch_timeout_seconds: float = Field(default=30.0, description="Dispatch HTTP timeout (s)")

    # --- Build defaults ---
    default_primary_color: str = Field(default="#2196F3", description="Fallback primary color")
    estimated_build_time: str = Field(default="5-10 minutes", description="Shown to the requester")

    # pydantic-settings v2 config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ---- Convenience helpers ----
    @property
    def dispatch_url(self) -> str:
        """Return the repository_dispatch endpoint for the configured repo."""
        return f"{self.github_api_url.rstrip('/')}/repos/{self.github_repo}/dispatches"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
