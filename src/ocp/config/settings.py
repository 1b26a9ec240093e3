"""Configuration management using Pydantic Settings."""

from pathlib import Path
from typing import List
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_MANIFEST = [
    "/",
    "/index.html",
    "/css/style.css",
    "/js/app.js",
    "/js/firebase-config.js",
    "/manifest.json",
    "/images/icon-192.png",
    "/images/icon-512.png",
]


class Settings(BaseSettings):
    """Proxy settings loaded from ``OCP_*`` environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_prefix="OCP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Cache generation. Change the tag whenever the manifest or assets change.
    generation_tag: str = Field("btone-cache-v1", min_length=1)
    manifest: List[str] = Field(default_factory=lambda: list(DEFAULT_MANIFEST))

    # Application origin the manifest paths are resolved against
    app_origin: str = Field("http://localhost:8080")
    root_path: str = Field("/")
    root_document: str = Field("/index.html", description="Shell served to offline navigations")

    # Requests whose origin contains any of these substrings are never intercepted
    excluded_origins: List[str] = Field(default_factory=lambda: ["firebase", "googleapis", "gstatic"])

    # Lifecycle
    skip_waiting: bool = True

    # Notifications
    notification_title: str = "BTONE"
    notification_body: str = "New notification"
    notification_icon: str = "/images/icon-192.png"
    notification_badge: str = "/images/icon-72.png"
    notification_vibrate: List[int] = Field(default_factory=lambda: [100, 50, 100])

    # Network
    request_timeout: float = Field(30.0, gt=0)
    precache_attempts: int = Field(3, ge=1, le=10)
    user_agent: str = "OfflineCacheProxy/0.1.0"

    # Storage
    cache_dir: Path = Field(Path(".cache"))
    cache_backend: str = Field("sqlite", pattern="^(sqlite|memory)$")

    # Logging
    log_level: str = Field("INFO")
    log_format: str = Field("json", pattern="^(json|text)$")

    @field_validator("manifest")
    @classmethod
    def _check_manifest(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("manifest must list at least one resource")
        for path in v:
            if not path.startswith("/"):
                raise ValueError(f"manifest entries must be root-relative: {path!r}")
        return v

    @field_validator("app_origin")
    @classmethod
    def _strip_origin(cls, v: str) -> str:
        return v.rstrip("/")


# Instantiate global settings
settings = Settings()
