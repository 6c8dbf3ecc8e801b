"""
Configuration management.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class Config:
    """
    Application configuration.

    Loads from environment variables with sensible defaults.
    """

    # Server
    host: str = field(default_factory=lambda: os.getenv("HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "8000")))
    debug: bool = field(default_factory=lambda: _env_bool("DEBUG"))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())

    # Lifecycle policy
    allow_owner_edit_after_publish: bool = field(
        default_factory=lambda: _env_bool("ALLOW_OWNER_EDIT_AFTER_PUBLISH")
    )

    # Store
    data_dir: str = field(default_factory=lambda: os.getenv("DATA_DIR", "./data"))
    store_timeout_seconds: float = field(
        default_factory=lambda: float(os.getenv("STORE_TIMEOUT_SECONDS", "5.0"))
    )

    # Listing
    default_page_size: int = field(default_factory=lambda: int(os.getenv("DEFAULT_PAGE_SIZE", "12")))
    max_page_size: int = field(default_factory=lambda: int(os.getenv("MAX_PAGE_SIZE", "100")))

    # Identity
    token_secret: Optional[str] = field(default_factory=lambda: os.getenv("TOKEN_SECRET"))
    token_ttl_hours: int = field(default_factory=lambda: int(os.getenv("TOKEN_TTL_HOURS", "24")))

    # Media host
    media_backend: str = field(default_factory=lambda: os.getenv("MEDIA_BACKEND", "memory"))
    cloudinary_cloud_name: Optional[str] = field(
        default_factory=lambda: os.getenv("CLOUDINARY_CLOUD_NAME")
    )
    cloudinary_api_key: Optional[str] = field(default_factory=lambda: os.getenv("CLOUDINARY_API_KEY"))
    cloudinary_api_secret: Optional[str] = field(
        default_factory=lambda: os.getenv("CLOUDINARY_API_SECRET")
    )
    upload_folder: str = field(default_factory=lambda: os.getenv("UPLOAD_FOLDER", "properties"))
    max_upload_concurrency: int = field(
        default_factory=lambda: min(10, int(os.getenv("MAX_UPLOAD_CONCURRENCY", "4")))
    )
    request_timeout: int = field(default_factory=lambda: int(os.getenv("REQUEST_TIMEOUT", "30")))

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment."""
        return cls()

    @property
    def properties_path(self) -> str:
        return str(Path(self.data_dir) / "properties.json")

    @property
    def users_path(self) -> str:
        return str(Path(self.data_dir) / "users.json")

    def configure_logging(self) -> None:
        """Configure root logging for an entry point."""
        logging.basicConfig(
            level=getattr(logging, self.log_level, logging.INFO),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    def to_dict(self) -> dict:
        """Convert config to dictionary. Secrets are left out."""
        return {
            "host": self.host,
            "port": self.port,
            "debug": self.debug,
            "log_level": self.log_level,
            "allow_owner_edit_after_publish": self.allow_owner_edit_after_publish,
            "data_dir": self.data_dir,
            "store_timeout_seconds": self.store_timeout_seconds,
            "default_page_size": self.default_page_size,
            "max_page_size": self.max_page_size,
            "token_ttl_hours": self.token_ttl_hours,
            "media_backend": self.media_backend,
            "upload_folder": self.upload_folder,
            "max_upload_concurrency": self.max_upload_concurrency,
            "request_timeout": self.request_timeout,
        }
