"""
Configuration management.
"""

import os
from dataclasses import dataclass, field


def _env_flag(name: str, default: str = "false") -> bool:
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
    debug: bool = field(default_factory=lambda: _env_flag("DEBUG"))
    production: bool = field(
        default_factory=lambda: os.getenv("RAILWAY_ENVIRONMENT") is not None or _env_flag("PRODUCTION")
    )
    allowed_origins: list = field(
        default_factory=lambda: [o for o in os.getenv("ALLOWED_ORIGINS", "").split(",") if o]
    )

    # Onboarding API (client side)
    api_url: str = field(
        default_factory=lambda: os.getenv("ONBOARDING_API_URL", "http://localhost:8000")
    )
    request_timeout: int = field(default_factory=lambda: int(os.getenv("REQUEST_TIMEOUT", "30")))

    # Autosave
    debounce_seconds: float = field(
        default_factory=lambda: float(os.getenv("AUTOSAVE_DEBOUNCE_SEC", "5"))
    )
    min_seconds_between_saves: float = field(
        default_factory=lambda: float(os.getenv("AUTOSAVE_MIN_INTERVAL_SEC", "2"))
    )
    periodic_save_seconds: float = field(
        default_factory=lambda: float(os.getenv("AUTOSAVE_PERIODIC_SEC", "35"))
    )
    max_batch_size: int = field(default_factory=lambda: int(os.getenv("AUTOSAVE_MAX_BATCH", "5")))
    validation_blocks_navigation: bool = field(
        default_factory=lambda: _env_flag("VALIDATION_BLOCKS_NAVIGATION")
    )

    # Session load
    initial_load_max_retries: int = field(
        default_factory=lambda: int(os.getenv("INITIAL_LOAD_MAX_RETRIES", "3"))
    )

    # Local backup
    backup_max_age_hours: float = field(
        default_factory=lambda: float(os.getenv("BACKUP_MAX_AGE_HOURS", "24"))
    )
    backup_sweep_days: float = field(
        default_factory=lambda: float(os.getenv("BACKUP_SWEEP_DAYS", "7"))
    )

    # Data
    data_dir: str = field(default_factory=lambda: os.getenv("DATA_DIR", "./data"))

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment."""
        return cls()

    @property
    def debug_enabled(self) -> bool:
        """Debug is never enabled in production."""
        return self.debug and not self.production

    def cors_origins(self) -> list:
        """Configured origins, or localhost outside production."""
        if self.allowed_origins or self.production:
            return list(self.allowed_origins)
        return [f"http://localhost:{self.port}", f"http://127.0.0.1:{self.port}"]

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return {
            "host": self.host,
            "port": self.port,
            "debug": self.debug,
            "production": self.production,
            "allowed_origins": list(self.allowed_origins),
            "api_url": self.api_url,
            "request_timeout": self.request_timeout,
            "debounce_seconds": self.debounce_seconds,
            "min_seconds_between_saves": self.min_seconds_between_saves,
            "periodic_save_seconds": self.periodic_save_seconds,
            "max_batch_size": self.max_batch_size,
            "validation_blocks_navigation": self.validation_blocks_navigation,
            "initial_load_max_retries": self.initial_load_max_retries,
            "backup_max_age_hours": self.backup_max_age_hours,
            "backup_sweep_days": self.backup_sweep_days,
            "data_dir": self.data_dir,
        }
