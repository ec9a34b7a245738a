"""Configuration settings for the generation orchestrator."""

from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
import os

from dotenv import load_dotenv

from models.modes import GenerationMode


@dataclass
class ProviderConfig:
    """Provider gateway configuration.

    Every provider is reached through the gateway at ``base_url``; each mode
    descriptor supplies its own submit and status paths.
    """
    base_url: str = "http://localhost:3000/api"
    api_key: Optional[str] = None
    request_timeout: float = 120.0  # seconds
    poll_timeout: float = 30.0  # seconds


@dataclass
class PollingConfig:
    """Polling scheduler configuration."""
    # Providers document 2s as the fastest acceptable status poll
    min_poll_interval: float = 2.0  # seconds
    default_timeout_multiplier: float = 6.0
    max_consecutive_poll_errors: int = 3
    progress_cap: int = 90


@dataclass
class CreditConfig:
    """Credit service configuration."""
    enabled: bool = True
    base_url: str = "http://localhost:3000/api"
    request_timeout: float = 15.0  # seconds
    admin_user_ids: List[str] = field(default_factory=list)
    # Modes unlocked for non-admin users; empty means every mode
    unlocked_modes: List[str] = field(default_factory=list)


@dataclass
class GalleryConfig:
    """Result persistence configuration."""
    # No URL means results are kept in memory only
    base_url: Optional[str] = None
    request_timeout: float = 15.0  # seconds


@dataclass
class ContentFilterConfig:
    """Content filter configuration."""
    extra_banned_terms: List[str] = field(default_factory=list)


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Optional[str] = None
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5


@dataclass
class APIConfig:
    """HTTP service configuration."""
    host: str = "0.0.0.0"
    port: int = 8000
    outcome_history_size: int = 200


def _split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class AppConfig:
    """Main application configuration."""

    def __init__(self, load_env_file: bool = True):
        self.provider = ProviderConfig()
        self.polling = PollingConfig()
        self.credits = CreditConfig()
        self.gallery = GalleryConfig()
        self.content_filter = ContentFilterConfig()
        self.logging = LoggingConfig()
        self.api = APIConfig()

        if load_env_file:
            load_dotenv()

        # Load from environment variables
        self._load_from_env()

    def _load_from_env(self):
        """Load configuration from environment variables."""
        # Provider configuration
        self.provider.base_url = os.getenv("PROVIDER_BASE_URL", self.provider.base_url)
        self.provider.api_key = os.getenv("PROVIDER_API_KEY")
        self.provider.request_timeout = float(os.getenv("PROVIDER_REQUEST_TIMEOUT", self.provider.request_timeout))
        self.provider.poll_timeout = float(os.getenv("PROVIDER_POLL_TIMEOUT", self.provider.poll_timeout))

        # Polling configuration
        self.polling.min_poll_interval = float(os.getenv("MIN_POLL_INTERVAL", self.polling.min_poll_interval))
        self.polling.default_timeout_multiplier = float(
            os.getenv("TIMEOUT_MULTIPLIER", self.polling.default_timeout_multiplier)
        )
        self.polling.max_consecutive_poll_errors = int(
            os.getenv("MAX_CONSECUTIVE_POLL_ERRORS", self.polling.max_consecutive_poll_errors)
        )

        # Credit configuration
        self.credits.base_url = os.getenv("CREDIT_SERVICE_URL", self.credits.base_url)
        self.credits.admin_user_ids = _split_csv(os.getenv("ADMIN_USER_IDS"))
        self.credits.unlocked_modes = _split_csv(os.getenv("UNLOCKED_MODES"))

        # Gallery configuration
        self.gallery.base_url = os.getenv("GALLERY_SERVICE_URL")

        # Content filter configuration
        self.content_filter.extra_banned_terms = _split_csv(os.getenv("EXTRA_BANNED_TERMS"))

        # Logging configuration
        self.logging.level = os.getenv("LOG_LEVEL", self.logging.level)
        self.logging.file_path = os.getenv("LOG_FILE_PATH")

        # API configuration
        self.api.host = os.getenv("API_HOST", self.api.host)
        self.api.port = int(os.getenv("API_PORT", self.api.port))

        # Convert string boolean values
        self.credits.enabled = os.getenv("ENABLE_CREDIT_CHECKS", "true").lower() == "true"

    def is_admin(self, user_id: Optional[str]) -> bool:
        """Check whether a user id belongs to a privileged identity."""
        return bool(user_id) and user_id in self.credits.admin_user_ids

    def validate(self) -> list:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.provider.base_url:
            errors.append("PROVIDER_BASE_URL must not be empty")

        if self.polling.min_poll_interval <= 0:
            errors.append("MIN_POLL_INTERVAL must be positive")

        if self.polling.default_timeout_multiplier < 1:
            errors.append("TIMEOUT_MULTIPLIER must be at least 1")

        if not 0 < self.polling.progress_cap < 100:
            errors.append("Progress cap must be between 1 and 99")

        if self.credits.enabled and not self.credits.base_url:
            errors.append("CREDIT_SERVICE_URL is required when credit checks are enabled")

        known_modes = {mode.value for mode in GenerationMode}
        for name in self.credits.unlocked_modes:
            if name not in known_modes:
                errors.append(f"UNLOCKED_MODES names unknown mode '{name}'")

        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary (excluding sensitive data)."""
        return {
            "provider": {
                "base_url": self.provider.base_url,
                "request_timeout": self.provider.request_timeout,
                "poll_timeout": self.provider.poll_timeout
            },
            "polling": {
                "min_poll_interval": self.polling.min_poll_interval,
                "default_timeout_multiplier": self.polling.default_timeout_multiplier,
                "max_consecutive_poll_errors": self.polling.max_consecutive_poll_errors,
                "progress_cap": self.polling.progress_cap
            },
            "credits": {
                "enabled": self.credits.enabled,
                "base_url": self.credits.base_url,
                "admin_count": len(self.credits.admin_user_ids),
                "unlocked_modes": list(self.credits.unlocked_modes)
            },
            "gallery": {
                "base_url": self.gallery.base_url
            },
            "api": {
                "host": self.api.host,
                "port": self.api.port
            }
        }


# Global configuration instance
config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global config
    if config is None:
        config = AppConfig()
    return config


def reload_config() -> AppConfig:
    """Reload configuration from environment variables."""
    global config
    config = AppConfig()
    return config
