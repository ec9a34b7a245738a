from .settings import (
    AppConfig,
    ProviderConfig,
    PollingConfig,
    CreditConfig,
    GalleryConfig,
    ContentFilterConfig,
    LoggingConfig,
    APIConfig,
    get_config,
    reload_config
)

__all__ = [
    "AppConfig",
    "ProviderConfig",
    "PollingConfig",
    "CreditConfig",
    "GalleryConfig",
    "ContentFilterConfig",
    "LoggingConfig",
    "APIConfig",
    "get_config",
    "reload_config"
]
