"""docgate configuration -- environment settings, config schema, and loader."""

from .loader import ConfigError, config_from_settings, load_config, parse_config, save_config
from .schema import (
    DEFAULT_FORMAT,
    FOLDER_MIME,
    GOOGLE_DOC_MIME,
    AuditConfig,
    BreakerPolicy,
    CacheConfig,
    FormatProfile,
    GatewayConfig,
    RateLimit,
    ResilienceConfig,
    RetryPolicy,
    ReviewConfig,
    SanitizerConfig,
    ScanLimits,
    ScannerConfig,
    SyncConfig,
    ValidatorConfig,
    default_format_profiles,
)
from .settings import Settings, settings

__all__ = [
    "DEFAULT_FORMAT",
    "FOLDER_MIME",
    "GOOGLE_DOC_MIME",
    "AuditConfig",
    "BreakerPolicy",
    "CacheConfig",
    "ConfigError",
    "FormatProfile",
    "GatewayConfig",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "ReviewConfig",
    "SanitizerConfig",
    "ScanLimits",
    "ScannerConfig",
    "Settings",
    "SyncConfig",
    "ValidatorConfig",
    "config_from_settings",
    "default_format_profiles",
    "load_config",
    "parse_config",
    "save_config",
    "settings",
]
