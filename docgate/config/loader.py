"""Load, validate and save the gateway configuration document.

* Loading from a JSON path (missing file is an error)
* Building defaults from environment settings
* Atomic save with pretty-printed JSON
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .schema import GatewayConfig
from .settings import Settings

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when the configuration document cannot be read or is invalid."""


def load_config(path: str | Path) -> GatewayConfig:
    """Load and validate a gateway configuration JSON file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigError: If the file is not JSON or does not conform to the schema.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Gateway config not found at {path}")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{path}: invalid JSON ({exc})") from exc
    return parse_config(raw, source=str(path))


def parse_config(raw: dict[str, Any], source: str = "<dict>") -> GatewayConfig:
    try:
        return GatewayConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"{source}: {exc}") from exc


_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "CACHE_ENABLED": ("cache", "enabled"),
    "REDIS_URL": ("cache", "redis_url"),
    "CACHE_KEY_PREFIX": ("cache", "key_prefix"),
    "CACHE_CONTENT_TTL_SECONDS": ("cache", "content_ttl_seconds"),
    "CACHE_METADATA_TTL_SECONDS": ("cache", "metadata_ttl_seconds"),
    "REVIEW_QUEUE_PATH": ("review", "queue_path"),
    "SECURITY_LOG_PATH": ("audit", "log_path"),
}


def config_from_settings(settings: Settings, path: str | Path | None = None) -> GatewayConfig:
    """Build the effective config: the JSON document (if any) overlaid with env settings.

    Only settings that were explicitly provided (environment or ``.env``)
    override the document; the JSON document owns policies and thresholds.
    """
    config_path = path or settings.GATEWAY_CONFIG_PATH
    config = load_config(config_path) if config_path else GatewayConfig()

    for name, (section, attr) in _ENV_OVERRIDES.items():
        if name in settings.model_fields_set:
            setattr(getattr(config, section), attr, getattr(settings, name))
    return config


def save_config(config: GatewayConfig, path: str | Path) -> None:
    """Atomically write a validated configuration document.

    Writes to a temporary file first, then renames, so readers never see a
    partial write.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(
        json.dumps(config.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n",
        encoding="utf-8",
    )
    tmp.replace(path)
    logger.info("Saved gateway config to %s", path)
