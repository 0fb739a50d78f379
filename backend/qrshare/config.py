"""qrshare application configuration.

Loads settings from a single YAML file:
  * qrshare.settings.yaml  — server, session, storage and logging options

The path can be overridden with the ``QRSHARE_SETTINGS`` environment
variable or passed explicitly to :func:`load_config`. A missing file is not
an error; every option has a default.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("qrshare.settings.yaml")
SETTINGS_ENV_VAR = "QRSHARE_SETTINGS"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 5000
    public_host:     str       = "localhost"   # host advertised in the pairing QR payload
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class SessionSettings(BaseModel):
    """Lifetime and broadcast options for pairing sessions."""
    default_ttl_minutes:    float           = 10
    max_ttl_minutes:        Optional[float] = None
    sweep_interval_seconds: float           = 10
    upload_broadcast_scope: Literal["session", "global"] = "session"

    @field_validator("default_ttl_minutes", "sweep_interval_seconds")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value


class StorageSettings(BaseModel):
    upload_dir:       str = "uploads"
    max_upload_bytes: int = 10 * 1024 * 1024


class LoggingSettings(BaseModel):
    level: str = "info"


class AppConfig(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def _resolve_upload_dir(config: AppConfig, settings_path: Path) -> None:
    """Resolve a relative upload_dir against the settings file directory."""
    upload_dir = Path(config.storage.upload_dir)
    if upload_dir.is_absolute():
        return
    base = settings_path.parent if settings_path.exists() else Path.cwd()
    config.storage.upload_dir = str(base / upload_dir)


def load_config(settings_path: Optional[Path] = None) -> AppConfig:
    """Load settings into a single *AppConfig* object."""
    if settings_path is None:
        settings_path = Path(os.environ.get(SETTINGS_ENV_VAR, SETTINGS_FILE))
    settings_path = Path(settings_path)

    config = AppConfig(**_load_yaml(settings_path))
    _resolve_upload_dir(config, settings_path)

    logger.info(
        "Settings loaded (server=%s:%s, ttl=%smin, sweep=%ss, upload_scope=%s)",
        config.server.host,
        config.server.port,
        config.session.default_ttl_minutes,
        config.session.sweep_interval_seconds,
        config.session.upload_broadcast_scope,
    )
    return config


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Drop the cached configuration (for testing)."""
    global _config
    _config = None
