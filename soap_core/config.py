# =============================================================================
# soap_core/config.py
# Configuration resolved once at startup
# =============================================================================
"""
Configuration for the storage core.

Features:
- Immutable per-entity "use remote" flags (StorageConfig)
- Application settings from secrets.toml, .env and environment variables
- Sensible local-only defaults when no Supabase credentials are configured

Expected secrets.toml layout:

    [supabase]
    url = "https://your-project.supabase.co"
    key = "your-anon-key"

    [storage]
    sales_remote = true
    orders_remote = true
    db_path = "local_data/soap_stock.db"
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional
import logging

import toml
from dotenv import load_dotenv

from soap_core.errors import ConfigurationError

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent
DEFAULT_SECRETS_PATH = PROJECT_ROOT / "secrets.toml"
DEFAULT_DATA_DIR = PROJECT_ROOT / "local_data"

# Entity names used across the storage layer
SALES = "sales"
ORDERS = "orders"
SUPERMARKETS = "supermarkets"
STOCK_HISTORY = "stock_history"
FRAGRANCE_STOCK = "fragrance_stock"

ENTITIES = (SUPERMARKETS, SALES, ORDERS, STOCK_HISTORY, FRAGRANCE_STOCK)


@dataclass(frozen=True)
class StorageConfig:
    """Per-entity routing flags. True means remote-first, False pins the entity to local storage."""
    sales_remote: bool = True
    orders_remote: bool = True
    supermarkets_remote: bool = True
    stock_history_remote: bool = True
    fragrance_stock_remote: bool = True

    def uses_remote(self, entity: str) -> bool:
        """Return the routing flag for an entity name."""
        attr = f"{entity}_remote"
        if not hasattr(self, attr):
            raise ConfigurationError(f"Unknown entity '{entity}'", config_key=attr)
        return getattr(self, attr)

    @classmethod
    def local_only(cls) -> StorageConfig:
        """Every entity served from local storage."""
        return cls(**{f.name: False for f in fields(cls)})

    @classmethod
    def from_mapping(cls, values: Dict[str, Any]) -> StorageConfig:
        """Build from a [storage] table, ignoring unrelated keys."""
        kwargs = {}
        for f in fields(cls):
            if f.name not in values:
                continue
            value = values[f.name]
            if not isinstance(value, bool):
                raise ConfigurationError(
                    f"Storage flag '{f.name}' must be a boolean",
                    config_key=f.name,
                    expected_type="bool",
                )
            kwargs[f.name] = value
        return cls(**kwargs)


@dataclass(frozen=True)
class AppSettings:
    """Settings for the composition root."""
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    db_path: Path = DEFAULT_DATA_DIR / "soap_stock.db"
    cache_dir: Path = DEFAULT_DATA_DIR / "cache"
    ping_url: str = "https://www.google.com/favicon.ico"
    connection_timeout: float = 5.0
    geocoding_enabled: bool = True
    geocoding_timeout: float = 5.0
    geocoding_user_agent: str = "soap-stock-dashboard/1.0"
    max_stock: int = 2700
    log_level: str = "INFO"
    storage: StorageConfig = field(default_factory=StorageConfig)

    @property
    def has_remote_credentials(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


def _read_secrets(path: Path) -> Dict[str, Any]:
    """Load secrets.toml if present."""
    if not path.exists():
        return {}
    try:
        return toml.load(path)
    except toml.TomlDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {path}: {e}", config_key=str(path))


def load_settings(secrets_path: Optional[Path] = None) -> AppSettings:
    """
    Resolve application settings.

    Precedence: environment variables (including a .env file) over
    secrets.toml over built-in defaults.

    Args:
        secrets_path: Optional explicit path to a secrets.toml file

    Returns:
        Frozen AppSettings
    """
    load_dotenv()

    path = Path(secrets_path or os.getenv("SOAP_SECRETS_PATH", DEFAULT_SECRETS_PATH))
    secrets = _read_secrets(path)
    supabase = secrets.get("supabase", {})
    storage = secrets.get("storage", {})

    settings = AppSettings(
        supabase_url=os.getenv("SUPABASE_URL") or supabase.get("url"),
        supabase_key=os.getenv("SUPABASE_KEY") or supabase.get("key"),
        storage=StorageConfig.from_mapping(storage),
    )

    overrides: Dict[str, Any] = {}
    db_path = os.getenv("SOAP_DB_PATH") or storage.get("db_path")
    if db_path:
        overrides["db_path"] = Path(db_path)
    cache_dir = os.getenv("SOAP_CACHE_DIR") or storage.get("cache_dir")
    if cache_dir:
        overrides["cache_dir"] = Path(cache_dir)
    log_level = os.getenv("SOAP_LOG_LEVEL") or secrets.get("logging", {}).get("level")
    if log_level:
        overrides["log_level"] = log_level
    if "geocoding_enabled" in storage:
        overrides["geocoding_enabled"] = bool(storage["geocoding_enabled"])
    if "connection_timeout" in storage:
        try:
            overrides["connection_timeout"] = float(storage["connection_timeout"])
        except (TypeError, ValueError):
            raise ConfigurationError(
                "connection_timeout must be a number",
                config_key="connection_timeout",
                expected_type="float",
            )
    if "max_stock" in storage:
        try:
            overrides["max_stock"] = int(storage["max_stock"])
        except (TypeError, ValueError):
            raise ConfigurationError(
                "max_stock must be an integer",
                config_key="max_stock",
                expected_type="int",
            )

    settings = replace(settings, **overrides)

    if not settings.has_remote_credentials:
        logger.warning("Supabase credentials not configured, using local storage only")
        settings = replace(settings, storage=StorageConfig.local_only())

    return settings
