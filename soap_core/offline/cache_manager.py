# =============================================================================
# soap_core/offline/cache_manager.py
# Cache of the last successful remote read per entity
# =============================================================================
"""
CacheManager - Keeps the last remote result of each entity list on disk.

Features:
- One JSON file per entity plus a metadata index
- Value + timestamp per entry, no expiry (stale-but-available reads)
- Explicit invalidation after writes
- Cache statistics
"""

from __future__ import annotations
import json
import shutil
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

from soap_core.offline.local_database import dumps

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A cached entity list and when it was read from the remote store."""
    entity: str
    value: List[Dict[str, Any]]
    cached_at: datetime


class CacheManager:
    """
    File-based cache for entity lists.

    Directory Structure:
    -------------------
    local_data/cache/
    ├── entities/             # <entity>.json, one file per entity
    └── cache_index.json      # Metadata about cached items
    """

    DEFAULT_CACHE_DIR = Path(__file__).parent.parent.parent / "local_data" / "cache"
    CACHE_INDEX_FILE = "cache_index.json"
    CATEGORY = "entities"

    def __init__(self, cache_dir: Optional[Path] = None):
        """
        Initialize cache manager.

        Args:
            cache_dir: Base directory for cache storage
        """
        self.cache_dir = Path(cache_dir or self.DEFAULT_CACHE_DIR)
        self._index: Dict[str, Dict] = {}
        self._lock = threading.RLock()
        self._ensure_directories()
        self._load_index()

    def _ensure_directories(self) -> None:
        (self.cache_dir / self.CATEGORY).mkdir(parents=True, exist_ok=True)

    def _load_index(self) -> None:
        """Load cache index from file."""
        index_path = self.cache_dir / self.CACHE_INDEX_FILE
        if index_path.exists():
            try:
                with open(index_path, "r", encoding="utf-8") as f:
                    self._index = json.load(f)
            except (json.JSONDecodeError, IOError) as e:
                logger.warning(f"Error loading cache index: {e}")
                self._index = {}
        else:
            self._index = {}

    def _save_index(self) -> None:
        """Save cache index to file."""
        index_path = self.cache_dir / self.CACHE_INDEX_FILE
        try:
            with open(index_path, "w", encoding="utf-8") as f:
                json.dump(self._index, f, indent=2, default=str)
        except IOError as e:
            logger.error(f"Error saving cache index: {e}")

    def _generate_key(self, entity: str) -> str:
        return f"{self.CATEGORY}:{entity}"

    def _file_path(self, entity: str) -> Path:
        return self.cache_dir / self.CATEGORY / f"{entity}.json"

    # =========================================================================
    # ENTRIES
    # =========================================================================

    def set(self, entity: str, value: List[Dict[str, Any]]) -> CacheEntry:
        """
        Store the full result of a remote list() call.

        Args:
            entity: Entity name
            value: Records as returned by the remote store

        Returns:
            The new CacheEntry
        """
        key = self._generate_key(entity)
        file_path = self._file_path(entity)
        now = datetime.now()

        with self._lock:
            with open(file_path, "w", encoding="utf-8") as f:
                f.write(dumps(value))

            self._index[key] = {
                "name": entity,
                "category": self.CATEGORY,
                "file_path": str(file_path),
                "rows": len(value),
                "cached_at": now.isoformat(),
                "accessed_at": now.isoformat(),
            }
            self._save_index()

        logger.debug(f"Cached {len(value)} {entity} records")
        return CacheEntry(entity=entity, value=value, cached_at=now)

    def get(self, entity: str) -> Optional[CacheEntry]:
        """
        Retrieve the cached list for an entity.

        Returns:
            CacheEntry if present, None otherwise
        """
        key = self._generate_key(entity)

        with self._lock:
            info = self._index.get(key)
            if info is None:
                return None

            file_path = Path(info["file_path"])
            if not file_path.exists():
                # Remove stale index entry
                del self._index[key]
                self._save_index()
                return None

            try:
                with open(file_path, "r", encoding="utf-8") as f:
                    value = json.load(f)
            except (json.JSONDecodeError, IOError) as e:
                logger.error(f"Error loading cached {entity}: {e}")
                return None

            info["accessed_at"] = datetime.now().isoformat()
            self._save_index()

        return CacheEntry(
            entity=entity,
            value=value,
            cached_at=datetime.fromisoformat(info["cached_at"]),
        )

    def has(self, entity: str) -> bool:
        key = self._generate_key(entity)
        return key in self._index and self._file_path(entity).exists()

    def invalidate(self, entity: str) -> bool:
        """Drop an entity's entry so the next read refetches."""
        key = self._generate_key(entity)

        with self._lock:
            if key not in self._index:
                return False

            file_path = self._file_path(entity)
            if file_path.exists():
                try:
                    file_path.unlink()
                except IOError as e:
                    logger.error(f"Error deleting cache file: {e}")
                    return False

            del self._index[key]
            self._save_index()

        logger.debug(f"Invalidated cache for {entity}")
        return True

    # =========================================================================
    # CACHE MANAGEMENT
    # =========================================================================

    def get_cache_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        stats = {
            "total_items": len(self._index),
            "entities": {},
            "total_size_bytes": 0,
        }

        for info in self._index.values():
            file_path = Path(info.get("file_path", ""))
            size = file_path.stat().st_size if file_path.exists() else 0
            stats["entities"][info["name"]] = {
                "rows": info.get("rows", 0),
                "cached_at": info.get("cached_at"),
                "size_bytes": size,
            }
            stats["total_size_bytes"] += size

        return stats

    def clear_all(self) -> None:
        """Clear entire cache."""
        with self._lock:
            dir_path = self.cache_dir / self.CATEGORY
            if dir_path.exists():
                shutil.rmtree(dir_path)
            dir_path.mkdir(parents=True)

            self._index = {}
            self._save_index()
        logger.info("Cache cleared")

