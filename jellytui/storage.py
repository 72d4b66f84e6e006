"""JSON storage for the catalog cache."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict

from jellytui.models import MediaItem

logger = logging.getLogger(__name__)


class CacheError(Exception):
    """Catalog cache is missing or corrupt."""

    pass


class CatalogCache:
    """Persists the full item id -> MediaItem mapping as one JSON document."""

    def __init__(self, cache_path: Path):
        """Initialize cache with its file path."""
        self.cache_path = Path(cache_path)

    def exists(self) -> bool:
        """Check if cache file exists."""
        return self.cache_path.exists()

    def load(self) -> Dict[str, MediaItem]:
        """Load the catalog from disk.

        Raises:
            CacheError: If the file is missing or not a valid catalog.
        """
        try:
            with open(self.cache_path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            raise CacheError(f"Cache file not found: {self.cache_path}")
        except (OSError, ValueError) as e:
            raise CacheError(f"Cannot read cache file: {e}")

        if not isinstance(data, dict):
            raise CacheError("Cache file is not a mapping of item ids")

        try:
            return {
                item_id: MediaItem.from_dict(record)
                for item_id, record in data.items()
            }
        except (TypeError, KeyError) as e:
            raise CacheError(f"Invalid item record in cache: {e}")

    def save(self, items: Dict[str, MediaItem]) -> None:
        """Replace the cache file with the given catalog."""
        self.cache_path.parent.mkdir(parents=True, exist_ok=True)
        data = {item_id: item.to_dict() for item_id, item in items.items()}

        # Write to a sibling temp file first so readers never see a partial file
        fd, tmp_name = tempfile.mkstemp(
            dir=self.cache_path.parent, prefix=".cache-", suffix=".json"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp_name, self.cache_path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise

        logger.info("Saved %d items to %s", len(items), self.cache_path)

    def clear(self) -> None:
        """Delete the cache file if present."""
        if self.cache_path.exists():
            self.cache_path.unlink()
            logger.info("Removed catalog cache %s", self.cache_path)
