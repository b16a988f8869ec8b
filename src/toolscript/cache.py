"""Content-addressed disk cache for remote programs and model responses."""

from __future__ import annotations

import hashlib
import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from .shared import CacheOptions

__all__ = ["DiskCache"]

logger = logging.getLogger(__name__)


class DiskCache:
    """Stores JSON values under ``<cache_dir>/<namespace>/<sha256>.json``."""

    def __init__(self, options: CacheOptions) -> None:
        self.options = options

    @property
    def enabled(self) -> bool:
        return not self.options.disable_cache

    def _path(self, namespace: str, key: Any) -> Path:
        digest = hashlib.sha256(
            json.dumps(key, sort_keys=True, default=str).encode("utf-8")
        ).hexdigest()
        return Path(self.options.cache_dir) / namespace / f"{digest}.json"

    def get(self, namespace: str, key: Any) -> Optional[Any]:
        if not self.enabled:
            return None
        path = self._path(namespace, key)
        try:
            with open(path, "r", encoding="utf-8") as fh:
                return json.load(fh)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as exc:
            logger.debug("ignoring unreadable cache entry %s: %s", path, exc)
            return None

    def put(self, namespace: str, key: Any, value: Any) -> None:
        if not self.enabled:
            return
        path = self._path(namespace, key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".tmp")
            with open(tmp, "w", encoding="utf-8") as fh:
                json.dump(value, fh)
            os.replace(tmp, path)
        except OSError as exc:
            # A cache write failure never fails the run
            logger.debug("cache write failed for %s: %s", path, exc)
