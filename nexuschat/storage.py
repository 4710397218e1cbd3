"""Durable key-value records. One JSON file per key."""

import json
import logging
import os
from typing import Any

logger = logging.getLogger(__name__)


class Storage:
    """Whole-record JSON storage for top-level app state.

    Every `set` rewrites the full record for that key. This is safe for the
    single thread of control the app runs on, not for concurrent writers.
    """

    def __init__(self, directory: str):
        self.directory = directory
        os.makedirs(self.directory, exist_ok=True)

    def _path(self, key: str) -> str:
        """JSON extension helper"""
        return os.path.join(self.directory, f"{key}.json")

    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value for `key`, or `default` if there is none"""
        path = self._path(key)
        if not os.path.exists(path):
            return default
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupted record '{key}' in {path}: {e}")
            return default

    def set(self, key: str, value: Any):
        """Replace the stored value for `key`"""
        path = self._path(key)
        tmp_path = f"{path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(value, f, indent=2)
        # Swap in one step, a crash mid-write leaves the old record intact
        os.replace(tmp_path, path)
