"""
tradesim Snapshot Stores

Persistence is opaque to the engine: it hands over a JSON-safe dict after
every committed mutation and asks for one back at startup.

    - MemorySnapshotStore:    keeps the last snapshot in memory
    - JsonFileSnapshotStore:  one JSON file, replaced atomically on save
"""

import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class MemorySnapshotStore:
    def __init__(self, data: Optional[Dict[str, Any]] = None) -> None:
        self._data = copy.deepcopy(data)
        self.saves = 0

    def load(self) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self._data)

    def save(self, data: Dict[str, Any]) -> None:
        self._data = copy.deepcopy(data)
        self.saves += 1


class JsonFileSnapshotStore:
    """Stores the snapshot at *path*; parent directories are created on save."""

    def __init__(self, path: str) -> None:
        self.path = Path(path)

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            logger.error("Snapshot %s is corrupt, starting fresh: %s", self.path, e)
            return None

    def save(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".snapshot-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
