"""
soltrader Infrastructure: Activity Log

Bounded, newest-first feed of notable events (trades, signals, errors,
planner commentary) served by the read API. Persisted with the same
temp-file + rename pattern as the ledger.
"""

import json
import logging
import os
import tempfile
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from core.models import utc_now_iso

logger = logging.getLogger(__name__)

ActivityType = Literal["buy", "sell", "signal", "error", "info", "agent"]

ACTIVITY_TYPES = ("buy", "sell", "signal", "error", "info", "agent")
MAX_ENTRIES = 500


class ActivityLog:
    """
    Thread-safe activity feed.

    The decision loop appends; the read API thread calls recent().
    Write failures are logged and swallowed: the feed is informational.
    """

    def __init__(self, path: Optional[str] = None, max_entries: int = MAX_ENTRIES):
        self.path = Path(path or os.getenv("ACTIVITY_FILE", "data/activity.json"))
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.max_entries = max_entries
        self._lock = threading.Lock()
        self._entries: List[Dict[str, Any]] = self._load()

    def log(self, activity_type: ActivityType, message: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if activity_type not in ACTIVITY_TYPES:
            raise ValueError(f"Unknown activity type: {activity_type}")

        entry = {
            "id": str(uuid.uuid4()),
            "timestamp": utc_now_iso(),
            "type": activity_type,
            "message": message,
            "data": data or {},
        }
        with self._lock:
            self._entries.insert(0, entry)
            del self._entries[self.max_entries:]
            self._save()
        return dict(entry)

    def recent(self, limit: int = 200) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(e) for e in self._entries[:max(limit, 0)]]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _load(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, list):
                raise ValueError("activity file is not a JSON list")
            return data[:self.max_entries]
        except Exception as e:
            logger.warning(f"Failed to load activity log from {self.path}: {e}")
            return []

    def _save(self) -> None:
        temp_path = None
        try:
            temp_fd, temp_path = tempfile.mkstemp(
                dir=self.path.parent,
                prefix=".activity_",
                suffix=".json.tmp",
            )
            with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
                json.dump(self._entries, f, indent=2)
            os.replace(temp_path, self.path)
        except Exception as e:
            logger.error(f"Failed to save activity log: {e}")
            if temp_path and os.path.exists(temp_path):
                try:
                    os.unlink(temp_path)
                except OSError:
                    pass
