"""
soltrader Infrastructure: Ledger Store

Persistent position ledger with atomic writes. The whole snapshot is
rewritten on every mutation (temp file + rename), so a crash can lose
at most the last mutation.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from core.models import LedgerSnapshot, utc_now_iso

logger = logging.getLogger(__name__)


class LedgerStore:
    """
    JSON-file persistence for the position ledger.

    - load() never raises: a missing or corrupt file yields an empty snapshot
    - save() never raises: write errors are logged and the in-memory
      ledger stays authoritative until the next successful write
    """

    def __init__(self, path: Optional[str] = None):
        """
        Args:
            path: Path to ledger JSON file (default: $POSITIONS_FILE or data/positions.json)
        """
        self.path = Path(path or os.getenv("POSITIONS_FILE", "data/positions.json"))
        self.path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Initialized LedgerStore at {self.path}")

    def load(self) -> LedgerSnapshot:
        if not self.path.exists():
            logger.debug("No ledger file found, starting empty")
            return LedgerSnapshot()

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("top-level JSON value is not an object")
            return LedgerSnapshot.from_dict(data)
        except Exception as e:
            logger.warning(f"Failed to load ledger from {self.path}, starting empty: {e}")
            return LedgerSnapshot()

    def save(self, snapshot: LedgerSnapshot) -> None:
        snapshot.last_updated = utc_now_iso()
        temp_path = None
        try:
            temp_fd, temp_path = tempfile.mkstemp(
                dir=self.path.parent,
                prefix=".positions_",
                suffix=".json.tmp",
            )
            with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
                json.dump(snapshot.to_dict(), f, indent=2)

            os.replace(temp_path, self.path)
            logger.debug("Saved ledger to file")

        except Exception as e:
            logger.error(f"Failed to save ledger: {e}")
            if temp_path and os.path.exists(temp_path):
                try:
                    os.unlink(temp_path)
                except OSError:
                    pass
