"""
Position Management: lifecycle of tracked positions

In-memory index over the LedgerStore. Positions are opened by successful
buys, reduced or closed by sells, and force-closed by reconciliation when
the wallet holds none of the token ("phantom" positions).

Every mutation is flushed to the ledger. Readers always get copies, so
the read API can enumerate while the trading loop mutates.
"""
import logging
import threading
import uuid
from typing import Any, Dict, List, Optional

from core.models import (
    PHANTOM_PNL_PCT,
    LedgerSnapshot,
    Position,
    utc_now_iso,
)
from infra.ledger_store import LedgerStore

logger = logging.getLogger(__name__)


class PositionManager:
    """
    Owns the open index, the closed history and the seen-mint set.

    Responsibilities:
    - Duplicate-entry guard (open or previously seen mints)
    - Open / update / close / phantom-close lifecycle
    - Persist after every mutation

    Input validation is the capability layer's job; the manager trusts
    its callers.
    """

    def __init__(self, store: LedgerStore):
        self.store = store
        self._lock = threading.RLock()
        self._open: Dict[str, Position] = {}
        self._closed: List[Position] = []
        self._seen: set = set()
        self._load()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_open_position(self, mint: str) -> bool:
        with self._lock:
            pos = self._open.get(mint)
            return pos is not None and pos.is_open

    def has_open_or_seen(self, mint: str) -> bool:
        with self._lock:
            return self.has_open_position(mint) or mint in self._seen

    def open_count(self) -> int:
        with self._lock:
            return sum(1 for pos in self._open.values() if pos.is_open)

    def get(self, mint: str) -> Optional[Position]:
        with self._lock:
            pos = self._open.get(mint)
            return pos.copy() if pos else None

    def open_positions(self) -> List[Position]:
        with self._lock:
            return [pos.copy() for pos in self._open.values() if pos.is_open]

    def closed_positions(self) -> List[Position]:
        with self._lock:
            return [pos.copy() for pos in self._closed]

    def all_positions(self) -> List[Position]:
        with self._lock:
            return [pos.copy() for pos in self._open.values()] + [pos.copy() for pos in self._closed]

    def seen_mints(self) -> List[str]:
        with self._lock:
            return sorted(self._seen)

    def snapshot(self) -> LedgerSnapshot:
        with self._lock:
            return LedgerSnapshot(
                open_positions={mint: pos.copy() for mint, pos in self._open.items()},
                closed_positions=[pos.copy() for pos in self._closed],
                seen_mints=sorted(self._seen),
            )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self, **fields: Any) -> Position:
        """Record a new position from a successful buy."""
        with self._lock:
            position = Position(id=str(uuid.uuid4()), **fields)
            self._open[position.mint] = position
            self._seen.add(position.mint)
            self._persist()
            logger.info(
                f"Opened position {position.label}: {position.entry_sol} SOL, "
                f"{position.token_amount} raw tokens"
            )
            return position.copy()

    def apply_update(self, mint: str, **fields: Any) -> None:
        """
        Merge fields into the open position for `mint`.

        A merge that sets status=closed archives the position in the same
        critical section, so it is never visible in both collections.
        """
        with self._lock:
            pos = self._open.get(mint)
            if pos is None:
                logger.debug(f"apply_update ignored for untracked mint {mint}")
                return

            for key, value in fields.items():
                if key in ("id", "mint"):
                    continue
                if not hasattr(pos, key):
                    raise AttributeError(f"Position has no field {key!r}")
                setattr(pos, key, value)

            if pos.status == "closed":
                if not pos.closed_at:
                    pos.closed_at = utc_now_iso()
                del self._open[mint]
                self._closed.append(pos)
                logger.info(f"Closed position {pos.label}: realized {pos.pnl_sol:+.4f} SOL ({pos.pnl_pct:+.1f}%)")

            self._persist()

    def phantom_close(self, mint: str, reason: str) -> None:
        """Close a position the wallet no longer holds and allow re-entry."""
        with self._lock:
            pos = self._open.pop(mint, None)
            if pos is None:
                return
            pos.status = "closed"
            pos.closed_at = utc_now_iso()
            pos.pnl_pct = PHANTOM_PNL_PCT
            # Whatever basis remains is written off
            pos.pnl_sol -= pos.entry_sol
            pos.cost_basis_sold_sol += pos.entry_sol
            self._closed.append(pos)
            self._seen.discard(mint)
            logger.info(f"Closed phantom position: {pos.label} ({reason})")
            self._persist()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _persist(self) -> None:
        self.store.save(
            LedgerSnapshot(
                open_positions=dict(self._open),
                closed_positions=list(self._closed),
                seen_mints=sorted(self._seen),
            )
        )

    def _load(self) -> None:
        snapshot = self.store.load()
        closed_ids = {pos.id for pos in snapshot.closed_positions}

        for mint, pos in snapshot.open_positions.items():
            if pos.status == "closed":
                if pos.id not in closed_ids:
                    self._closed.append(pos)
                    closed_ids.add(pos.id)
            else:
                self._open[mint] = pos

        self._closed.extend(snapshot.closed_positions)
        self._seen = set(snapshot.seen_mints)

        logger.info(
            f"Loaded {len(self._open)} open positions, {len(self._closed)} closed, "
            f"{len(self._seen)} seen tokens"
        )
