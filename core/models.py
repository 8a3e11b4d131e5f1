"""
Ledger data model: positions and the persisted snapshot.

A Position is keyed by token mint while it is open or partial. Closed
positions are archived in an append-only list.
"""

from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

PositionStatus = Literal["open", "partial", "closed"]

OPEN_STATUSES = ("open", "partial")

# Loss recorded for positions that vanished from the wallet
PHANTOM_PNL_PCT = -100.0


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Position:
    """One trade in one token, from first buy to final sell."""

    id: str
    mint: str
    entry_price_usd: float
    entry_sol: float            # SOL still at risk (cost basis of remaining tokens)
    token_amount: int           # raw units held
    current_price_usd: float = 0.0
    pnl_pct: float = 0.0
    pnl_sol: float = 0.0        # realized, accumulated over sells
    status: PositionStatus = "open"
    opened_at: str = field(default_factory=utc_now_iso)
    closed_at: Optional[str] = None
    symbol: Optional[str] = None
    source_ref: Optional[str] = None
    cost_basis_sold_sol: float = 0.0
    tx_signatures: List[str] = field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    @property
    def label(self) -> str:
        return self.symbol or f"{self.mint[:8]}..."

    def copy(self) -> "Position":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Position":
        known = {f.name for f in fields(cls)}
        payload = {k: v for k, v in data.items() if k in known}
        payload["token_amount"] = int(payload.get("token_amount") or 0)
        payload["tx_signatures"] = list(payload.get("tx_signatures") or [])
        return cls(**payload)


@dataclass
class LedgerSnapshot:
    """Serialized unit of durability for the position ledger."""

    open_positions: Dict[str, Position] = field(default_factory=dict)
    closed_positions: List[Position] = field(default_factory=list)
    seen_mints: List[str] = field(default_factory=list)
    last_updated: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "open_positions": {mint: pos.to_dict() for mint, pos in self.open_positions.items()},
            "closed_positions": [pos.to_dict() for pos in self.closed_positions],
            "seen_mints": list(self.seen_mints),
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LedgerSnapshot":
        open_raw = data.get("open_positions") or {}
        closed_raw = data.get("closed_positions") or []
        if not isinstance(open_raw, dict) or not isinstance(closed_raw, list):
            raise ValueError("ledger snapshot has malformed position collections")
        return cls(
            open_positions={mint: Position.from_dict(raw) for mint, raw in open_raw.items()},
            closed_positions=[Position.from_dict(raw) for raw in closed_raw],
            seen_mints=[str(m) for m in (data.get("seen_mints") or [])],
            last_updated=data.get("last_updated"),
        )
