"""
Portfolio views: mark-to-market and dashboard aggregates.

Shared by the get_portfolio capability and the read API. Price lookups
for open positions fan out concurrently; a failed lookup keeps the last
known price.
"""

import concurrent.futures
import logging
from typing import Any, Dict, Iterable, List, Optional

from core.models import Position, utc_now_iso

logger = logging.getLogger(__name__)

DEFAULT_PRICE_WORKERS = 4


def fetch_prices(price_service, mints: Iterable[str], max_workers: Optional[int] = None) -> Dict[str, Optional[float]]:
    """Current USD price per mint (None when no source answered)."""
    unique = list(dict.fromkeys(mints))
    if not unique:
        return {}

    workers = max_workers or min(DEFAULT_PRICE_WORKERS, len(unique))
    prices: Dict[str, Optional[float]] = {}
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
        future_map = {
            executor.submit(price_service.get_token_analysis, mint): mint
            for mint in unique
        }
        for future in concurrent.futures.as_completed(future_map):
            mint = future_map[future]
            try:
                analysis = future.result()
                prices[mint] = analysis.price_usd if analysis and analysis.price_usd > 0 else None
            except Exception as exc:
                logger.warning("Price lookup for %s failed: %s", mint, exc)
                prices[mint] = None
    return prices


def unrealized_pnl_pct(entry_price_usd: float, current_price_usd: float) -> float:
    if entry_price_usd <= 0:
        return 0.0
    return (current_price_usd - entry_price_usd) / entry_price_usd * 100


def mark_to_market(position: Position, price_usd: Optional[float]) -> Position:
    """Copy of `position` with current price and unrealized pnl_pct refreshed."""
    marked = position.copy()
    if price_usd:
        marked.current_price_usd = price_usd
    marked.pnl_pct = unrealized_pnl_pct(marked.entry_price_usd, marked.current_price_usd)
    return marked


def portfolio_stats(open_positions: List[Position], closed_positions: List[Position]) -> Dict[str, Any]:
    wins = sum(1 for p in closed_positions if p.pnl_pct > 0)
    closed_count = len(closed_positions)
    win_rate = wins / closed_count * 100 if closed_count else 0.0
    realized = sum(p.pnl_sol for p in closed_positions)
    unrealized = sum(p.entry_sol * p.pnl_pct / 100 for p in open_positions)

    return {
        "total_trades": len(open_positions) + closed_count,
        "open_count": len(open_positions),
        "closed_count": closed_count,
        "win_rate": round(win_rate, 1),
        "wins": wins,
        "losses": closed_count - wins,
        "realized_pnl_sol": round(realized, 4),
        "unrealized_pnl_sol": round(unrealized, 4),
    }


def build_dashboard(positions, price_service, wallet, activity_log=None, activity_limit: int = 50) -> Dict[str, Any]:
    """
    Aggregate payload for the read API.

    Reads copies from the position manager and does not write back marks;
    the ledger is only mutated from the decision loop.
    """
    open_positions = positions.open_positions()
    closed_positions = positions.closed_positions()

    prices = fetch_prices(price_service, [p.mint for p in open_positions])
    marked = [mark_to_market(p, prices.get(p.mint)) for p in open_positions]

    return {
        "wallet": {
            "public_key": wallet.public_key,
            "sol_balance": wallet.get_sol_balance(),
        },
        "stats": portfolio_stats(marked, closed_positions),
        "open_positions": [p.to_dict() for p in marked],
        "closed_positions": [p.to_dict() for p in closed_positions],
        "activity": activity_log.recent(activity_limit) if activity_log is not None else [],
        "generated_at": utc_now_iso(),
    }
