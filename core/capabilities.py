"""
soltrader Core: Capability Gateway

The only surface the planner can act through. Each named capability:
1. Parses its arguments into a typed input (no side effects on failure)
2. Checks preconditions against config, ledger and wallet
3. Performs the venue call(s)
4. Updates the ledger and the activity feed

Capabilities never raise to the caller; every outcome is a ToolResult.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from core.exceptions import InvalidToolInput, PriceImpactTooHigh, VenueError
from core.models import utc_now_iso
from core.portfolio_view import fetch_prices, mark_to_market
from core.position_manager import PositionManager
from core.tool_inputs import (
    AnalyzeTokenInput,
    BuyTokenInput,
    SearchPostsInput,
    SellTokenInput,
    ToolInput,
    WaitInput,
    parse_tool_input,
)

logger = logging.getLogger(__name__)

# Buys above this multiple of the configured ticket are refused
MAX_BUY_MULTIPLE = 2.0

SOLSCAN_TX_URL = "https://solscan.io/tx/{signature}"


@dataclass
class ToolResult:
    ok: bool
    payload: Optional[Any] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, payload: Any = None) -> "ToolResult":
        return cls(ok=True, payload=payload)

    @classmethod
    def failure(cls, error: str) -> "ToolResult":
        return cls(ok=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"ok": self.ok}
        if self.payload is not None:
            out["payload"] = self.payload
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass
class GatewaySettings:
    buy_amount_sol: float = 0.1
    max_concurrent_positions: int = 5
    max_price_impact_pct: float = 10.0
    fee_reserve_sol: float = 0.01
    min_likes: int = 50
    min_retweets: int = 10

    @classmethod
    def from_config(cls, config) -> "GatewaySettings":
        trading = config.trading
        return cls(
            buy_amount_sol=trading.buy_amount_sol,
            max_concurrent_positions=trading.max_concurrent_positions,
            max_price_impact_pct=trading.max_price_impact_pct,
            fee_reserve_sol=trading.fee_reserve_sol,
            min_likes=config.social.min_likes,
            min_retweets=config.social.min_retweets,
        )


class CapabilityGateway:
    """
    Dispatches planner tool calls to validated handlers.

    Collaborators are duck-typed: wallet (public_key, get_sol_balance,
    get_token_balance), venue (buy_quote, sell_quote, execute_swap),
    prices (get_token_analysis), social (search).
    """

    def __init__(
        self,
        positions: PositionManager,
        wallet,
        venue,
        prices,
        social,
        settings: Optional[GatewaySettings] = None,
        activity_log=None,
        metrics=None,
        sleep_fn: Callable[[float], None] = time.sleep,
    ):
        self.positions = positions
        self.wallet = wallet
        self.venue = venue
        self.prices = prices
        self.social = social
        self.settings = settings or GatewaySettings()
        self.activity_log = activity_log
        self.metrics = metrics
        self.sleep_fn = sleep_fn

        self._handlers: Dict[str, Callable[[ToolInput], ToolResult]] = {
            "search_posts": self._search_posts,
            "analyze_token": self._analyze_token,
            "buy_token": self._buy_token,
            "sell_token": self._sell_token,
            "sync_portfolio": self._sync_portfolio,
            "get_wallet_balance": self._get_wallet_balance,
            "get_portfolio": self._get_portfolio,
            "wait": self._wait,
        }

    @property
    def tool_names(self):
        return list(self._handlers)

    def execute(self, tool_name: str, raw_input: Optional[Dict[str, Any]] = None) -> ToolResult:
        """Run one capability. Never raises."""
        handler = self._handlers.get(tool_name)
        if handler is None:
            result = ToolResult.failure(f"Unknown tool: {tool_name}")
        else:
            try:
                params = parse_tool_input(tool_name, raw_input)
                result = handler(params)
            except InvalidToolInput as e:
                logger.warning(str(e))
                if tool_name == "wait":
                    # The cycle ends on wait either way, so still pause for the default
                    result = self._wait(WaitInput())
                    result.payload["warning"] = str(e)
                else:
                    result = ToolResult.failure(str(e))
            except VenueError as e:
                logger.warning(f"{tool_name} failed: {e}")
                result = ToolResult.failure(str(e))
            except Exception as e:
                logger.error(f"{tool_name} raised unexpectedly: {e}", exc_info=True)
                result = ToolResult.failure(f"{type(e).__name__}: {e}")

        if self.metrics is not None:
            self.metrics.record_tool_call(tool_name, result.ok)
            self.metrics.record_open_positions(self.positions.open_count())
        return result

    # ------------------------------------------------------------------
    # Read-only capabilities
    # ------------------------------------------------------------------

    def _search_posts(self, params: SearchPostsInput) -> ToolResult:
        min_likes = self.settings.min_likes if params.min_likes is None else params.min_likes
        min_retweets = self.settings.min_retweets if params.min_retweets is None else params.min_retweets
        try:
            posts = self.social.search(params.query, min_likes, min_retweets)
        except Exception as e:
            logger.warning(f"Social search failed for {params.query!r}: {e}")
            posts = []

        with_mints = [p for p in posts if p.extracted_mints]
        for post in with_mints:
            self._activity(
                "signal",
                f"@{post.author}: {len(post.extracted_mints)} mint(s) in post {post.id}",
                {"post_id": post.id, "mints": post.extracted_mints, "likes": post.likes},
            )

        return ToolResult.success({
            "count": len(posts),
            "posts": [
                {
                    "id": p.id,
                    "author": f"@{p.author}",
                    "text": p.text,
                    "likes": p.likes,
                    "retweets": p.retweets,
                    "replies": p.replies,
                    "created_at": p.created_at,
                    "token_addresses_found": p.extracted_mints,
                }
                for p in posts
            ],
        })

    def _analyze_token(self, params: AnalyzeTokenInput) -> ToolResult:
        analysis = self.prices.get_token_analysis(params.mint_address)
        if analysis is None:
            return ToolResult.failure(
                f"No data found for token {params.mint_address}. It may be too new or not listed."
            )
        return ToolResult.success({
            "mint": analysis.mint,
            "symbol": analysis.symbol or "UNKNOWN",
            "name": analysis.name or "Unknown Token",
            "price_usd": analysis.price_usd,
            "price_in_sol": analysis.price_native,
            "volume_24h_usd": analysis.volume_24h,
            "liquidity_usd": analysis.liquidity_usd,
            "price_change_24h_pct": analysis.price_change_24h,
        })

    def _get_wallet_balance(self, params: ToolInput) -> ToolResult:
        return ToolResult.success({
            "public_key": self.wallet.public_key,
            "sol_balance": self.wallet.get_sol_balance(),
        })

    def _get_portfolio(self, params: ToolInput) -> ToolResult:
        open_positions = self.positions.open_positions()
        prices = fetch_prices(self.prices, [p.mint for p in open_positions])

        rows = []
        for pos in open_positions:
            marked = mark_to_market(pos, prices.get(pos.mint))
            self.positions.apply_update(
                pos.mint,
                current_price_usd=marked.current_price_usd,
                pnl_pct=marked.pnl_pct,
            )
            rows.append({
                "token": marked.label,
                "mint": marked.mint,
                "entry_price_usd": marked.entry_price_usd,
                "current_price_usd": marked.current_price_usd,
                "sol_invested": marked.entry_sol,
                "pnl_pct": round(marked.pnl_pct, 2),
                "realized_pnl_sol": round(marked.pnl_sol, 6),
                "status": marked.status,
                "opened_at": marked.opened_at,
                "token_amount": marked.token_amount,
            })

        return ToolResult.success({
            "open_positions": rows,
            "open_count": len(rows),
            "closed_count": len(self.positions.closed_positions()),
            "total_sol_invested": sum(p.entry_sol for p in open_positions),
        })

    # ------------------------------------------------------------------
    # Trading capabilities
    # ------------------------------------------------------------------

    def _buy_token(self, params: BuyTokenInput) -> ToolResult:
        mint = params.mint_address
        amount = params.sol_amount
        settings = self.settings

        max_amount = settings.buy_amount_sol * MAX_BUY_MULTIPLE
        if amount > max_amount:
            return ToolResult.failure(f"SOL amount {amount} exceeds safety limit (max: {max_amount})")

        if self.positions.has_open_or_seen(mint):
            return ToolResult.failure(f"Already have or had a position in {mint}. Duplicate buy blocked.")

        open_count = self.positions.open_count()
        if open_count >= settings.max_concurrent_positions:
            return ToolResult.failure(
                f"Max concurrent positions reached ({open_count}/{settings.max_concurrent_positions})"
            )

        balance = self.wallet.get_sol_balance()
        if balance < amount + settings.fee_reserve_sol:
            return ToolResult.failure(
                f"Insufficient balance: {balance} SOL (need {amount} + {settings.fee_reserve_sol} fee reserve)"
            )

        analysis = self.prices.get_token_analysis(mint)
        quote = self.venue.buy_quote(mint, amount)
        if quote.price_impact_pct > settings.max_price_impact_pct:
            raise PriceImpactTooHigh(quote.price_impact_pct, settings.max_price_impact_pct)

        try:
            signature = self.venue.execute_swap(quote)
        except VenueError as e:
            self._activity("error", f"Buy of {mint[:8]}... failed: {e}", {"mint": mint, "sol_amount": amount})
            raise

        price_usd = analysis.price_usd if analysis else 0.0
        symbol = analysis.symbol if analysis else None
        position = self.positions.open(
            mint=mint,
            symbol=symbol,
            entry_price_usd=price_usd,
            entry_sol=amount,
            token_amount=quote.out_amount,
            current_price_usd=price_usd,
            tx_signatures=[signature],
            source_ref=params.source_ref,
        )

        logger.info(f"BUY {position.label}: {amount} SOL -> {quote.out_amount} raw tokens | tx: {signature}")
        self._activity(
            "buy",
            f"Bought {position.label} for {amount} SOL",
            {"mint": mint, "symbol": symbol, "sol_amount": amount, "tx_signature": signature},
        )

        return ToolResult.success({
            "message": f"Successfully bought {position.label}",
            "position_id": position.id,
            "sol_spent": amount,
            "tokens_received": quote.out_amount,
            "price_impact_pct": quote.price_impact_pct,
            "tx_signature": signature,
            "solscan_url": SOLSCAN_TX_URL.format(signature=signature),
        })

    def _sell_token(self, params: SellTokenInput) -> ToolResult:
        mint = params.mint_address
        pct = params.percentage

        balance = self.wallet.get_token_balance(mint)
        if balance.raw_amount <= 0:
            return ToolResult.failure(f"No tokens found for {mint} in wallet")

        # Basis points keep the split exact for large raw amounts
        sell_raw = balance.raw_amount * round(pct * 100) // 10000
        if sell_raw <= 0:
            return ToolResult.failure("Sell amount too small")

        quote = self.venue.sell_quote(mint, sell_raw)
        try:
            signature = self.venue.execute_swap(quote)
        except VenueError as e:
            self._activity("error", f"Sell of {mint[:8]}... failed: {e}", {"mint": mint, "percentage": pct})
            raise

        proceeds_sol = quote.out_sol
        remaining_raw = balance.raw_amount - sell_raw
        realized = None
        label = f"{mint[:8]}..."

        position = self.positions.get(mint)
        if position is not None:
            label = position.label
            full_exit = pct >= 100 or remaining_raw <= 0
            cost_basis = position.entry_sol if full_exit else position.entry_sol * pct / 100
            realized = proceeds_sol - cost_basis
            pnl_sol = position.pnl_sol + realized
            basis_sold = position.cost_basis_sold_sol + cost_basis
            signatures = position.tx_signatures + [signature]

            if full_exit:
                self.positions.apply_update(
                    mint,
                    status="closed",
                    closed_at=utc_now_iso(),
                    token_amount=0,
                    pnl_sol=pnl_sol,
                    cost_basis_sold_sol=basis_sold,
                    pnl_pct=(pnl_sol / basis_sold * 100) if basis_sold > 0 else 0.0,
                    tx_signatures=signatures,
                )
            else:
                self.positions.apply_update(
                    mint,
                    status="partial",
                    token_amount=remaining_raw,
                    entry_sol=position.entry_sol - cost_basis,
                    pnl_sol=pnl_sol,
                    cost_basis_sold_sol=basis_sold,
                    tx_signatures=signatures,
                )
        else:
            logger.warning(f"Sold untracked token {mint}; ledger not updated")

        logger.info(f"SELL {pct:g}% of {label}: received {proceeds_sol:.6f} SOL | tx: {signature}")
        self._activity(
            "sell",
            f"Sold {pct:g}% of {label} for {proceeds_sol:.4f} SOL",
            {"mint": mint, "sol_amount": proceeds_sol, "tx_signature": signature, "real_pnl_sol": realized},
        )

        return ToolResult.success({
            "message": f"Sold {pct:g}% of {label}",
            "sol_received": proceeds_sol,
            "percentage_sold": pct,
            "real_pnl_sol": round(realized, 6) if realized is not None else None,
            "tx_signature": signature,
            "solscan_url": SOLSCAN_TX_URL.format(signature=signature),
        })

    def _sync_portfolio(self, params: ToolInput) -> ToolResult:
        cleaned = 0
        skipped = 0
        for pos in self.positions.open_positions():
            try:
                balance = self.wallet.get_token_balance(pos.mint)
            except Exception as e:
                logger.warning(f"Sync skipped {pos.label}: balance check failed: {e}")
                skipped += 1
                continue

            if balance.raw_amount == 0:
                self.positions.phantom_close(pos.mint, "no tokens in wallet")
                cleaned += 1
                self._activity(
                    "info",
                    f"Cleaned phantom position: {pos.label} (no tokens found)",
                    {"mint": pos.mint, "symbol": pos.symbol},
                )

        remaining = self.positions.open_positions()
        logger.info(
            f"Portfolio sync: cleaned {cleaned} phantom positions, {len(remaining)} real positions remain"
            + (f", {skipped} skipped" if skipped else "")
        )
        return ToolResult.success({
            "message": f"Synced portfolio with on-chain data. Cleaned {cleaned} phantom positions.",
            "phantom_positions_cleaned": cleaned,
            "skipped": skipped,
            "remaining_open_positions": len(remaining),
            "positions": [
                {"token": p.label, "mint": p.mint, "entry_sol": p.entry_sol, "status": p.status}
                for p in remaining
            ],
        })

    def _wait(self, params: WaitInput) -> ToolResult:
        logger.info(f"Agent waiting {params.seconds:g}s before next cycle...")
        self.sleep_fn(params.seconds)
        return ToolResult.success({"waited_seconds": params.seconds, "resumed_at": utc_now_iso()})

    def _activity(self, activity_type: str, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        if self.activity_log is not None:
            self.activity_log.log(activity_type, message, data)
