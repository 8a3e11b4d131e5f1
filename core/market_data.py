"""
Token market data: DexScreener first, Jupiter price API as fallback.
"""

import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from core.exceptions import VenueError
from infra.http import request_json
from infra.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

DEXSCREENER_URL = "https://api.dexscreener.com/latest/dex/tokens"
JUPITER_PRICE_URL = "https://price.jup.ag/v6/price"


@dataclass
class TokenAnalysis:
    mint: str
    price_usd: float
    symbol: Optional[str] = None
    name: Optional[str] = None
    price_native: float = 0.0
    volume_24h: float = 0.0
    liquidity_usd: float = 0.0
    price_change_24h: float = 0.0
    timestamp: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _as_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


class PriceService:
    """
    Read-only price/liquidity lookups.

    get_token_analysis() never raises: both sources failing yields None.
    """

    def __init__(
        self,
        dexscreener_url: str = DEXSCREENER_URL,
        jupiter_price_url: str = JUPITER_PRICE_URL,
        rate_limiter: Optional[RateLimiter] = None,
        timeout: float = 20.0,
        max_retries: int = 3,
    ):
        self.dexscreener_url = dexscreener_url.rstrip("/")
        self.jupiter_price_url = jupiter_price_url
        self.rate_limiter = rate_limiter
        self.timeout = timeout
        self.max_retries = max_retries

    def get_token_analysis(self, mint: str) -> Optional[TokenAnalysis]:
        try:
            analysis = self._from_dexscreener(mint)
            if analysis:
                return analysis
        except VenueError as e:
            logger.warning(f"DexScreener failed for {mint}, trying Jupiter: {e}")

        try:
            return self._from_jupiter(mint)
        except VenueError as e:
            logger.warning(f"Jupiter price also failed for {mint}: {e}")
            return None

    def get_price_usd(self, mint: str) -> Optional[float]:
        analysis = self.get_token_analysis(mint)
        return analysis.price_usd if analysis else None

    def _from_dexscreener(self, mint: str) -> Optional[TokenAnalysis]:
        data = request_json(
            "GET",
            f"{self.dexscreener_url}/{mint}",
            venue="dexscreener",
            timeout=self.timeout,
            max_retries=self.max_retries,
            rate_limiter=self.rate_limiter,
        )
        pairs = (data or {}).get("pairs") or []
        if not pairs:
            return None

        # Deepest pool wins
        pair = max(pairs, key=lambda p: _as_float((p.get("liquidity") or {}).get("usd")))
        base = pair.get("baseToken") or {}
        return TokenAnalysis(
            mint=mint,
            symbol=base.get("symbol"),
            name=base.get("name"),
            price_usd=_as_float(pair.get("priceUsd")),
            price_native=_as_float(pair.get("priceNative")),
            volume_24h=_as_float((pair.get("volume") or {}).get("h24")),
            liquidity_usd=_as_float((pair.get("liquidity") or {}).get("usd")),
            price_change_24h=_as_float((pair.get("priceChange") or {}).get("h24")),
            timestamp=time.time(),
        )

    def _from_jupiter(self, mint: str) -> TokenAnalysis:
        data = request_json(
            "GET",
            self.jupiter_price_url,
            venue="jupiter",
            params={"ids": mint},
            timeout=self.timeout,
            max_retries=self.max_retries,
            rate_limiter=self.rate_limiter,
        )
        price_data = ((data or {}).get("data") or {}).get(mint)
        if not price_data:
            raise VenueError("jupiter", f"No price data for {mint}")

        return TokenAnalysis(
            mint=mint,
            symbol=price_data.get("mintSymbol"),
            price_usd=_as_float(price_data.get("price")),
            timestamp=time.time(),
        )
