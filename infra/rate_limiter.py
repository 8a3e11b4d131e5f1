"""
Rate Limiter with Token Bucket Algorithm

Throttles outbound calls to the external venues (swap aggregator, price
feeds, social search) before they hit the network, so a planner that
fires many tool calls in one turn cannot trip upstream 429s.

Each venue gets its own named bucket. Unknown venues fall back to the
default bucket.
"""
import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class TokenBucket:
    """
    Token bucket for rate limiting.

    Tokens replenish at a fixed rate. Each request consumes one token.
    If bucket is empty, request must wait until tokens replenish.
    """
    capacity: float  # Max tokens (burst capacity)
    refill_rate: float  # Tokens per second
    tokens: float = field(init=False)
    last_update: float = field(init=False)

    def __post_init__(self):
        self.tokens = self.capacity
        self.last_update = time.monotonic()

    def refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_update
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_update = now

    def consume(self, tokens: float = 1.0) -> bool:
        self.refill()
        if self.tokens >= tokens:
            self.tokens -= tokens
            return True
        return False

    def wait_time(self, tokens: float = 1.0) -> float:
        """Seconds until `tokens` are available (0 if available now)."""
        self.refill()
        if self.tokens >= tokens:
            return 0.0
        return (tokens - self.tokens) / self.refill_rate


@dataclass
class RateLimitStats:
    """Per-venue throttle statistics"""
    total_requests: int = 0
    throttled_requests: int = 0
    total_wait_time_ms: float = 0.0
    max_wait_time_ms: float = 0.0

    def record_wait(self, wait_time_seconds: float) -> None:
        self.total_requests += 1
        if wait_time_seconds > 0:
            self.throttled_requests += 1
            wait_ms = wait_time_seconds * 1000.0
            self.total_wait_time_ms += wait_ms
            self.max_wait_time_ms = max(self.max_wait_time_ms, wait_ms)

    def throttled_pct(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return (self.throttled_requests / self.total_requests) * 100.0


class RateLimiter:
    """
    Pre-emptive rate limiter with one bucket per venue.

    Usage:
        limiter = RateLimiter({"jupiter": 1.0, "dexscreener": 5.0})
        limiter.acquire("jupiter")
        # ... make API call ...
    """

    DEFAULT_VENUE = "default"

    def __init__(
        self,
        limits: Optional[Dict[str, float]] = None,
        default_limit: float = 5.0,
        burst_multiplier: float = 2.0,
    ):
        """
        Args:
            limits: venue name -> requests/second
            default_limit: requests/second for venues without an explicit limit
            burst_multiplier: bucket capacity as a multiple of the rate
        """
        self._burst_multiplier = float(burst_multiplier)
        self._buckets: Dict[str, TokenBucket] = {}
        for venue, rate in (limits or {}).items():
            self._buckets[venue] = self._make_bucket(rate)
        self._buckets.setdefault(self.DEFAULT_VENUE, self._make_bucket(default_limit))
        self._stats: Dict[str, RateLimitStats] = defaultdict(RateLimitStats)
        self._lock = Lock()

        logger.info(
            "Initialized RateLimiter: %s (burst=%.1fx)",
            ", ".join(f"{name}={bucket.refill_rate}/s" for name, bucket in self._buckets.items()),
            self._burst_multiplier,
        )

    def _make_bucket(self, rate: float) -> TokenBucket:
        rate = max(float(rate), 0.01)
        return TokenBucket(capacity=max(1.0, rate * self._burst_multiplier), refill_rate=rate)

    def _bucket_for(self, venue: str) -> TokenBucket:
        return self._buckets.get(venue) or self._buckets[self.DEFAULT_VENUE]

    def acquire(self, venue: str, tokens: float = 1.0) -> float:
        """
        Block until a token for `venue` is available and consume it.

        Returns:
            Seconds spent waiting (0 if no wait needed)
        """
        bucket = self._bucket_for(venue)

        with self._lock:
            wait_time = bucket.wait_time(tokens)
            if wait_time == 0:
                bucket.consume(tokens)
                self._stats[venue].record_wait(0.0)
                return 0.0

        if wait_time > 1.0:
            logger.warning(f"Rate limit throttle: {venue} waiting {wait_time:.2f}s")
        else:
            logger.debug(f"Rate limit pause: {venue} waiting {wait_time:.3f}s")

        # Wait outside lock to avoid blocking other threads
        time.sleep(wait_time)

        with self._lock:
            bucket.consume(tokens)
            self._stats[venue].record_wait(wait_time)

        return wait_time

    def get_stats(self, venue: str) -> Dict[str, float]:
        with self._lock:
            stats = self._stats.get(venue, RateLimitStats())
            bucket = self._bucket_for(venue)
            return {
                "venue": venue,
                "total_requests": stats.total_requests,
                "throttled_requests": stats.throttled_requests,
                "throttled_pct": stats.throttled_pct(),
                "max_wait_time_ms": stats.max_wait_time_ms,
                "current_tokens": bucket.tokens,
                "capacity": bucket.capacity,
            }
