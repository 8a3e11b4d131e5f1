"""Shared exception types for core trading logic."""

from typing import Optional


class VenueError(RuntimeError):
    """Upstream venue (swap aggregator, RPC, price feed, social search) failed."""

    def __init__(self, venue: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{venue}: {message}")
        self.venue = venue
        self.status_code = status_code


class PriceImpactTooHigh(VenueError):
    """Quote was fetched but its price impact exceeds the configured ceiling."""

    def __init__(self, impact_pct: float, max_pct: float):
        super().__init__("jupiter", f"Price impact too high: {impact_pct:.2f}% (max: {max_pct}%)")
        self.impact_pct = impact_pct
        self.max_pct = max_pct


class InvalidToolInput(ValueError):
    """Planner requested a tool with arguments that failed validation."""

    def __init__(self, tool_name: str, detail: str):
        super().__init__(f"Invalid input for {tool_name}: {detail}")
        self.tool_name = tool_name
        self.detail = detail
