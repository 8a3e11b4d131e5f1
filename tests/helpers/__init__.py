"""Test helpers for soltrader test suite"""

from tests.helpers.venue_stubs import (
    BONK_MINT,
    USDC_MINT,
    WSOL_MINT,
    FakePriceService,
    FakeSocialSearch,
    FakeSwapVenue,
    FakeWallet,
    final_turn,
    tool_turn,
)

__all__ = [
    "BONK_MINT",
    "USDC_MINT",
    "WSOL_MINT",
    "FakePriceService",
    "FakeSocialSearch",
    "FakeSwapVenue",
    "FakeWallet",
    "final_turn",
    "tool_turn",
]
