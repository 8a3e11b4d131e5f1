"""Tests for PriceService source selection and fallback."""

from unittest.mock import patch

import pytest

from core.exceptions import VenueError
from core.market_data import PriceService
from tests.helpers import BONK_MINT

DEX_RESPONSE = {
    "pairs": [
        {
            "baseToken": {"symbol": "BONK", "name": "Bonk"},
            "priceUsd": "0.0000199",
            "priceNative": "0.00000012",
            "liquidity": {"usd": 1_000},
            "volume": {"h24": 50},
        },
        {
            "baseToken": {"symbol": "BONK", "name": "Bonk"},
            "priceUsd": "0.0000201",
            "priceNative": "0.00000013",
            "liquidity": {"usd": 2_500_000},
            "volume": {"h24": 9_000_000},
            "priceChange": {"h24": -3.5},
        },
    ]
}

JUPITER_RESPONSE = {"data": {BONK_MINT: {"price": 0.00002, "mintSymbol": "BONK"}}}


def test_deepest_dexscreener_pair_wins():
    with patch("core.market_data.request_json", return_value=DEX_RESPONSE):
        analysis = PriceService().get_token_analysis(BONK_MINT)

    assert analysis.price_usd == pytest.approx(0.0000201)
    assert analysis.liquidity_usd == 2_500_000
    assert analysis.volume_24h == 9_000_000
    assert analysis.price_change_24h == -3.5
    assert analysis.name == "Bonk"


def test_falls_back_to_jupiter_when_no_pairs():
    with patch("core.market_data.request_json", side_effect=[{"pairs": None}, JUPITER_RESPONSE]) as request:
        analysis = PriceService().get_token_analysis(BONK_MINT)

    assert analysis.price_usd == 0.00002
    assert analysis.symbol == "BONK"
    assert request.call_args_list[1].kwargs["venue"] == "jupiter"


def test_falls_back_to_jupiter_on_dexscreener_error():
    side_effect = [VenueError("dexscreener", "HTTP 500"), JUPITER_RESPONSE]
    with patch("core.market_data.request_json", side_effect=side_effect):
        assert PriceService().get_price_usd(BONK_MINT) == 0.00002


def test_both_sources_fail_returns_none():
    side_effect = [VenueError("dexscreener", "HTTP 500"), {"data": {}}]
    with patch("core.market_data.request_json", side_effect=side_effect):
        assert PriceService().get_token_analysis(BONK_MINT) is None
