"""
Tests for the CapabilityGateway.

Covers boundary validation, buy/sell guard rails, realized P&L
accounting, portfolio sync (phantom positions) and the read-only tools.
"""

import pytest

from core.capabilities import GatewaySettings, ToolResult
from core.social_search import SocialPost
from tests.helpers import BONK_MINT, USDC_MINT
from tools.config_validator import AppConfigSchema


def _buy(gateway, mint=BONK_MINT, amount=0.1):
    return gateway.execute("buy_token", {"mint_address": mint, "sol_amount": amount})


class TestDispatch:
    def test_unknown_tool(self, gateway):
        result = gateway.execute("launch_rocket", {})
        assert not result.ok
        assert "Unknown tool" in result.error

    def test_tool_result_serializes(self):
        assert ToolResult.success({"a": 1}).to_dict() == {"ok": True, "payload": {"a": 1}}
        assert ToolResult.failure("nope").to_dict() == {"ok": False, "error": "nope"}

    @pytest.mark.parametrize("raw", [
        {"mint_address": "not-a-mint", "sol_amount": 0.1},
        {"mint_address": BONK_MINT, "sol_amount": 0},
        {"mint_address": BONK_MINT, "sol_amount": -1},
        {"mint_address": BONK_MINT, "sol_amount": "lots"},
        {"sol_amount": 0.1},
        "BONK please",
    ])
    def test_malformed_buy_has_no_side_effect(self, gateway, positions, venue, raw):
        result = gateway.execute("buy_token", raw)
        assert not result.ok
        assert "Invalid input for buy_token" in result.error
        assert venue.quotes == []
        assert positions.all_positions() == []

    def test_metrics_record_outcomes(self, gateway, metrics):
        gateway.execute("get_wallet_balance", {})
        gateway.execute("launch_rocket", {})
        snap = metrics.tool_call_snapshot()
        assert snap["get_wallet_balance:ok"] == 1
        assert snap["launch_rocket:error"] == 1


class TestBuy:
    def test_successful_buy_opens_position(self, gateway, positions, activity_log):
        result = _buy(gateway)

        assert result.ok, result.error
        assert result.payload["tx_signature"] == "sig1"
        pos = positions.get(BONK_MINT)
        assert pos.entry_sol == 0.1
        assert pos.token_amount == 100_000
        assert pos.source_ref is None

    def test_buy_records_triggering_post(self, gateway, positions, activity_log):
        result = gateway.execute(
            "buy_token", {"mint_address": BONK_MINT, "sol_amount": 0.1, "source_ref": "1790000000000000001"},
        )

        assert result.ok, result.error
        pos = positions.get(BONK_MINT)
        assert positions.get(BONK_MINT).source_ref == "1790000000000000001"
        assert pos.symbol == "BONK"
        assert pos.entry_price_usd == 0.00002
        assert pos.tx_signatures == ["sig1"]
        assert activity_log.recent(1)[0]["type"] == "buy"

    def test_amount_above_twice_ticket_refused(self, gateway, venue):
        result = _buy(gateway, amount=0.21)
        assert not result.ok
        assert "exceeds safety limit" in result.error
        assert venue.quotes == []

    def test_duplicate_buy_blocked(self, gateway, venue):
        assert _buy(gateway).ok
        result = _buy(gateway)
        assert not result.ok
        assert "Duplicate buy blocked" in result.error
        assert len(venue.executed) == 1

    def test_previously_sold_mint_blocked(self, gateway):
        assert _buy(gateway).ok
        assert gateway.execute("sell_token", {"mint_address": BONK_MINT}).ok
        assert not _buy(gateway).ok

    def test_position_ceiling(self, gateway):
        gateway.settings.max_concurrent_positions = 1
        assert _buy(gateway, mint=BONK_MINT).ok
        result = _buy(gateway, mint=USDC_MINT)
        assert not result.ok
        assert "Max concurrent positions" in result.error

    def test_insufficient_balance_keeps_fee_reserve(self, gateway, wallet, venue):
        wallet.sol_balance = 0.105
        result = _buy(gateway)
        assert not result.ok
        assert "Insufficient balance" in result.error
        assert venue.quotes == []

    def test_price_impact_too_high_aborts_before_swap(self, gateway, venue, positions):
        venue.price_impact_pct = 12.5
        result = _buy(gateway)
        assert not result.ok
        assert "Price impact too high" in result.error
        assert venue.executed == []
        assert positions.all_positions() == []

    def test_swap_failure_creates_no_position(self, gateway, venue, positions, activity_log):
        venue.fail_execute = True
        result = _buy(gateway)
        assert not result.ok
        assert positions.all_positions() == []
        assert not positions.has_open_or_seen(BONK_MINT)
        assert activity_log.recent(1)[0]["type"] == "error"

    def test_unpriced_token_still_buys_at_zero_entry(self, gateway, prices, positions):
        del prices.prices_usd[BONK_MINT]
        assert _buy(gateway).ok
        assert positions.get(BONK_MINT).entry_price_usd == 0.0


class TestSell:
    def test_buy_then_half_sell_at_double_price(self, gateway, venue, positions):
        assert _buy(gateway, amount=0.1).ok
        venue.price_sol[BONK_MINT] = 2.0

        result = gateway.execute("sell_token", {"mint_address": BONK_MINT, "percentage": 50})

        assert result.ok, result.error
        assert result.payload["sol_received"] == pytest.approx(0.1)
        assert result.payload["real_pnl_sol"] == pytest.approx(0.05)
        # +100% on the half that was sold
        assert result.payload["real_pnl_sol"] / 0.05 * 100 == pytest.approx(100.0)
        pos = positions.get(BONK_MINT)
        assert pos.status == "partial"
        assert pos.entry_sol == pytest.approx(0.05)
        assert pos.token_amount == 50_000
        assert pos.pnl_sol == pytest.approx(0.05)
        assert pos.pnl_sol / pos.cost_basis_sold_sol * 100 == pytest.approx(100.0)
        assert pos.tx_signatures == ["sig1", "sig2"]

    def test_full_sell_closes_with_realized_pct(self, gateway, venue, positions):
        assert _buy(gateway, amount=0.1).ok
        venue.price_sol[BONK_MINT] = 0.5

        result = gateway.execute("sell_token", {"mint_address": BONK_MINT})

        assert result.ok
        assert positions.get(BONK_MINT) is None
        closed = positions.closed_positions()[0]
        assert closed.status == "closed"
        assert closed.token_amount == 0
        assert closed.pnl_sol == pytest.approx(-0.05)
        assert closed.pnl_pct == pytest.approx(-50.0)
        assert closed.closed_at is not None

    def test_round_trip_accounting(self, gateway, venue, positions):
        """Realized P&L over all tranches equals SOL out minus SOL in."""
        assert _buy(gateway, amount=0.2).ok
        venue.price_sol[BONK_MINT] = 1.5
        out1 = gateway.execute("sell_token", {"mint_address": BONK_MINT, "percentage": 25}).payload["sol_received"]
        venue.price_sol[BONK_MINT] = 3.0
        out2 = gateway.execute("sell_token", {"mint_address": BONK_MINT, "percentage": 40}).payload["sol_received"]
        venue.price_sol[BONK_MINT] = 0.8
        out3 = gateway.execute("sell_token", {"mint_address": BONK_MINT, "percentage": 100}).payload["sol_received"]

        closed = positions.closed_positions()[0]
        assert closed.pnl_sol == pytest.approx(out1 + out2 + out3 - 0.2)
        assert closed.cost_basis_sold_sol == pytest.approx(0.2)
        assert len(closed.tx_signatures) == 4

    def test_percentage_clamped(self, gateway, venue, wallet):
        assert _buy(gateway).ok
        result = gateway.execute("sell_token", {"mint_address": BONK_MINT, "percentage": 250})
        assert result.ok
        assert result.payload["percentage_sold"] == 100.0
        assert wallet.token_balances[BONK_MINT] == 0

    def test_zero_balance_refused_without_mutation(self, gateway, positions, venue):
        assert _buy(gateway).ok
        venue.wallet.token_balances[BONK_MINT] = 0
        before = positions.get(BONK_MINT)

        result = gateway.execute("sell_token", {"mint_address": BONK_MINT})

        assert not result.ok
        assert "No tokens found" in result.error
        assert positions.get(BONK_MINT) == before

    def test_sell_amount_rounding_to_zero_refused(self, gateway, wallet, venue):
        wallet.token_balances[BONK_MINT] = 1
        result = gateway.execute("sell_token", {"mint_address": BONK_MINT, "percentage": 50})
        assert not result.ok
        assert "too small" in result.error
        assert venue.quotes == []

    def test_untracked_token_sells_without_ledger_change(self, gateway, wallet, positions):
        wallet.token_balances[USDC_MINT] = 1_000
        result = gateway.execute("sell_token", {"mint_address": USDC_MINT})
        assert result.ok
        assert result.payload["real_pnl_sol"] is None
        assert positions.all_positions() == []


class TestSyncPortfolio:
    def test_phantom_positions_closed(self, gateway, positions, wallet, activity_log):
        assert _buy(gateway, mint=BONK_MINT).ok
        assert _buy(gateway, mint=USDC_MINT).ok
        wallet.token_balances[BONK_MINT] = 0

        result = gateway.execute("sync_portfolio", {})

        assert result.ok
        assert result.payload["phantom_positions_cleaned"] == 1
        assert result.payload["remaining_open_positions"] == 1
        closed = positions.closed_positions()[0]
        assert closed.mint == BONK_MINT
        assert closed.pnl_pct == -100.0
        assert closed.pnl_sol == pytest.approx(-closed.entry_sol)
        assert not positions.has_open_or_seen(BONK_MINT)
        assert activity_log.recent(1)[0]["type"] == "info"

    def test_failed_balance_check_skips_asset(self, gateway, positions, wallet):
        assert _buy(gateway, mint=BONK_MINT).ok
        wallet.token_balances[BONK_MINT] = 0
        wallet.failing_mints.add(BONK_MINT)

        result = gateway.execute("sync_portfolio", {})

        assert result.ok
        assert result.payload["skipped"] == 1
        assert positions.open_count() == 1


class TestReadOnlyTools:
    def test_wallet_balance(self, gateway, wallet):
        result = gateway.execute("get_wallet_balance", {})
        assert result.ok
        assert result.payload == {"public_key": wallet.public_key, "sol_balance": 1.0}

    def test_wallet_balance_rpc_error(self, gateway, wallet):
        wallet.fail_sol_balance = True
        result = gateway.execute("get_wallet_balance", {})
        assert not result.ok
        assert "solana-rpc" in result.error

    def test_analyze_token(self, gateway):
        result = gateway.execute("analyze_token", {"mint_address": BONK_MINT})
        assert result.ok
        assert result.payload["symbol"] == "BONK"
        assert result.payload["liquidity_usd"] == 50_000.0

    def test_analyze_token_without_data(self, gateway, prices):
        prices.prices_usd.clear()
        result = gateway.execute("analyze_token", {"mint_address": BONK_MINT})
        assert not result.ok
        assert result.error.startswith("No data found")

    def test_get_portfolio_refreshes_marks(self, gateway, prices, positions):
        assert _buy(gateway).ok
        prices.prices_usd[BONK_MINT] = 0.00003

        result = gateway.execute("get_portfolio", {})

        assert result.ok
        row = result.payload["open_positions"][0]
        assert row["pnl_pct"] == pytest.approx(50.0)
        assert positions.get(BONK_MINT).current_price_usd == 0.00003
        assert positions.get(BONK_MINT).pnl_pct == pytest.approx(50.0)

    def test_search_posts_filters_and_logs_signals(self, gateway, social, activity_log):
        social.posts = [
            SocialPost(id="1", text=f"new gem {BONK_MINT}", author="alice", created_at="",
                       likes=120, retweets=3, extracted_mints=[BONK_MINT]),
            SocialPost(id="2", text="quiet post", author="bob", created_at="", likes=1, retweets=0),
        ]

        result = gateway.execute("search_posts", {"query": "solana memecoin"})

        assert result.ok
        assert result.payload["count"] == 1
        assert result.payload["posts"][0]["token_addresses_found"] == [BONK_MINT]
        assert activity_log.recent(1)[0]["type"] == "signal"

    def test_search_posts_upstream_error_is_empty_success(self, gateway, social):
        social.fail = True
        result = gateway.execute("search_posts", {"query": "solana"})
        assert result.ok
        assert result.payload == {"count": 0, "posts": []}

    @pytest.mark.parametrize("requested,expected", [(None, 60.0), (1, 10.0), (45, 45.0), (9999, 300.0)])
    def test_wait_clamps(self, gateway, sleeps, requested, expected):
        raw = {} if requested is None else {"seconds": requested}
        result = gateway.execute("wait", raw)
        assert result.ok
        assert sleeps == [expected]
        assert result.payload["waited_seconds"] == expected

    def test_malformed_wait_still_pauses_for_default(self, gateway, sleeps):
        result = gateway.execute("wait", {"seconds": "soon"})

        assert result.ok
        assert sleeps == [60.0]
        assert "Invalid input for wait" in result.payload["warning"]

    def test_search_posts_uses_configured_thresholds(self, gateway, social):
        gateway.settings.min_likes = 100
        gateway.settings.min_retweets = 20
        social.posts = [
            SocialPost(id="1", text="mid post", author="carol", created_at="", likes=60, retweets=0),
            SocialPost(id="2", text="big post", author="dave", created_at="", likes=150, retweets=0),
        ]

        result = gateway.execute("search_posts", {"query": "solana"})
        assert [p["id"] for p in result.payload["posts"]] == ["2"]

        result = gateway.execute("search_posts", {"query": "solana", "min_likes": 50})
        assert [p["id"] for p in result.payload["posts"]] == ["1", "2"]


def test_gateway_settings_from_config():
    config = AppConfigSchema(
        trading={"buy_amount_sol": 0.25, "max_concurrent_positions": 3},
        social={"min_likes": 200, "min_retweets": 40},
    )
    settings = GatewaySettings.from_config(config)

    assert settings.buy_amount_sol == 0.25
    assert settings.max_concurrent_positions == 3
    assert settings.min_likes == 200
    assert settings.min_retweets == 40
