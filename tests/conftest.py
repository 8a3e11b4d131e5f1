"""
Pytest configuration and fixtures for soltrader tests.

This conftest.py provides shared fixtures for all tests. Every fixture
that touches disk is rooted in tmp_path so tests never share a ledger.
"""
import pytest

from core.capabilities import CapabilityGateway, GatewaySettings
from core.position_manager import PositionManager
from infra.activity_log import ActivityLog
from infra.ledger_store import LedgerStore
from infra.metrics import MetricsRecorder
from tests.helpers import (
    BONK_MINT,
    USDC_MINT,
    FakePriceService,
    FakeSocialSearch,
    FakeSwapVenue,
    FakeWallet,
)


@pytest.fixture
def ledger_store(tmp_path):
    return LedgerStore(str(tmp_path / "positions.json"))


@pytest.fixture
def positions(ledger_store):
    return PositionManager(ledger_store)


@pytest.fixture
def activity_log(tmp_path):
    return ActivityLog(str(tmp_path / "activity.json"))


@pytest.fixture
def metrics():
    return MetricsRecorder(enabled=False)


@pytest.fixture
def wallet():
    return FakeWallet(sol_balance=1.0)


@pytest.fixture
def venue(wallet):
    return FakeSwapVenue(wallet, price_sol={BONK_MINT: 1.0, USDC_MINT: 1.0})


@pytest.fixture
def prices():
    return FakePriceService(
        prices_usd={BONK_MINT: 0.00002, USDC_MINT: 1.0},
        symbols={BONK_MINT: "BONK", USDC_MINT: "USDC"},
    )


@pytest.fixture
def social():
    return FakeSocialSearch()


@pytest.fixture
def sleeps():
    """Records durations passed to injected sleep functions."""
    return []


@pytest.fixture
def gateway(positions, wallet, venue, prices, social, activity_log, metrics, sleeps):
    return CapabilityGateway(
        positions,
        wallet,
        venue,
        prices,
        social,
        settings=GatewaySettings(
            buy_amount_sol=0.1,
            max_concurrent_positions=5,
            max_price_impact_pct=10.0,
            fee_reserve_sol=0.01,
        ),
        activity_log=activity_log,
        metrics=metrics,
        sleep_fn=sleeps.append,
    )
