"""
soltrader Runner: Main Loop

Wires the agent together and keeps it running.

Flow:
1. Load and validate config (config/app.yaml) and secrets (environment)
2. Build ledger, venues, capability gateway and planner
3. Refuse to start on an underfunded wallet
4. Start the read API and the operator console
5. Supervise decision cycles until SIGINT/SIGTERM or `exit`
"""

import logging
import os
import queue
import signal
import sys
from pathlib import Path
from typing import Dict, Optional

from ai.llm_client import AnthropicPlannerClient
from core.capabilities import CapabilityGateway, GatewaySettings
from core.exchange_jupiter import JupiterSwapVenue
from core.market_data import PriceService
from core.portfolio_view import build_dashboard
from core.position_manager import PositionManager
from core.social_search import SocialSearchClient
from core.trading_cycle import CycleResult, DecisionLoop, manual_buy_seed
from core.wallet import SolanaWallet, is_valid_mint
from infra.activity_log import ActivityLog
from infra.dashboard_api import DashboardServer
from infra.ledger_store import LedgerStore
from infra.metrics import MetricsRecorder
from infra.rate_limiter import RateLimiter
from runner.console import ConsoleCommands
from runner.supervisor import CycleSupervisor
from tools.config_validator import AppConfigSchema, load_app_config

logger = logging.getLogger(__name__)

REQUIRED_SECRETS = ("SOLANA_RPC_URL", "WALLET_PRIVATE_KEY", "ANTHROPIC_API_KEY", "X_API_KEY")
OPTIONAL_SECRETS = ("JUPITER_API_KEY",)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def load_secrets() -> Dict[str, Optional[str]]:
    """
    Read credentials from the environment.

    Raises:
        ValueError: naming every missing required variable
    """
    missing = [key for key in REQUIRED_SECRETS if not os.getenv(key)]
    if missing:
        raise ValueError(f"Missing required environment variable(s): {', '.join(missing)}")
    secrets = {key: os.getenv(key) for key in REQUIRED_SECRETS}
    secrets.update({key: os.getenv(key) for key in OPTIONAL_SECRETS})
    return secrets


def configure_logging(config: AppConfigSchema) -> None:
    log_file = Path(config.logging.file)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, config.logging.level),
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(),
        ],
    )


class TradingLoop:
    """
    Main agent orchestrator.

    Responsibilities:
    - Load config and secrets
    - Build and own every long-lived component
    - Queue manual buy requests for the next cycle
    - Run supervised cycles and shut down cleanly

    Venue clients and the planner can be injected; anything not injected
    is built from config and environment secrets.
    """

    def __init__(
        self,
        config_dir: str = "config",
        *,
        config: Optional[AppConfigSchema] = None,
        wallet=None,
        venue=None,
        prices=None,
        social=None,
        planner=None,
        install_signal_handlers: bool = True,
    ):
        self.config = config or load_app_config(config_dir)
        cfg = self.config

        secrets: Dict[str, Optional[str]] = {}
        if any(component is None for component in (wallet, venue, social, planner)):
            secrets = load_secrets()

        self.metrics = MetricsRecorder(enabled=cfg.monitoring.metrics_enabled, port=cfg.monitoring.metrics_port)
        self.rate_limiter = RateLimiter(limits=cfg.venues.rate_limits)
        http_opts = {
            "rate_limiter": self.rate_limiter,
            "timeout": cfg.venues.request_timeout_s,
            "max_retries": cfg.venues.max_retries,
        }

        self.ledger = LedgerStore(cfg.state.positions_file)
        self.positions = PositionManager(self.ledger)
        self.activity = ActivityLog(cfg.state.activity_file, max_entries=cfg.state.activity_max_entries)

        self.wallet = wallet or SolanaWallet(secrets["SOLANA_RPC_URL"], secrets["WALLET_PRIVATE_KEY"])
        self.venue = venue or JupiterSwapVenue(
            self.wallet,
            slippage_bps=cfg.trading.slippage_bps,
            api_key=secrets.get("JUPITER_API_KEY"),
            base_url=cfg.venues.jupiter_swap_url,
            **http_opts,
        )
        self.prices = prices or PriceService(
            dexscreener_url=cfg.venues.dexscreener_url,
            jupiter_price_url=cfg.venues.jupiter_price_url,
            **http_opts,
        )
        self.social = social or SocialSearchClient(
            secrets["X_API_KEY"],
            url=cfg.venues.social_search_url,
            max_pages=cfg.social.max_pages,
            **http_opts,
        )
        self.planner = planner or AnthropicPlannerClient(
            api_key=secrets["ANTHROPIC_API_KEY"],
            model=cfg.agent.model,
            max_tokens=cfg.agent.max_tokens,
        )

        self.gateway = CapabilityGateway(
            self.positions,
            self.wallet,
            self.venue,
            self.prices,
            self.social,
            settings=GatewaySettings.from_config(cfg),
            activity_log=self.activity,
            metrics=self.metrics,
        )
        self.decision_loop = DecisionLoop(
            self.planner,
            self.gateway,
            max_turns=cfg.agent.max_turns,
            activity_log=self.activity,
            metrics=self.metrics,
        )
        self.supervisor = CycleSupervisor(
            self._next_cycle,
            base_backoff_s=cfg.supervisor.base_backoff_s,
            max_backoff_s=cfg.supervisor.max_backoff_s,
            cooldown_s=cfg.supervisor.cooldown_s,
            max_consecutive_failures=cfg.supervisor.max_consecutive_failures,
            metrics=self.metrics,
        )

        self._manual_seeds: "queue.Queue[str]" = queue.Queue()
        self.dashboard: Optional[DashboardServer] = None
        self.console: Optional[ConsoleCommands] = None

        if install_signal_handlers:
            signal.signal(signal.SIGINT, self._handle_stop)
            signal.signal(signal.SIGTERM, self._handle_stop)

        logger.info("Initialized TradingLoop")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def preflight(self) -> float:
        """
        Check the wallet can trade.

        Raises:
            RuntimeError: balance below the configured start minimum
        """
        balance = self.wallet.get_sol_balance()
        logger.info(f"Wallet: {self.wallet.public_key}")
        logger.info(f"Balance: {balance} SOL")

        minimum = self.config.trading.min_start_balance_sol
        if balance < minimum:
            raise RuntimeError(
                f"Wallet balance too low ({balance} SOL, need {minimum}). "
                f"Send SOL to: {self.wallet.public_key}"
            )
        return balance

    def request_manual_buy(self, mint: str) -> None:
        if not is_valid_mint(mint):
            raise ValueError(f"Not a valid Solana mint address: {mint!r}")
        self._manual_seeds.put(manual_buy_seed(mint))
        self.activity.log("info", f"Manual buy requested: {mint}", {"mint": mint})

    def pending_manual_requests(self) -> int:
        return self._manual_seeds.qsize()

    def run_once(self) -> CycleResult:
        return self._next_cycle()

    def run_forever(self, with_console: bool = True) -> None:
        """Supervise cycles until stopped. Call preflight() first."""
        self.metrics.start()
        self._start_dashboard()
        if with_console:
            self.console = ConsoleCommands(
                self.positions,
                self.wallet,
                on_manual_buy=self.request_manual_buy,
                on_exit=self.stop,
            )
            self.console.start()

        logger.info("Starting autonomous trading agent...")
        try:
            self.supervisor.run_forever()
        finally:
            self._stop_dashboard()
        logger.info("Trading loop stopped cleanly.")

    def stop(self) -> None:
        self.supervisor.stop()

    def _handle_stop(self, *_):
        logger.warning("Shutdown signal received - stopping after the current step")
        self.stop()

    def _next_cycle(self) -> CycleResult:
        try:
            seed = self._manual_seeds.get_nowait()
        except queue.Empty:
            seed = None
        return self.decision_loop.run_cycle(seed)

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    def dashboard_snapshot(self) -> Dict:
        return build_dashboard(self.positions, self.prices, self.wallet, self.activity)

    def _start_dashboard(self) -> None:
        api = self.config.api
        if not api.enabled or self.dashboard is not None:
            return
        self.dashboard = DashboardServer(
            api.port,
            dashboard_provider=self.dashboard_snapshot,
            activity_provider=self.activity.recent,
            host=api.host,
        )
        try:
            self.dashboard.start()
        except OSError as exc:
            logger.error(f"Dashboard API failed to start on port {api.port}: {exc}")
            self.dashboard = None

    def _stop_dashboard(self) -> None:
        if self.dashboard is not None:
            self.dashboard.stop()
            self.dashboard = None


def main():
    """Entry point"""
    import argparse

    parser = argparse.ArgumentParser(description="soltrader - LLM-driven Solana trading agent")
    parser.add_argument("--once", action="store_true", help="Run one cycle and exit")
    parser.add_argument("--buy", metavar="MINT", help="Queue a manual buy for the first cycle")
    parser.add_argument("--config-dir", default="config", help="Config directory")

    args = parser.parse_args()

    config = load_app_config(args.config_dir)
    configure_logging(config)

    loop = TradingLoop(config_dir=args.config_dir, config=config)

    try:
        loop.preflight()
    except RuntimeError as e:
        logger.error(str(e))
        sys.exit(1)

    if args.buy:
        try:
            loop.request_manual_buy(args.buy)
        except ValueError as e:
            logger.error(str(e))
            sys.exit(1)

    if args.once:
        loop.run_once()
    else:
        loop.run_forever(with_console=sys.stdin.isatty())


if __name__ == "__main__":
    main()
