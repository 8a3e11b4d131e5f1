"""
soltrader Runner: Operator console

Line-oriented stdin commands read on a daemon thread:
    <mint address>   queue a manual buy (the planner analyzes first)
    status           show open positions
    balance          show SOL balance
    exit | quit      stop the agent
"""

import logging
import sys
import threading
from typing import Callable, Optional, TextIO

from core.wallet import is_valid_mint

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "Commands:\n"
    "  <contract_address>  - Buy a token (agent will analyze first)\n"
    "  status              - Show open positions\n"
    "  balance             - Show SOL balance\n"
    "  exit                - Stop the agent\n"
)


class ConsoleCommands:
    def __init__(
        self,
        positions,
        wallet,
        on_manual_buy: Callable[[str], None],
        on_exit: Callable[[], None],
        stdin: Optional[TextIO] = None,
        stdout: Optional[TextIO] = None,
    ):
        self.positions = positions
        self.wallet = wallet
        self.on_manual_buy = on_manual_buy
        self.on_exit = on_exit
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread:
            return
        self._write(HELP_TEXT)
        self._thread = threading.Thread(target=self._read_loop, name="ConsoleCommands", daemon=True)
        self._thread.start()

    def handle(self, line: str) -> bool:
        """Process one command line. Returns False once exit was requested."""
        command = line.strip()
        if not command:
            return True

        if command in ("exit", "quit"):
            logger.info("Shutting down...")
            self.on_exit()
            return False

        if command in ("status", "portfolio"):
            self._print_status()
        elif command == "balance":
            try:
                self._write(f"SOL Balance: {self.wallet.get_sol_balance()}\n")
            except Exception as e:
                self._write(f"Balance unavailable: {e}\n")
        elif is_valid_mint(command):
            logger.info(f"Manual buy requested: {command}")
            self.on_manual_buy(command)
            self._write(f"Queued manual buy for {command}\n")
        else:
            self._write('Unknown command. Paste a Solana token address to buy, or type "status", "balance", "exit".\n')
        return True

    def _print_status(self) -> None:
        open_positions = self.positions.open_positions()
        if not open_positions:
            self._write("No open positions.\n")
            return
        self._write("\n=== Open Positions ===\n")
        for pos in open_positions:
            self._write(
                f"  {pos.label} | Invested: {pos.entry_sol} SOL | P&L: {pos.pnl_pct:.1f}% | Status: {pos.status}\n"
            )
        self._write("\n")

    def _read_loop(self) -> None:
        for line in self.stdin:
            if not self.handle(line):
                return

    def _write(self, text: str) -> None:
        self.stdout.write(text)
        self.stdout.flush()
