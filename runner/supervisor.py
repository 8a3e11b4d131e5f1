"""
soltrader Runner: Cycle Supervisor

Keeps decision cycles running back-to-back and contains their failures.

Backoff on consecutive failures:
- sleep min(base * 2^(failures-1), max_backoff)
- at max_consecutive_failures, also sleep the cool-down and reset the count
- any successful cycle resets the count

Sleeps wait on a threading.Event so stop() interrupts them.
"""

import logging
import threading
import time
from typing import Any, Callable, Optional

from infra.metrics import CycleStats

logger = logging.getLogger(__name__)


class CycleSupervisor:
    def __init__(
        self,
        cycle_fn: Callable[[], Any],
        base_backoff_s: float = 10.0,
        max_backoff_s: float = 120.0,
        cooldown_s: float = 300.0,
        max_consecutive_failures: int = 5,
        metrics=None,
        sleep_fn: Optional[Callable[[float], None]] = None,
    ):
        self.cycle_fn = cycle_fn
        self.base_backoff_s = base_backoff_s
        self.max_backoff_s = max_backoff_s
        self.cooldown_s = cooldown_s
        self.max_consecutive_failures = max_consecutive_failures
        self.metrics = metrics
        self.consecutive_failures = 0
        self._stop_event = threading.Event()
        self._sleep_fn = sleep_fn

    @property
    def running(self) -> bool:
        return not self._stop_event.is_set()

    def stop(self) -> None:
        if not self._stop_event.is_set():
            logger.warning("Supervisor stop requested")
        self._stop_event.set()

    def backoff_for(self, failures: int) -> float:
        return min(self.base_backoff_s * (2 ** (failures - 1)), self.max_backoff_s)

    def run_once(self) -> bool:
        """Run one cycle; on failure apply backoff. Returns True on success."""
        started = time.monotonic()
        try:
            self.cycle_fn()
        except Exception as e:
            if self.metrics is not None:
                self.metrics.observe_cycle(CycleStats(
                    status="failed",
                    turns=0,
                    tool_calls=0,
                    duration_seconds=time.monotonic() - started,
                ))
            self._on_failure(e)
            return False

        if self.consecutive_failures:
            logger.info(f"Cycle succeeded after {self.consecutive_failures} consecutive failure(s)")
        self.consecutive_failures = 0
        self._record_failures()
        return True

    def run_forever(self) -> None:
        logger.info("Supervisor starting continuous cycles")
        while self.running:
            self.run_once()
        logger.info("Supervisor stopped cleanly.")

    def _on_failure(self, error: Exception) -> None:
        self.consecutive_failures += 1
        self._record_failures()
        logger.error(f"Agent cycle error ({self.consecutive_failures}): {error}", exc_info=True)

        delay = self.backoff_for(self.consecutive_failures)
        logger.info(f"Waiting {delay:g}s before retry...")
        self._sleep(delay)

        if self.consecutive_failures >= self.max_consecutive_failures:
            logger.error(
                f"Too many consecutive errors ({self.consecutive_failures}). "
                f"Cooling down for {self.cooldown_s:g}s before next attempt."
            )
            self._sleep(self.cooldown_s)
            self.consecutive_failures = 0
            self._record_failures()

    def _sleep(self, seconds: float) -> None:
        if seconds <= 0 or not self.running:
            return
        if self._sleep_fn is not None:
            self._sleep_fn(seconds)
        else:
            self._stop_event.wait(seconds)

    def _record_failures(self) -> None:
        if self.metrics is not None:
            self.metrics.record_consecutive_failures(self.consecutive_failures)
