"""Prometheus-backed metrics hooks for the decision loop and capability gateway."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Summary, start_http_server

logger = logging.getLogger(__name__)


@dataclass
class CycleStats:
    status: str
    turns: int
    tool_calls: int
    duration_seconds: float


class MetricsRecorder:
    """
    Expose decision-loop stats via Prometheus.

    Each recorder owns its CollectorRegistry, so several instances (tests,
    one-shot runs) never collide on metric registration.
    """

    def __init__(self, enabled: bool = True, port: int = 9100) -> None:
        self._enabled = bool(enabled)
        self._port = port
        self._started = False
        self.registry = CollectorRegistry()

        self._last_cycle_stats: Optional[CycleStats] = None
        self._tool_counts: Dict[str, int] = {}
        self._consecutive_failures = 0

        self._cycle_summary = Summary(
            "soltrader_cycle_duration_seconds",
            "Duration of a full decision cycle",
            registry=self.registry,
        )
        self._cycle_counter = Counter(
            "soltrader_cycle_total",
            "Total decision cycles by end reason",
            labelnames=("status",),
            registry=self.registry,
        )
        self._turns_gauge = Gauge(
            "soltrader_cycle_turns",
            "Planner turns used by the last cycle",
            registry=self.registry,
        )
        self._tool_counter = Counter(
            "soltrader_tool_calls_total",
            "Capability invocations by tool and outcome",
            labelnames=("tool", "outcome"),
            registry=self.registry,
        )
        self._positions_gauge = Gauge(
            "soltrader_open_positions",
            "Number of currently open or partial positions",
            registry=self.registry,
        )
        self._failures_gauge = Gauge(
            "soltrader_consecutive_cycle_failures",
            "Consecutive cycles that ended in an exception",
            registry=self.registry,
        )

    def start(self) -> None:
        if not self._enabled or self._started:
            return

        # Auto-retry on port conflict
        ports_to_try = [self._port, self._port + 1, self._port + 2, self._port + 3]
        last_error = None

        for port in ports_to_try:
            try:
                start_http_server(port, registry=self.registry)
                self._started = True
                if port != self._port:
                    logger.warning(
                        "Port %s in use, successfully bound to port %s instead",
                        self._port, port
                    )
                    self._port = port
                logger.info("Prometheus metrics exporter listening on 0.0.0.0:%s", self._port)
                return
            except OSError as exc:
                last_error = exc
                logger.debug("Port %s in use, trying next port...", port)

        self._enabled = False
        logger.error(
            "Failed to start metrics exporter after trying ports %s: %s",
            ports_to_try, last_error
        )

    def is_enabled(self) -> bool:
        return self._enabled

    def observe_cycle(self, stats: CycleStats) -> None:
        self._cycle_summary.observe(stats.duration_seconds)
        self._cycle_counter.labels(status=stats.status).inc()
        self._turns_gauge.set(stats.turns)
        self._last_cycle_stats = stats

    def record_tool_call(self, tool: str, ok: bool) -> None:
        outcome = "ok" if ok else "error"
        self._tool_counter.labels(tool=tool, outcome=outcome).inc()
        key = f"{tool}:{outcome}"
        self._tool_counts[key] = self._tool_counts.get(key, 0) + 1

    def record_open_positions(self, count: int) -> None:
        """Record number of open positions"""
        self._positions_gauge.set(max(count, 0))

    def record_consecutive_failures(self, count: int) -> None:
        self._consecutive_failures = max(count, 0)
        self._failures_gauge.set(self._consecutive_failures)

    def last_cycle(self) -> Optional[CycleStats]:
        return self._last_cycle_stats

    def tool_call_snapshot(self) -> Dict[str, int]:
        return dict(self._tool_counts)

    def consecutive_failures(self) -> int:
        return self._consecutive_failures


__all__ = ["MetricsRecorder", "CycleStats"]
