"""Read-only JSON API for the portfolio dashboard."""

from __future__ import annotations

import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable, Dict, List, Optional

from core.models import utc_now_iso

logger = logging.getLogger(__name__)

ACTIVITY_FEED_LIMIT = 200


class DashboardServer:
    """
    JSON server on a daemon thread with pluggable data providers.

    Routes:
    - GET /api/dashboard  portfolio summary
    - GET /api/activity   newest activity entries
    - GET /api/health     liveness
    """

    def __init__(
        self,
        port: int,
        dashboard_provider: Callable[[], Dict[str, Any]],
        activity_provider: Callable[[int], List[Dict[str, Any]]],
        host: str = "0.0.0.0",
    ):
        self._host = host
        self._port = int(port)
        self._dashboard_provider = dashboard_provider
        self._activity_provider = activity_provider
        self._server: Optional[HTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> Optional[int]:
        if self._server is None:
            return None
        return self._server.server_port

    def start(self) -> None:
        if self._thread:
            return

        handler_cls = self._build_handler(self._dashboard_provider, self._activity_provider)
        self._server = HTTPServer((self._host, self._port), handler_cls)
        self._thread = threading.Thread(target=self._server.serve_forever, name="DashboardServer", daemon=True)
        self._thread.start()
        logger.info("Dashboard API listening on %s:%s", self._host, self._server.server_port)

    def stop(self) -> None:
        if not self._server:
            return
        try:
            self._server.shutdown()
            self._server.server_close()
        except Exception as exc:
            logger.warning("Failed shutting down dashboard server: %s", exc)
        if self._thread:
            self._thread.join(timeout=3)
        self._thread = None
        self._server = None

    @staticmethod
    def _build_handler(
        dashboard_provider: Callable[[], Dict[str, Any]],
        activity_provider: Callable[[int], List[Dict[str, Any]]],
    ):
        routes: Dict[str, Callable[[], Any]] = {
            "/api/dashboard": dashboard_provider,
            "/api/activity": lambda: activity_provider(ACTIVITY_FEED_LIMIT),
            "/api/health": lambda: {"status": "ok", "timestamp": utc_now_iso()},
        }

        class DashboardHandler(BaseHTTPRequestHandler):
            def _cors(self) -> None:
                self.send_header("Access-Control-Allow-Origin", "*")
                self.send_header("Access-Control-Allow-Methods", "GET, OPTIONS")
                self.send_header("Access-Control-Allow-Headers", "Content-Type")

            def _send_json(self, status: int, payload: Any) -> None:
                body = json.dumps(payload, default=str).encode("utf-8")
                self.send_response(status)
                self._cors()
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def do_OPTIONS(self):  # type: ignore[override]
                self.send_response(200)
                self._cors()
                self.send_header("Content-Length", "0")
                self.end_headers()

            def do_GET(self):  # type: ignore[override]
                path = self.path.split("?", 1)[0]
                provider = routes.get(path)
                if provider is None:
                    self._send_json(404, {"error": "Not found"})
                    return

                try:
                    payload = provider()
                except Exception as exc:
                    logger.error("Dashboard route %s failed: %s", path, exc, exc_info=True)
                    self._send_json(500, {"error": str(exc)})
                    return

                self._send_json(200, payload)

            def log_message(self, format: str, *args: Any) -> None:
                return

        return DashboardHandler


__all__ = ["DashboardServer"]
