from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

from prometheus_client import generate_latest


class _HealthHandler(BaseHTTPRequestHandler):
    """HTTP handler serving liveness, readiness, effective config, and Prometheus metrics."""

    is_ready: Callable[[], bool]
    current_config: Callable[[], dict[str, Any]] | None

    def _respond(
        self, status: int, body: bytes = b"", content_type: str | None = None
    ) -> None:
        """Send an HTTP response with optional body and content type."""
        self.send_response(status)
        if content_type:
            self.send_header("Content-Type", content_type)
        self.end_headers()
        if body:
            self.wfile.write(body)

    def do_GET(self) -> None:
        if self.path == "/healthz":
            self._respond(200, b"ok")
        elif self.path == "/readyz":
            if type(self).is_ready():
                self._respond(200, b"synced=true")
            else:
                self._respond(503, b"synced=false")
        elif self.path == "/config":
            current_config = type(self).current_config
            if current_config is None:
                self._respond(404)
                return
            body = json.dumps(current_config(), sort_keys=True).encode()
            self._respond(200, body, "application/json")
        elif self.path == "/metrics":
            self._respond(200, generate_latest(), "text/plain; version=0.0.4; charset=utf-8")
        else:
            self._respond(404)

    def log_message(self, fmt: str, *args: Any) -> None:
        logging.getLogger("configurator.health").debug(fmt, *args)


def make_health_handler(
    is_ready: Callable[[], bool],
    current_config: Callable[[], dict[str, Any]] | None = None,
) -> type[_HealthHandler]:
    """Return a handler class bound to the given readiness and config callables.

    Uses class-level attribute binding so the stdlib HTTPServer can
    instantiate handlers without constructor arguments.
    """

    class _BoundHealthHandler(_HealthHandler):
        pass

    # staticmethod keeps the callables from being bound as methods.
    _BoundHealthHandler.is_ready = staticmethod(is_ready)  # type: ignore[assignment]
    _BoundHealthHandler.current_config = (  # type: ignore[assignment]
        staticmethod(current_config) if current_config is not None else None
    )
    return _BoundHealthHandler


def start_health_server(
    is_ready: Callable[[], bool],
    port: int,
    current_config: Callable[[], dict[str, Any]] | None = None,
) -> ThreadingHTTPServer:
    """Start the health/metrics HTTP server in a daemon thread and return it."""
    handler_class = make_health_handler(is_ready, current_config=current_config)
    server = ThreadingHTTPServer(("0.0.0.0", port), handler_class)  # noqa: S104
    server.daemon_threads = True
    server.block_on_close = False
    threading.Thread(target=server.serve_forever, daemon=True).start()
    logging.getLogger(__name__).info("Health server listening on :%d", port)
    return server
