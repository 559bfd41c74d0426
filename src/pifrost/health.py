"""Optional HTTP health endpoint for Kubernetes probes."""

from __future__ import annotations

import threading
from collections.abc import Callable
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import structlog

logger = structlog.get_logger()


class HealthHandler(BaseHTTPRequestHandler):
    """HTTP handler for health endpoints.

    /healthz reports whether the watch loops are running, /readyz whether
    Pi-hole answers.
    """

    live_check: Callable[[], bool]
    ready_check: Callable[[], bool]

    def log_message(self, format: str, *args: object) -> None:
        """Suppress default HTTP logging to avoid noise."""
        pass

    def do_GET(self) -> None:
        if self.path == "/healthz":
            if self.live_check():
                self._respond(200, b"ok")
            else:
                self._respond(503, b"watchers stopped")
        elif self.path == "/readyz":
            if self.ready_check():
                self._respond(200, b"ready")
            else:
                self._respond(503, b"not ready")
        else:
            self._respond(404, b"not found")

    def _respond(self, code: int, body: bytes) -> None:
        self.send_response(code)
        self.send_header("Content-Type", "text/plain")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)


def start_health_server(
    port: int,
    live_check: Callable[[], bool],
    ready_check: Callable[[], bool],
) -> ThreadingHTTPServer:
    """Start the health server in a daemon thread.

    Returns:
        HTTPServer instance (call shutdown() to stop)
    """
    handler = type(
        "BoundHealthHandler",
        (HealthHandler,),
        {
            "live_check": staticmethod(live_check),
            "ready_check": staticmethod(ready_check),
        },
    )

    server = ThreadingHTTPServer(("", port), handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    logger.info("Health server started", port=port)
    return server
