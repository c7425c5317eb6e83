"""One-shot loopback HTTP receiver for the OAuth redirect.

:class:`CallbackReceiver` binds a :class:`http.server.ThreadingHTTPServer`
to an OS-assigned port on ``127.0.0.1`` and accepts connections from a
background thread until the first request to ``/callback`` arrives. That
request's query string is parsed into :class:`~cloudctl.models.CallbackParams`,
answered with a static success page, and the listening socket is closed
straight after, so no further connection is accepted. Requests to any other
path get a ``404`` and leave the receiver waiting. Each connection is handled
in its own daemon thread with a read timeout, so a browser's idle
preconnect socket cannot hold up the real redirect.

Use it as a context manager; the listener is released on every exit path::

    with CallbackReceiver() as receiver:
        open_browser(build_url(receiver.redirect_uri))
        params = receiver.wait(timeout=300)
"""

from __future__ import annotations

import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Optional
from urllib.parse import parse_qs, urlparse

from cloudctl.exceptions import CallbackTimeoutError
from cloudctl.models import CallbackParams

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/callback"
LOOPBACK_HOST = "127.0.0.1"

# How often the serving thread checks whether it should stop.
_POLL_INTERVAL = 0.1

# Idle connections are dropped after this many seconds.
_READ_TIMEOUT = 5.0

# Upper bound for joining the serving thread.
_JOIN_TIMEOUT = 5.0

SUCCESS_PAGE = """<!DOCTYPE html>
<html>
  <head><meta charset="utf-8"><title>cloudctl</title></head>
  <body style="font-family: sans-serif; text-align: center; margin-top: 4em;">
    <h2>Authentication complete</h2>
    <p>You can close this window and return to the terminal.</p>
  </body>
</html>
"""


class _CallbackHandler(BaseHTTPRequestHandler):
    server: _CallbackServer
    timeout = _READ_TIMEOUT

    def do_GET(self) -> None:
        parsed = urlparse(self.path)
        if parsed.path != self.server.callback_path or not self.server.claim():
            self.send_response(404)
            self.send_header("Content-Length", "0")
            self.end_headers()
            return

        # Only the path is logged; the query carries the authorization code.
        logger.debug("Callback received on %s", parsed.path)
        raw = parse_qs(parsed.query, keep_blank_values=True)
        self.server.params = CallbackParams.model_validate(
            {key: values[0] for key, values in raw.items()}
        )

        body = self.server.success_page.encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)
        self.server.received.set()

    def log_message(self, format: str, *args: Any) -> None:
        # Suppress default stderr logging
        pass


class _CallbackServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, callback_path: str, success_page: str) -> None:
        super().__init__((LOOPBACK_HOST, 0), _CallbackHandler)
        self.callback_path = callback_path
        self.success_page = success_page
        self.received = threading.Event()
        self._claim_lock = threading.Lock()
        self._claimed = False
        self.params: Optional[CallbackParams] = None
        self.timeout = _POLL_INTERVAL

    def claim(self) -> bool:
        """Return ``True`` for the first callback request only."""
        with self._claim_lock:
            if self._claimed:
                return False
            self._claimed = True
            return True


class CallbackReceiver:
    """Single-use local listener for one OAuth redirect.

    Args:
        callback_path: Path the redirect must hit. Defaults to ``/callback``.
        success_page: HTML returned to the browser on the matching request.
    """

    def __init__(
        self,
        callback_path: str = CALLBACK_PATH,
        success_page: str = SUCCESS_PAGE,
    ) -> None:
        self._callback_path = callback_path
        self._success_page = success_page
        self._server: Optional[_CallbackServer] = None
        self._thread: Optional[threading.Thread] = None
        self._stopping = threading.Event()

    def __enter__(self) -> CallbackReceiver:
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def port(self) -> int:
        if self._server is None:
            raise RuntimeError("CallbackReceiver has not been started")
        return self._server.server_address[1]

    @property
    def redirect_uri(self) -> str:
        """The redirect URI to register with the authorization request."""
        return f"http://{LOOPBACK_HOST}:{self.port}{self._callback_path}"

    def start(self) -> None:
        """Bind the listener and start serving in a daemon thread."""
        if self._server is not None:
            raise RuntimeError("CallbackReceiver is single-use and already started")
        self._server = _CallbackServer(self._callback_path, self._success_page)
        logger.debug("Listening on port %d", self.port)
        self._thread = threading.Thread(
            target=self._serve, name="cloudctl-callback", daemon=True
        )
        self._thread.start()

    def _serve(self) -> None:
        assert self._server is not None
        try:
            while not self._server.received.is_set() and not self._stopping.is_set():
                self._server.handle_request()
        finally:
            self._server.server_close()

    def wait(self, timeout: float) -> CallbackParams:
        """Block until the callback arrives and return its parameters.

        By the time this returns, the listener is closed.

        Args:
            timeout: Seconds to wait for the browser redirect.

        Raises:
            CallbackTimeoutError: If no request hits the callback path in time.
        """
        if self._server is None or self._thread is None:
            raise RuntimeError("CallbackReceiver has not been started")
        if not self._server.received.wait(timeout):
            raise CallbackTimeoutError(
                f"Timed out after {timeout:g}s waiting for the browser to "
                f"redirect to {self.redirect_uri}"
            )
        self._thread.join(_JOIN_TIMEOUT)
        assert self._server.params is not None
        return self._server.params

    def close(self) -> None:
        """Stop serving and release the listening socket. Idempotent."""
        self._stopping.set()
        if self._thread is not None:
            self._thread.join(_JOIN_TIMEOUT)
        if self._server is not None:
            self._server.server_close()
