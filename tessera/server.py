"""Development server for Tessera.

Serves the output root with live reload:
- Injects a reload script into HTML responses.
- Rejects directory listings and missing paths with a 404 (serving 404.html when present).
- Broadcasts ``{"type": "reload"}`` to websocket clients when ``reload()`` is called.

The HTTP server runs in a daemon thread; the websocket server runs on the
build's event loop so that reload broadcasts are scheduled alongside the watch
reactions.

Key classes:
- DevServer: Starts both servers and exposes ``reload()``.
- _ReloadHandler: HTTP request handler that injects the reload script and enforces 404s.
"""

from __future__ import annotations

import asyncio
import functools
import json
import threading
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import websockets

from .logging import get_logger

logger = get_logger("server")


class _ReloadHandler(SimpleHTTPRequestHandler):
    """HTTP request handler that injects the live reload script into HTML pages.

    Attributes:
        reload_script: JavaScript that connects to the websocket server and reloads on demand.
    """

    reload_script_template = """
    <script>
    (() => {{
      const ws = new WebSocket('ws://' + location.hostname + ':{ws_port}');
      ws.onmessage = (event) => {{
        const data = JSON.parse(event.data || '{{}}');
        if (data.type === 'reload') location.reload();
      }};
    }})();
    </script>
    """
    reload_script = reload_script_template.format(ws_port=8001)

    def end_headers(self):
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)

    def list_directory(self, path):  # pragma: no cover - exercised via send_head
        return self._serve_404()

    def inject(self, content: str) -> str:
        if "</body>" in content:
            return content.replace("</body>", f"{self.reload_script}</body>")
        return content + self.reload_script

    def _send_html(self, status: int, content: str) -> None:
        encoded = self.inject(content).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def _serve_404(self):
        """Serve 404.html (when present) with the reload script and a 404 status."""
        error_page = Path(self.directory) / "404.html"
        if error_page.exists():
            self._send_html(404, error_page.read_text(encoding="utf-8"))
            return None
        self.send_error(404, "File not found")
        return None

    def send_head(self):
        path_obj = Path(self.translate_path(self.path))
        if path_obj.is_dir():
            index_path = path_obj / "index.html"
            if not index_path.exists():
                return self._serve_404()
            path_obj = index_path
        elif not path_obj.exists():
            return self._serve_404()

        if path_obj.suffix == ".html":
            self._send_html(200, path_obj.read_text(encoding="utf-8"))
            return None
        return super().send_head()


class DevServer:
    """Development server with live reload.

    Attributes:
        output_dir: Directory being served.
        http_port: Port for the HTTP server.
        ws_port: Port for websocket reload notifications.
    """

    def __init__(self, output_dir: Path, http_port: int = 8000, ws_port: int | None = None):
        self.output_dir = output_dir
        self.http_port = http_port
        self.ws_port = ws_port if ws_port is not None else http_port + 1
        self._reload_script = _ReloadHandler.reload_script_template.format(ws_port=self.ws_port)
        self._ws_clients: set = set()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._httpd: ThreadingHTTPServer | None = None
        self._ws_server = None

    async def start(self) -> None:  # pragma: no cover - integration path
        self._loop = asyncio.get_running_loop()
        handler_cls = type(
            "_ReloadHandlerWithPort",
            (_ReloadHandler,),
            {"reload_script": self._reload_script},
        )
        handler = functools.partial(handler_cls, directory=str(self.output_dir))
        self._httpd = ThreadingHTTPServer(("", self.http_port), handler)
        threading.Thread(target=self._httpd.serve_forever, daemon=True).start()
        try:
            self._ws_server = await websockets.serve(self._ws_handler, "0.0.0.0", self.ws_port)
        except OSError as exc:
            logger.warning("WebSocket server failed to start (port %d): %s", self.ws_port, exc)
        logger.info("Serving %s at http://localhost:%d", self.output_dir, self.http_port)

    async def stop(self) -> None:
        if self._ws_server is not None:
            self._ws_server.close()
            await self._ws_server.wait_closed()
            self._ws_server = None
        if self._httpd is not None:
            self._httpd.shutdown()
            self._httpd = None

    async def _ws_handler(self, websocket):
        self._ws_clients.add(websocket)
        try:
            await websocket.wait_closed()
        finally:
            self._ws_clients.discard(websocket)

    def reload(self) -> None:
        """Ask every connected browser to reload."""
        if self._loop is None:
            raise RuntimeError("dev server is not running")
        message = json.dumps({"type": "reload"})
        future = asyncio.run_coroutine_threadsafe(self._async_broadcast(message), self._loop)
        future.add_done_callback(_log_broadcast_failure)

    async def _async_broadcast(self, message: str):
        stale = set()
        # Clients can disconnect while a send is awaited.
        for ws in list(self._ws_clients):
            try:
                await ws.send(message)
            except Exception:
                stale.add(ws)
        for ws in stale:
            self._ws_clients.discard(ws)
        logger.debug("Reload sent to %d clients", len(self._ws_clients))


def _log_broadcast_failure(future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.warning("Reload broadcast failed: %s", exc)
