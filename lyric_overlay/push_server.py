"""
Push Server - WebSocket fan-out to display clients

FastAPI app served by uvicorn on a background thread. Display clients
connect to ws://<host>:<port>/ (or /ws) and receive one JSON text frame per
lyric change. GET /status returns the engine status for debugging.

broadcast() may be called from any thread. Sends are scheduled on the
server's event loop and never awaited by the caller, so a slow or dead
client cannot hold up tick processing.
"""
import asyncio
import logging
import threading
from concurrent.futures import Future
from functools import partial
from typing import Any, Callable, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, WebSocket
from fastapi.websockets import WebSocketState

logger = logging.getLogger(__name__)

StatusProvider = Callable[[], Dict[str, Any]]


class PushServer:
    """WebSocket broadcaster for lyric payloads."""

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = 8081,
        status_provider: Optional[StatusProvider] = None,
    ):
        self._host = host
        self._port = port
        self._status_provider = status_provider
        self._started = False

        # WebSocket is not hashable
        self._clients: List[WebSocket] = []
        self._clients_lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._last_message: Optional[str] = None
        self._delivery_failures = 0

        self._server: Optional[uvicorn.Server] = None
        self._server_thread: Optional[threading.Thread] = None

        self.app = FastAPI(title="Lyric Overlay")
        self._register_routes()

    @property
    def is_started(self) -> bool:
        return self._started

    @property
    def client_count(self) -> int:
        with self._clients_lock:
            return len(self._clients)

    def set_status_provider(self, provider: StatusProvider) -> None:
        self._status_provider = provider

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> bool:
        """Serve on a daemon thread. Returns True once the thread is running."""
        if self._started:
            return True
        config = uvicorn.Config(self.app, host=self._host, port=self._port, log_level="warning")
        self._server = uvicorn.Server(config)
        self._server_thread = threading.Thread(
            target=self._server.run,
            name="PushServer",
            daemon=True,
        )
        self._server_thread.start()
        self._started = True
        logger.info(f"WebSocket server on ws://{self._host}:{self._port}/")
        return True

    def stop(self) -> None:
        if not self._started:
            return
        if self._server:
            self._server.should_exit = True
        if self._server_thread:
            self._server_thread.join(timeout=2.0)
            if self._server_thread.is_alive():
                logger.warning("WebSocket server stop timed out; continuing shutdown")
        self._server = None
        self._server_thread = None
        self._started = False
        logger.info("WebSocket server stopped")

    # =========================================================================
    # BROADCAST
    # =========================================================================

    def broadcast(self, message: str) -> None:
        """Send message to every connected client. Never raises, never blocks."""
        with self._clients_lock:
            self._last_message = message
            clients = list(self._clients)
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        for client in clients:
            if client.application_state != WebSocketState.CONNECTED:
                continue
            try:
                future = asyncio.run_coroutine_threadsafe(client.send_text(message), loop)
            except RuntimeError as exc:
                logger.debug(f"Event loop unavailable for broadcast: {exc}")
                return
            future.add_done_callback(partial(self._on_delivered, client))

    def get_status(self) -> Dict[str, Any]:
        return {
            "started": self._started,
            "host": self._host,
            "port": self._port,
            "clients": self.client_count,
            "delivery_failures": self._delivery_failures,
        }

    # =========================================================================
    # PRIVATE
    # =========================================================================

    def _register_routes(self) -> None:
        self.app.add_api_websocket_route("/", self._serve_client)
        self.app.add_api_websocket_route("/ws", self._serve_client)
        self.app.add_api_route("/status", self._status, methods=["GET"])

    async def _status(self) -> Dict[str, Any]:
        status = {"push": self.get_status()}
        if self._status_provider:
            status.update(self._status_provider())
        return status

    async def _serve_client(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._loop = asyncio.get_running_loop()
        # Registering and reading the catch-up together means a concurrent
        # broadcast reaches this client one way or the other (maybe both)
        with self._clients_lock:
            self._clients.append(websocket)
            catch_up = self._last_message
        if catch_up is not None:
            await websocket.send_text(catch_up)
        logger.info(f"Display client connected ({self.client_count} total)")
        try:
            while True:
                # Clients only listen; anything they send is ignored.
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
        finally:
            self._discard(websocket)
            logger.info(f"Display client disconnected ({self.client_count} total)")

    def _on_delivered(self, client: WebSocket, future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is None:
            return
        self._delivery_failures += 1
        logger.debug(f"Delivery to display client failed: {exc}")
        self._discard(client)

    def _discard(self, client: WebSocket) -> None:
        with self._clients_lock:
            self._clients = [c for c in self._clients if c is not client]
