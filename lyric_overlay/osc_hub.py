"""
OSC Listener - inbound track and playback events from the DJ controller

Architecture:
- One UDP receiver (python-osc) that only enqueues messages
- One worker thread that drains the queue in arrival order and calls the
  handler, so everything downstream sees a single serial stream
- call_soon() lets other threads (the lyric lookup) run code on that worker

Addresses the overlay understands:
    /track/master/title   [title]
    /track/master/artist  [artist]
    /time                 [seconds]
"""

import collections
import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional

from pythonosc.dispatcher import Dispatcher
from pythonosc.osc_server import BlockingOSCUDPServer

from lyric_overlay.domain_types import ArtistChanged, TimeTick, TitleChanged, TrackEvent

logger = logging.getLogger(__name__)

Handler = Callable[[str, List[Any]], None]

TITLE_ADDRESS = "/track/master/title"
ARTIST_ADDRESS = "/track/master/artist"
TIME_ADDRESS = "/time"

QUEUE_MAXSIZE = 4096
QUEUE_POLL_TIMEOUT = 0.1


def is_noisy(address: str) -> bool:
    """Addresses that arrive many times a second and are never logged."""
    return address == TIME_ADDRESS or address.startswith("/beat")


def decode_event(address: str, args: List[Any]) -> Optional[TrackEvent]:
    """Map a raw OSC message to a track event, or None if it is not one of ours."""
    value = args[0] if args else None
    if address == TITLE_ADDRESS:
        return TitleChanged(title="" if value is None else str(value))
    if address == ARTIST_ADDRESS:
        return ArtistChanged(artist="" if value is None else str(value))
    if address == TIME_ADDRESS:
        return TimeTick(value=value)
    return None


@dataclass
class _ListenerStats:
    received: int = 0
    processed: int = 0
    dropped: int = 0
    handler_errors: int = 0


class OSCListener:
    """
    UDP OSC receiver feeding a single worker thread.

    The handler is called as handler(address, args) on the worker thread.
    When the queue is full, incoming OSC messages are dropped and counted.
    """

    def __init__(self, handler: Handler, host: str = "0.0.0.0", port: int = 3170):
        self._handler = handler
        self._host = host
        self._port = port
        self._started = False

        self._server: Optional[BlockingOSCUDPServer] = None
        self._server_thread: Optional[threading.Thread] = None

        self._queue: queue.Queue = queue.Queue(maxsize=QUEUE_MAXSIZE)
        self._worker_stop = threading.Event()
        self._worker_thread: Optional[threading.Thread] = None
        # Work posted by the worker to itself; never blocks on the bounded queue
        self._posted: Deque[Callable[[], None]] = collections.deque()

        self._stats_lock = threading.Lock()
        self._stats = _ListenerStats()

    @property
    def is_started(self) -> bool:
        return self._started

    @property
    def port(self) -> int:
        """Bound port (differs from the configured one when that was 0)."""
        if self._server is not None:
            return self._server.server_address[1]
        return self._port

    def start(self) -> bool:
        """Bind the UDP port and start receiving. Returns True on success."""
        if self._started:
            return True

        dispatcher = Dispatcher()
        dispatcher.set_default_handler(self._on_message)
        try:
            self._server = BlockingOSCUDPServer((self._host, self._port), dispatcher)
        except OSError as exc:
            logger.error(f"OSC listener start failed on {self._host}:{self._port}: {exc}")
            self._server = None
            return False

        self._start_worker()
        self._server_thread = threading.Thread(
            target=self._server.serve_forever,
            name="OSCListener",
            daemon=True,
        )
        self._server_thread.start()
        self._started = True
        logger.info(f"OSC listener on {self._host}:{self.port}")
        return True

    def stop(self) -> None:
        if not self._started:
            return

        server = self._server
        self._server = None
        if server:
            server.shutdown()
            server.server_close()
        if self._server_thread:
            self._server_thread.join(timeout=0.5)
            self._server_thread = None

        self._stop_worker()
        self._started = False
        logger.info("OSC listener stopped")

    def call_soon(self, fn: Callable[[], None]) -> None:
        """
        Run fn on the worker thread, after everything already queued.

        Called from the worker itself, fn runs before the next queued message.
        """
        if threading.current_thread() is self._worker_thread:
            self._posted.append(fn)
            return
        self._queue.put((None, fn))

    def get_status(self) -> Dict[str, Any]:
        with self._stats_lock:
            stats = _ListenerStats(**vars(self._stats))
        return {
            "started": self._started,
            "host": self._host,
            "port": self.port,
            "queue_depth": self._queue.qsize(),
            "received": stats.received,
            "processed": stats.processed,
            "dropped": stats.dropped,
            "handler_errors": stats.handler_errors,
        }

    # =========================================================================
    # PRIVATE
    # =========================================================================

    def _on_message(self, address: str, *args: Any) -> None:
        """python-osc callback on the receiver thread: enqueue only."""
        with self._stats_lock:
            self._stats.received += 1
        try:
            self._queue.put_nowait((address, list(args)))
        except queue.Full:
            with self._stats_lock:
                self._stats.dropped += 1

    def _start_worker(self) -> None:
        if self._worker_thread and self._worker_thread.is_alive():
            return
        self._worker_stop.clear()
        self._worker_thread = threading.Thread(
            target=self._worker_loop,
            name="OSCListenerWorker",
            daemon=True,
        )
        self._worker_thread.start()

    def _stop_worker(self) -> None:
        if not self._worker_thread:
            return
        self._worker_stop.set()
        self._worker_thread.join(timeout=0.5)
        if self._worker_thread.is_alive():
            logger.warning("OSC worker stop timed out; continuing shutdown")
            return
        self._worker_thread = None
        self._posted.clear()
        self._drain_queue()

    def _drain_queue(self) -> None:
        try:
            while True:
                self._queue.get_nowait()
        except queue.Empty:
            return

    def _worker_loop(self) -> None:
        while not self._worker_stop.is_set():
            while self._posted:
                self._run(None, self._posted.popleft())
            try:
                address, payload = self._queue.get(timeout=QUEUE_POLL_TIMEOUT)
            except queue.Empty:
                continue
            self._run(address, payload)

    def _run(self, address: Optional[str], payload: Any) -> None:
        try:
            if address is None:
                payload()
            else:
                self._handler(address, payload)
        except Exception as exc:
            with self._stats_lock:
                self._stats.handler_errors += 1
            logger.exception(f"OSC handler error for {address}: {exc}")
        with self._stats_lock:
            self._stats.processed += 1
