#!/usr/bin/env python3
"""
Lyric Overlay Engine - composition root and CLI

Wires the pieces together:

    OSC (/track/master/title, /track/master/artist, /time)
        -> OSCListener worker thread
        -> TrackSessionController  --(once per track)-->  LyricsFetcher
        -> DisplayStateMachine
        -> DedupEmitter
        -> PushServer (WebSocket, JSON {"currentLyric", "currentSec", "reset"})

Usage:
    lyric-overlay
    lyric-overlay --osc-port 3170 --ws-port 8081 --offset -200
    python -m lyric_overlay --log-level DEBUG
"""

import argparse
import logging
import signal
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, List, Optional

from lyric_overlay.adapters import LyricsFetcher
from lyric_overlay.emitter import DedupEmitter
from lyric_overlay.infra import Config, load_env_files
from lyric_overlay.osc_hub import OSCListener, decode_event, is_noisy
from lyric_overlay.push_server import PushServer
from lyric_overlay.session import LyricResolver, TrackSessionController

logger = logging.getLogger(__name__)


class LyricOverlayEngine:
    """
    Main engine - composes listener, session, emitter and push server.

    Collaborators can be injected for testing; anything not given is built
    from the config.

    Simple interface: start(), stop(), get_status()
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        resolver: Optional[LyricResolver] = None,
        push_server: Optional[PushServer] = None,
    ):
        self._config = config or Config()
        self._resolver = resolver or LyricsFetcher.from_config(self._config)
        self._push = push_server or PushServer(self._config.ws_host, self._config.ws_port)
        self._push.set_status_provider(self.get_status)
        self._emitter = DedupEmitter(self._push)

        self._listener = OSCListener(
            self._on_osc_message,
            host=self._config.osc_host,
            port=self._config.osc_port,
        )
        # One worker: at most one lookup in flight
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="LyricsResolver")
        self._session = TrackSessionController(
            self._emitter,
            self._resolver,
            max_display_sec=self._config.max_display_sec,
            timing_offset_ms=self._config.timing_offset_ms,
            executor=self._executor,
            post=self._listener.call_soon,
        )
        self._started = False

    @property
    def config(self) -> Config:
        return self._config

    @property
    def session(self) -> TrackSessionController:
        return self._session

    @property
    def listener(self) -> OSCListener:
        return self._listener

    def start(self) -> bool:
        if self._started:
            return True
        self._push.start()
        if not self._listener.start():
            self._push.stop()
            return False
        self._started = True
        logger.info("Lyric overlay running")
        return True

    def stop(self) -> None:
        if not self._started:
            return
        self._listener.stop()
        self._executor.shutdown(wait=False)
        self._push.stop()
        self._started = False
        logger.info("Lyric overlay stopped")

    def get_status(self) -> Dict[str, Any]:
        status = {
            "started": self._started,
            "session": self._session.get_status(),
            "emitter": self._emitter.get_status(),
            "osc": self._listener.get_status(),
        }
        if isinstance(self._resolver, LyricsFetcher):
            status["lyrics"] = self._resolver.get_status()
        return status

    def _on_osc_message(self, address: str, args: List[Any]) -> None:
        """Runs on the listener worker thread."""
        if not is_noisy(address):
            logger.debug(f"OSC {address} {args[0] if args else ''}")
        event = decode_event(address, args)
        if event is not None:
            self._session.handle_event(event)


def build_config(args: argparse.Namespace) -> Config:
    """Environment first, then command-line flags on top."""
    config = Config.from_env()
    if args.osc_port is not None:
        config.osc_port = args.osc_port
    if args.ws_port is not None:
        config.ws_port = args.ws_port
    if args.max_display_sec is not None:
        config.max_display_sec = args.max_display_sec
    if args.cache_dir is not None:
        config.cache_dir = Path(args.cache_dir).expanduser()
    if args.offset is not None:
        config.timing_offset_ms = args.offset
    return config


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Lyric Overlay - stream synced lyrics for the playing track to display clients"
    )
    parser.add_argument(
        "--osc-port", type=int, default=None,
        help="UDP port for incoming OSC (default: 3170)"
    )
    parser.add_argument(
        "--ws-port", type=int, default=None,
        help="WebSocket port for display clients (default: 8081)"
    )
    parser.add_argument(
        "--max-display-sec", type=float, default=None,
        help="Longest a line stays on screen before the next one (default: 10)"
    )
    parser.add_argument(
        "--cache-dir", default=None,
        help="Lyrics cache directory (default: ./cache)"
    )
    parser.add_argument(
        "--offset", type=int, default=None,
        help="Timing offset in milliseconds (negative = early)"
    )
    parser.add_argument(
        "--log-level", default="INFO",
        help="Logging level (default: INFO)"
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    load_env_files()
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    config = build_config(args)
    engine = LyricOverlayEngine(config)

    stop_event = threading.Event()

    def signal_handler(sig, frame):
        stop_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    if not engine.start():
        print("Failed to start lyric overlay", file=sys.stderr)
        return 1

    print(f"OSC in: {config.osc_host}:{config.osc_port}  WebSocket out: ws://{config.ws_host}:{config.ws_port}/")
    print("Press Ctrl+C to stop.")
    try:
        while not stop_event.wait(0.5):
            pass
    finally:
        engine.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
