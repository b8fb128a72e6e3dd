"""
Shared fixtures: a transport that records what was broadcast, a resolver
stub, and an executor whose lookups only finish when the test says so.
"""
import json
import socket
from concurrent.futures import Executor, Future
from typing import Callable, List, Tuple

import pytest

from lyric_overlay.domain_types import LyricLine
from lyric_overlay.emitter import DedupEmitter


class RecordingTransport:
    """Collects broadcast messages, decoded back to dicts."""

    def __init__(self):
        self.messages: List[str] = []

    def broadcast(self, message: str) -> None:
        self.messages.append(message)

    @property
    def payloads(self) -> List[dict]:
        return [json.loads(m) for m in self.messages]

    @property
    def lyrics(self) -> List[str]:
        return [p["currentLyric"] for p in self.payloads]

    def clear(self) -> None:
        self.messages.clear()


class StubResolver:
    """Returns canned lines (or raises) and counts calls."""

    def __init__(self, lines=(), error: Exception = None):
        self.lines = tuple(lines)
        self.error = error
        self.calls: List[Tuple[str, str]] = []

    def resolve(self, title: str, artist: str):
        self.calls.append((title, artist))
        if self.error is not None:
            raise self.error
        return self.lines


class ManualExecutor(Executor):
    """Holds submitted work until run_pending() is called."""

    def __init__(self):
        self.pending: List[Tuple[Future, Callable, tuple]] = []
        self.closed = False

    def submit(self, fn, *args, **kwargs):
        if self.closed:
            raise RuntimeError("cannot schedule new futures after shutdown")
        future: Future = Future()
        self.pending.append((future, fn, args))
        return future

    def run_pending(self) -> int:
        jobs, self.pending = self.pending, []
        for future, fn, args in jobs:
            try:
                future.set_result(fn(*args))
            except Exception as exc:
                future.set_exception(exc)
        return len(jobs)

    def shutdown(self, wait=True, **kwargs):
        self.closed = True


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def emitter(transport):
    return DedupEmitter(transport)


@pytest.fixture
def hello_world():
    """The two-line song used throughout the docs."""
    return (LyricLine("Hello", 0.0), LyricLine("World", 5.0))


@pytest.fixture
def song():
    """A longer song with a long instrumental gap before the last line."""
    return (
        LyricLine("First", 10.0),
        LyricLine("Second", 12.0),
        LyricLine("Third", 14.5),
        LyricLine("After the break", 60.0),
    )


@pytest.fixture
def manual_executor():
    return ManualExecutor()


@pytest.fixture
def make_resolver():
    """Factory: make_resolver(lines) or make_resolver(error=...)."""
    return StubResolver


@pytest.fixture
def requires_internet():
    """Check internet connectivity (no prompt needed)."""
    try:
        socket.create_connection(("lrclib.net", 443), timeout=5).close()
    except (socket.timeout, OSError):
        pytest.skip("No internet connection")
