"""
Track Session Controller

Owns what is playing and which lyrics belong to it, resolves lyrics once per
track and feeds every playback tick to the display state machine.

Phases:
    IDLE          - nothing known about the track
    AWAITING_BOTH - title and/or artist known, no lookup started yet
    RESOLVING     - lookup in flight (never more than one)
    READY         - lookup finished; ticks drive the display

A new title starts a new session: identity, lyrics and display state are
dropped, a single Reset goes out and the generation counter moves on. A new
artist replacing a known one does the same and clears the title, so the pair
only resolves again once the new title has arrived. A lookup
result carries the generation it was started in and is discarded if the
session has moved on since.

Usage:
    controller = TrackSessionController(DedupEmitter(server), fetcher)
    controller.handle_title("[Bohemian Rhapsody]")
    controller.handle_artist("Queen")
    controller.handle_tick(12.5)
"""
import logging
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, Optional, Protocol

from lyric_overlay.display import DEFAULT_MAX_DISPLAY_SEC, DisplayStateMachine
from lyric_overlay.domain_types import (
    ArtistChanged,
    Hide,
    LyricSet,
    TimeTick,
    TitleChanged,
    TrackEvent,
    TrackIdentity,
    parse_tick,
    strip_brackets,
)
from lyric_overlay.emitter import DedupEmitter
from lyric_overlay.exceptions import MalformedTick

logger = logging.getLogger(__name__)


class LyricResolver(Protocol):
    def resolve(self, title: str, artist: str) -> LyricSet:
        ...


# Runs a callable on the thread that owns session state.
Post = Callable[[Callable[[], None]], None]


class SessionPhase(Enum):
    IDLE = "idle"
    AWAITING_BOTH = "awaiting_both"
    RESOLVING = "resolving"
    READY = "ready"


@dataclass(frozen=True)
class ResolutionTicket:
    """Identifies one lyric lookup and the session it belongs to."""
    generation: int
    title: str
    artist: str
    sec: float


def _run_inline(fn: Callable[[], None]) -> None:
    fn()


class TrackSessionController:
    """
    Session state machine for the currently playing track.

    All handle_* methods must be called from one thread. Lookups run on
    ``executor`` when given (inline otherwise) and their completion is handed
    back through ``post`` so it is applied on that same thread.
    """

    def __init__(
        self,
        emitter: DedupEmitter,
        resolver: LyricResolver,
        max_display_sec: float = DEFAULT_MAX_DISPLAY_SEC,
        timing_offset_ms: int = 0,
        executor: Optional[Executor] = None,
        post: Optional[Post] = None,
    ):
        self._emitter = emitter
        self._resolver = resolver
        self._max_display_sec = max_display_sec
        self._timing_offset_ms = timing_offset_ms
        self._executor = executor
        self._post = post or _run_inline

        self._identity = TrackIdentity()
        self._lyrics: Optional[LyricSet] = None
        self._phase = SessionPhase.IDLE
        self._generation = 0
        self._in_flight: Optional[ResolutionTicket] = None
        self._last_sec: Optional[float] = None
        self._display = DisplayStateMachine(max_display_sec)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def identity(self) -> TrackIdentity:
        return self._identity

    @property
    def lyrics(self) -> Optional[LyricSet]:
        """None until resolved; an empty tuple means the track has no lyrics."""
        return self._lyrics

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def display(self) -> DisplayStateMachine:
        return self._display

    @property
    def timing_offset_ms(self) -> int:
        return self._timing_offset_ms

    # =========================================================================
    # EVENT HANDLERS
    # =========================================================================

    def handle_event(self, event: TrackEvent) -> None:
        if isinstance(event, TitleChanged):
            self.handle_title(event.title)
        elif isinstance(event, ArtistChanged):
            self.handle_artist(event.artist)
        elif isinstance(event, TimeTick):
            self.handle_tick(event.value)

    def handle_title(self, raw: Any) -> None:
        title = strip_brackets(raw)
        artist = self._identity.artist
        if title != self._identity.title:
            logger.info(f"Track changed: {self._identity.title!r} -> {title!r}")
            # An artist that came in ahead of any title belongs to this one
            if self._identity.title is not None:
                artist = None
            self._start_new_session()
        self._identity = TrackIdentity(title=title, artist=artist)
        self._refresh_waiting_phase()

    def handle_artist(self, raw: Any) -> None:
        """
        Set the artist. Replacing one known artist with another starts a new
        session and clears the title; filling in a missing artist does not.
        """
        artist = strip_brackets(raw)
        previous = self._identity.artist
        title = self._identity.title
        if previous and artist and artist != previous:
            logger.info(f"Artist changed: {previous!r} -> {artist!r}")
            self._start_new_session()
            title = None
        elif artist != previous:
            logger.debug(f"Artist: {artist!r}")
        self._identity = TrackIdentity(title=title, artist=artist)
        self._refresh_waiting_phase()

    def handle_tick(self, raw: Any) -> None:
        try:
            sec = parse_tick(raw)
        except MalformedTick as exc:
            logger.debug(f"Dropping tick: {exc}")
            return

        self._last_sec = sec
        if self._should_resolve():
            self._begin_resolution(sec)
        self._feed(sec)

    # =========================================================================
    # RESOLUTION
    # =========================================================================

    def apply_resolution(self, ticket: ResolutionTicket, lines: Optional[LyricSet]) -> bool:
        """
        Store a finished lookup. Returns False when the ticket belongs to an
        older session and the result was discarded.
        """
        if ticket.generation != self._generation:
            logger.debug(f"Discarding stale lyrics for {ticket.artist} - {ticket.title}")
            return False

        self._in_flight = None
        self._phase = SessionPhase.READY
        self._display.reset()
        sec = self._last_sec if self._last_sec is not None else ticket.sec

        if not lines:
            logger.info(f"No synced lyrics: {ticket.artist} - {ticket.title}")
            self._lyrics = ()
            self._emitter.emit(Hide(sec=self._adjusted(sec)))
            return True

        logger.info(f"Lyrics ready: {ticket.artist} - {ticket.title} ({len(lines)} lines)")
        self._lyrics = tuple(lines)
        self._feed(sec)
        return True

    def _should_resolve(self) -> bool:
        return (
            self._identity.is_complete
            and self._lyrics is None
            and self._in_flight is None
        )

    def _begin_resolution(self, sec: float) -> None:
        ticket = ResolutionTicket(
            generation=self._generation,
            title=self._identity.title,
            artist=self._identity.artist,
            sec=sec,
        )
        logger.info(f"Resolving lyrics: {self._identity.label}")

        if self._executor is not None:
            try:
                future = self._executor.submit(self._resolver.resolve, ticket.title, ticket.artist)
            except RuntimeError as exc:
                # Executor shut down; stay unresolved so a later tick can retry
                logger.warning(f"Cannot start lyrics lookup for {self._identity.label}: {exc}")
                return
        else:
            future = Future()
            try:
                future.set_result(self._resolver.resolve(ticket.title, ticket.artist))
            except Exception as exc:
                future.set_exception(exc)

        # Must be set before the callback: a finished future runs it immediately
        self._in_flight = ticket
        self._phase = SessionPhase.RESOLVING
        future.add_done_callback(
            lambda done: self._post(partial(self._finish_resolution, ticket, done))
        )

    def _finish_resolution(self, ticket: ResolutionTicket, future: Future) -> None:
        try:
            lines = future.result()
        except Exception as exc:
            logger.error(f"Lyrics lookup failed for {ticket.artist} - {ticket.title}: {exc}")
            lines = ()
        self.apply_resolution(ticket, lines)

    # =========================================================================
    # PRIVATE
    # =========================================================================

    def _feed(self, sec: float) -> None:
        if not self._lyrics:
            return
        payload = self._display.advance(self._adjusted(sec), self._lyrics)
        if payload is not None:
            self._emitter.emit(payload)

    def _adjusted(self, sec: float) -> float:
        return sec + self._timing_offset_ms / 1000.0

    def _start_new_session(self) -> None:
        self._generation += 1
        self._phase = SessionPhase.IDLE
        self._identity = TrackIdentity()
        self._lyrics = None
        self._in_flight = None
        self._last_sec = None
        self._display.reset()
        # Title and artist often change back to back; one Reset covers both
        if not self._emitter.reset_pending:
            self._emitter.reset()

    def _refresh_waiting_phase(self) -> None:
        if self._phase in (SessionPhase.RESOLVING, SessionPhase.READY):
            return
        self._phase = SessionPhase.IDLE if self._identity.is_empty else SessionPhase.AWAITING_BOTH

    def get_status(self) -> Dict[str, Any]:
        state = self._display.state
        return {
            "phase": self._phase.value,
            "title": self._identity.title,
            "artist": self._identity.artist,
            "generation": self._generation,
            "line_count": len(self._lyrics) if self._lyrics is not None else None,
            "active_index": state.active_line_index,
            "active_text": state.active_text,
            "last_sec": self._last_sec,
            "timing_offset_ms": self._timing_offset_ms,
        }
