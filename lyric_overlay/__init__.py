"""
Lyric Overlay

Time-synced lyric overlay for live DJ sets: listens for track and playback
position over OSC, looks up synced lyrics on LRCLIB and pushes the current
line to display clients over WebSocket.

Usage:
    from lyric_overlay import (
        LyricLine, DisplayStateMachine, DedupEmitter, TrackSessionController,
    )

    lines = (LyricLine("Hello", 0.0), LyricLine("World", 5.0))
    machine = DisplayStateMachine(max_display_sec=10.0)
    machine.advance(0.0, lines)    # ShowLine(text="Hello", sec=0.0)
"""

from .exceptions import LyricOverlayError, ResolutionFailure, MalformedTick, CacheWriteFailure
from .domain_types import (
    LyricLine,
    LyricSet,
    LineLocation,
    TrackIdentity,
    TitleChanged,
    ArtistChanged,
    TimeTick,
    TrackEvent,
    ShowLine,
    Hide,
    Reset,
    Payload,
    to_wire,
    encode_payload,
    locate,
    strip_brackets,
    parse_tick,
    parse_lrc,
)
from .display import DisplayState, DisplayStateMachine, DEFAULT_MAX_DISPLAY_SEC
from .emitter import DedupEmitter
from .session import SessionPhase, ResolutionTicket, TrackSessionController

__all__ = [
    # Errors
    "LyricOverlayError",
    "ResolutionFailure",
    "MalformedTick",
    "CacheWriteFailure",
    # Domain
    "LyricLine",
    "LyricSet",
    "LineLocation",
    "TrackIdentity",
    "TitleChanged",
    "ArtistChanged",
    "TimeTick",
    "TrackEvent",
    "ShowLine",
    "Hide",
    "Reset",
    "Payload",
    "to_wire",
    "encode_payload",
    "locate",
    "strip_brackets",
    "parse_tick",
    "parse_lrc",
    # Engine core
    "DisplayState",
    "DisplayStateMachine",
    "DEFAULT_MAX_DISPLAY_SEC",
    "DedupEmitter",
    "SessionPhase",
    "ResolutionTicket",
    "TrackSessionController",
]

__version__ = "1.0.0"
