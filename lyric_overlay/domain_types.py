#!/usr/bin/env python3
"""
Domain Models and Pure Functions

Immutable lyric data, the outbound payload variants and the stateless
calculations the sync engine is built on. Nothing in here touches the
network, the filesystem or a clock.
"""

import json
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from lyric_overlay.exceptions import MalformedTick


# =============================================================================
# IMMUTABLE DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class LyricLine:
    """A single line of synced lyrics. Immutable."""
    text: str
    start_time: float


# Ordered ascending by start_time; ties allowed.
LyricSet = Tuple[LyricLine, ...]


@dataclass(frozen=True)
class LineLocation:
    """Result of locating the active line for a playback position."""
    active_line: Optional[LyricLine]
    active_index: int
    next_start_sec: Optional[float]

    @property
    def has_line(self) -> bool:
        return self.active_index >= 0


@dataclass(frozen=True)
class TrackIdentity:
    """What is playing. Either field may be unknown while events trickle in."""
    title: Optional[str] = None
    artist: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.title) and bool(self.artist)

    @property
    def is_empty(self) -> bool:
        return not self.title and not self.artist

    @property
    def label(self) -> str:
        return f"{self.artist or '?'} - {self.title or '?'}"


# =============================================================================
# INBOUND EVENTS - The three things the controller cares about
# =============================================================================

@dataclass(frozen=True)
class TitleChanged:
    title: str


@dataclass(frozen=True)
class ArtistChanged:
    artist: str


@dataclass(frozen=True)
class TimeTick:
    """Raw playback position; parsed (and possibly rejected) by the controller."""
    value: Any


TrackEvent = Union[TitleChanged, ArtistChanged, TimeTick]


# =============================================================================
# PAYLOADS - Closed set of messages for display clients
# =============================================================================

@dataclass(frozen=True)
class ShowLine:
    """Show this line of text."""
    text: str
    sec: float


@dataclass(frozen=True)
class Hide:
    """Show nothing."""
    sec: Optional[float] = None


@dataclass(frozen=True)
class Reset:
    """Track changed: clear the display and any per-line animation state."""
    pass


Payload = Union[ShowLine, Hide, Reset]


def to_wire(payload: Payload) -> Dict[str, Any]:
    """Convert a payload to the JSON shape display clients consume."""
    if isinstance(payload, ShowLine):
        return {"currentLyric": payload.text, "currentSec": payload.sec}
    if isinstance(payload, Hide):
        message: Dict[str, Any] = {"currentLyric": ""}
        if payload.sec is not None:
            message["currentSec"] = payload.sec
        return message
    if isinstance(payload, Reset):
        return {"currentLyric": "", "reset": True}
    raise TypeError(f"Unknown payload type: {type(payload).__name__}")


def encode_payload(payload: Payload) -> str:
    """Serialize a payload to its compact wire string."""
    return json.dumps(to_wire(payload), separators=(",", ":"), ensure_ascii=False)


# =============================================================================
# PURE FUNCTIONS
# =============================================================================

def locate(sec: float, lines: Sequence[LyricLine]) -> LineLocation:
    """
    Find the line in effect at ``sec``. Pure function, O(log n).

    Binary search for the greatest index whose start_time <= sec. When several
    lines share a start time the LAST of them wins, and next_start_sec is the
    first strictly later start (or None).
    """
    low, high = 0, len(lines) - 1
    found = -1
    while low <= high:
        mid = (low + high) // 2
        if sec >= lines[mid].start_time:
            found = mid
            low = mid + 1
        else:
            high = mid - 1

    if found == -1:
        next_start = lines[0].start_time if lines else None
        return LineLocation(active_line=None, active_index=-1, next_start_sec=next_start)

    next_start = lines[found + 1].start_time if found + 1 < len(lines) else None
    return LineLocation(active_line=lines[found], active_index=found, next_start_sec=next_start)


_BRACKETS = re.compile(r"^\[|\]$")


def strip_brackets(value: Any) -> str:
    """Drop one leading '[' and one trailing ']' from an OSC string argument."""
    return _BRACKETS.sub("", str(value))


def parse_tick(value: Any) -> float:
    """
    Read a playback position in seconds from a raw OSC argument.

    Accepts numbers and numeric strings (optionally bracket-wrapped).
    Raises MalformedTick for anything else, including NaN and infinity.
    """
    if value is None or isinstance(value, bool):
        raise MalformedTick(f"Not a playback position: {value!r}")
    try:
        sec = float(value) if isinstance(value, (int, float)) else float(strip_brackets(value).strip())
    except (TypeError, ValueError):
        raise MalformedTick(f"Not a playback position: {value!r}")
    if not math.isfinite(sec):
        raise MalformedTick(f"Not a finite playback position: {value!r}")
    return sec


_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|]')


def sanitize_filename(value: str) -> str:
    """Replace characters that are not allowed in file names with '_'."""
    return _UNSAFE_FILENAME_CHARS.sub("_", value)


def cache_filename(title: str, artist: str) -> str:
    """Cache file name for a track: '<artist>__<title>.json'."""
    return f"{sanitize_filename(artist)}__{sanitize_filename(title)}.json"


_LRC_STAMP = re.compile(r"\[(\d+):(\d{1,2}(?:[.:]\d{1,3})?)\]")


def parse_lrc(lrc_text: str) -> LyricSet:
    """
    Parse LRC text into a sorted LyricSet. Pure function.

    Handles [mm:ss], [mm:ss.xx] and [mm:ss.xxx] stamps and several stamps on
    one line. Lines with a stamp but no text are kept as blank lines so the
    display clears during the gap. Metadata tags ([ar:...]) are skipped.
    """
    lines: List[LyricLine] = []
    for raw in lrc_text.splitlines():
        raw = raw.strip()
        stamps: List[float] = []
        pos = 0
        while True:
            match = _LRC_STAMP.match(raw, pos)
            if not match:
                break
            minutes, seconds = match.groups()
            stamps.append(int(minutes) * 60 + float(seconds.replace(":", ".")))
            pos = match.end()
        if not stamps:
            continue
        text = raw[pos:].strip()
        lines.extend(LyricLine(text=text, start_time=stamp) for stamp in stamps)

    # sorted() is stable, so equal stamps keep file order
    return tuple(sorted(lines, key=lambda line: line.start_time))


def lines_from_records(records: Any) -> LyricSet:
    """
    Build a LyricSet from cached [{"text": ..., "startTime": ...}] records.

    Records without a numeric startTime are dropped.
    """
    if not isinstance(records, list):
        return ()
    lines = [
        LyricLine(text=str(record.get("text") or ""), start_time=float(record["startTime"]))
        for record in records
        if isinstance(record, dict)
        and isinstance(record.get("startTime"), (int, float))
        and not isinstance(record.get("startTime"), bool)
    ]
    return tuple(sorted(lines, key=lambda line: line.start_time))


def lines_to_records(lines: Sequence[LyricLine]) -> List[Dict[str, Any]]:
    """Inverse of lines_from_records, used for the on-disk cache."""
    return [{"text": line.text, "startTime": line.start_time} for line in lines]
