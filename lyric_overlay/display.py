"""
Display State Machine

Turns a stream of (sec, lyrics) ticks into show / hide decisions.

LRC timestamps only mark where a line starts, so the end of a line is
inferred: it is hidden when the next line starts or when it has been on
screen for max_display_sec, whichever comes first. After a hide the line
stays suppressed until the following line is due, so jittery ticks cannot
flap the display on and off.

Usage:
    machine = DisplayStateMachine(max_display_sec=10.0)
    payload = machine.advance(12.3, lines)   # ShowLine, Hide or None
"""
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from lyric_overlay.domain_types import Hide, LyricLine, Payload, ShowLine, locate

logger = logging.getLogger(__name__)

DEFAULT_MAX_DISPLAY_SEC = 10.0

# Suppression window after hiding the final line of a track.
FAR_FUTURE_SEC = 9999.0


@dataclass
class DisplayState:
    """What is on screen right now. Owned by a single DisplayStateMachine."""
    active_line_index: Optional[int] = None
    active_text: str = ""
    active_start_sec: Optional[float] = None
    active_next_start_sec: Optional[float] = None
    hidden_until_sec: Optional[float] = None

    @property
    def is_showing(self) -> bool:
        return self.active_text != ""


class DisplayStateMachine:
    """
    Decides, tick by tick, whether the overlay shows a line, hides it, or
    stays as it is.

    The located line index is compared with the displayed one; a hide keeps
    the index of the hidden line so the same line is not shown again until
    playback moves to a different line.
    """

    def __init__(self, max_display_sec: float = DEFAULT_MAX_DISPLAY_SEC):
        self._max_display_sec = max_display_sec
        self._state = DisplayState()

    @property
    def state(self) -> DisplayState:
        return self._state

    @property
    def max_display_sec(self) -> float:
        return self._max_display_sec

    def reset(self) -> None:
        """Forget everything that is on screen."""
        self._state = DisplayState()

    def hide_deadline(self) -> Optional[float]:
        """When the displayed line must come down, or None if nothing is timed."""
        start = self._state.active_start_sec
        if start is None:
            return None
        ceiling = start + self._max_display_sec
        next_start = self._state.active_next_start_sec
        if next_start is not None:
            return min(next_start, ceiling)
        return ceiling

    def advance(self, sec: float, lines: Sequence[LyricLine]) -> Optional[Payload]:
        """Process one tick. Returns the payload to send, or None."""
        location = locate(sec, lines)
        state = self._state
        deadline = self.hide_deadline()

        if location.active_index != state.active_line_index:
            state.hidden_until_sec = None

        if state.hidden_until_sec is not None and sec < state.hidden_until_sec:
            return None

        if (
            state.is_showing
            and deadline is not None
            and sec >= deadline
            and location.active_index == state.active_line_index
        ):
            logger.debug(f"Hiding line {state.active_line_index} at {sec:.2f}s (deadline {deadline:.2f}s)")
            state.active_text = ""
            state.active_start_sec = None
            state.active_next_start_sec = None
            if location.next_start_sec is not None:
                state.hidden_until_sec = location.next_start_sec
            else:
                state.hidden_until_sec = sec + FAR_FUTURE_SEC
            return Hide(sec=sec)

        if location.has_line and location.active_index != state.active_line_index:
            line = location.active_line
            state.active_line_index = location.active_index
            state.active_text = line.text
            state.active_start_sec = line.start_time
            state.active_next_start_sec = location.next_start_sec
            return ShowLine(text=line.text, sec=sec)

        return None
