"""Custom exceptions for the lyric overlay."""


class LyricOverlayError(Exception):
    """Base exception for the lyric overlay."""
    pass


class ResolutionFailure(LyricOverlayError):
    """Lyric lookup failed (network, HTTP status or unparseable response)."""
    pass


class MalformedTick(LyricOverlayError):
    """Playback position could not be read as a finite number of seconds."""
    pass


class CacheWriteFailure(LyricOverlayError):
    """Resolved lyrics could not be written to the on-disk cache."""
    pass
