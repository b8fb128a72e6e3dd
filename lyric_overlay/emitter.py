"""Dedup emitter - last stop before the push transport."""
import logging
from typing import Any, Dict, Optional, Protocol

from lyric_overlay.domain_types import Payload, Reset, encode_payload

logger = logging.getLogger(__name__)

_RESET_MESSAGE = encode_payload(Reset())


class Transport(Protocol):
    """Anything that can fan a message out to connected display clients."""

    def broadcast(self, message: str) -> None:
        ...


class DedupEmitter:
    """
    Sends payloads to the transport, skipping any payload whose wire form is
    identical to the previous one.

    Delivery is best effort: a failing transport is logged and never raised
    back into the tick path.
    """

    def __init__(self, transport: Optional[Transport] = None):
        self._transport = transport
        self._last_payload: Optional[str] = None
        self._sent = 0
        self._suppressed = 0

    @property
    def last_payload(self) -> Optional[str]:
        return self._last_payload

    @property
    def reset_pending(self) -> bool:
        """True when the last message sent was a Reset and nothing has followed it."""
        return self._last_payload == _RESET_MESSAGE

    def emit(self, payload: Payload) -> bool:
        """Send unless identical to the last payload. Returns True if sent."""
        message = encode_payload(payload)
        if message == self._last_payload:
            self._suppressed += 1
            return False
        self._last_payload = message
        self._deliver(message)
        return True

    def reset(self) -> None:
        """Always send a Reset, regardless of what went out before."""
        self._last_payload = _RESET_MESSAGE
        self._deliver(_RESET_MESSAGE)

    def get_status(self) -> Dict[str, Any]:
        return {
            "sent": self._sent,
            "suppressed": self._suppressed,
            "last_payload": self._last_payload,
        }

    def _deliver(self, message: str) -> None:
        self._sent += 1
        if self._transport is None:
            return
        try:
            self._transport.broadcast(message)
        except Exception as exc:
            logger.error(f"Broadcast failed: {exc}")
