"""
Frame Data Model
=================

Internal frame representation for the streaming pipeline.

A frame is one newline-delimited line read from the streaming endpoint:
either a JSON object or a blank keep-alive line.

Design Rules:
    - This is the ONLY frame format passed to the dispatcher
    - Raw text is preserved unchanged for raw listeners
    - Keep-alive frames carry no payload and trigger no callbacks
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True, slots=True)
class Frame:
    """
    One parsed line from the stream.

    Immutable (frozen) so a frame can be handed to several listeners
    on the dispatcher thread without copying.

    Attributes:
        raw: Line exactly as received (without the line terminator)
        payload: Decoded JSON object, or None for a keep-alive line
        received_at: time.monotonic() when the line was read
    """

    raw: str
    payload: Optional[dict]
    received_at: float

    @property
    def keep_alive(self) -> bool:
        """Whether this is a blank heartbeat line."""
        return self.payload is None

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the full payload."""
        if self.keep_alive:
            return f"Frame(keep_alive, received_at={self.received_at:.3f})"
        return (
            f"Frame(keys={sorted(self.payload)[:3]}, "
            f"size={len(self.raw)}, "
            f"received_at={self.received_at:.3f})"
        )
