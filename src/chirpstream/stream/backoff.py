"""
Reconnect Backoff
=================

Wait schedules applied between failed streaming connection attempts.

Schedules (streaming API connection guidelines):
    network  - TCP/IP level errors: start at 250 ms, double, cap at 16 s
    protocol - HTTP errors (> 200) and malformed frames: start at 10 s,
               double, cap at 240 s

The two schedules advance independently within one outage, and both
reset to zero as soon as a connection is established.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from chirpstream.config import BackoffConfig
from chirpstream.errors import ProtocolError
from chirpstream.models.lifecycle import BackoffKind


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BackoffPolicy:
    """
    Geometric wait schedule.

    Attributes:
        initial_ms: First wait of an outage
        cap_ms: Upper bound for any wait
    """

    initial_ms: int
    cap_ms: int

    def next_after(self, wait_ms: int) -> int:
        """Wait that follows wait_ms (initial_ms when nothing waited yet)."""
        if wait_ms <= 0:
            return min(self.initial_ms, self.cap_ms)
        return min(wait_ms * 2, self.cap_ms)


NETWORK_POLICY = BackoffPolicy(initial_ms=250, cap_ms=16_000)
PROTOCOL_POLICY = BackoffPolicy(initial_ms=10_000, cap_ms=240_000)


def classify_failure(error: Exception) -> BackoffKind:
    """
    Pick the schedule for a failure.

    Errors that reached the application layer (an HTTP status above 200,
    or a frame the parser rejected) use the protocol schedule; everything
    else is treated as a network failure.
    """
    if isinstance(error, ProtocolError):
        return BackoffKind.PROTOCOL
    status_code = getattr(error, "status_code", None)
    if status_code is not None and status_code > 200:
        return BackoffKind.PROTOCOL
    return BackoffKind.NETWORK


class Backoff:
    """
    Backoff state owned by one session.

    Attributes:
        kind: Schedule used for the most recent failure (None after reset)

    Example:
        backoff = Backoff()
        backoff.next_wait_ms(BackoffKind.NETWORK)  # 250
        backoff.next_wait_ms(BackoffKind.NETWORK)  # 500
        backoff.reset()
    """

    def __init__(
        self,
        network: BackoffPolicy = NETWORK_POLICY,
        protocol: BackoffPolicy = PROTOCOL_POLICY,
    ) -> None:
        self._policies: Dict[BackoffKind, BackoffPolicy] = {
            BackoffKind.NETWORK: network,
            BackoffKind.PROTOCOL: protocol,
        }
        self._waits: Dict[BackoffKind, int] = {kind: 0 for kind in BackoffKind}
        self.kind: Optional[BackoffKind] = None

    @classmethod
    def from_config(cls, config: BackoffConfig) -> "Backoff":
        return cls(
            network=BackoffPolicy(config.network_initial_ms, config.network_cap_ms),
            protocol=BackoffPolicy(config.protocol_initial_ms, config.protocol_cap_ms),
        )

    @property
    def current_wait_ms(self) -> int:
        """Most recent wait handed out, 0 when connected."""
        if self.kind is None:
            return 0
        return self._waits[self.kind]

    def next_wait_ms(self, kind: BackoffKind) -> int:
        """
        Advance the schedule for kind and return the wait to apply.

        Args:
            kind: Failure classification

        Returns:
            Milliseconds to wait before the next attempt
        """
        wait = self._policies[kind].next_after(self._waits[kind])
        self._waits[kind] = wait
        self.kind = kind
        return wait

    def reset(self) -> None:
        """Forget the outage; called once a connection is established."""
        if self.kind is not None:
            logger.debug("Backoff reset after successful connection")
        self._waits = {kind: 0 for kind in BackoffKind}
        self.kind = None
