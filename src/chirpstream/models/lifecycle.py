"""
Session Lifecycle Enums
=======================

Enumerations describing a streaming session.

State machine (one StreamConsumer):

    IDLE → CONNECTING → STREAMING → (BACKOFF ↔ CONNECTING) → CLOSED

    CLOSED is terminal. A new session must be started to reconnect
    after cleanup or shutdown.
"""

from enum import Enum


class ConnectionMode(str, Enum):
    """Which streaming endpoint a session is attached to."""

    SAMPLE = "sample"
    FILTER = "filter"
    FIREHOSE = "firehose"
    LINKS = "links"
    RETWEET = "retweet"


class SessionState(str, Enum):
    """
    States of the connection supervisor.

    Attributes:
        IDLE: Created, thread not yet running
        CONNECTING: Opening the HTTP connection
        STREAMING: Reading frames from a live body
        BACKOFF: Waiting before the next connection attempt
        CLOSED: Terminal; no further callbacks
    """

    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    STREAMING = "STREAMING"
    BACKOFF = "BACKOFF"
    CLOSED = "CLOSED"


class LifecycleEvent(str, Enum):
    """Transitions reported to connection lifecycle listeners."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CLEANED_UP = "cleaned_up"


class BackoffKind(str, Enum):
    """
    Failure class that selects the backoff schedule.

    NETWORK: the connection never reached the HTTP layer
    PROTOCOL: the server answered with an error status or sent a bad frame
    """

    NETWORK = "network"
    PROTOCOL = "protocol"
