"""
Data Models
===========

Pydantic models and enums for chirpstream.

This module re-exports all data models for convenient access.

Models:
    Events:
        - Status, User: Status updates and their authors
        - StatusDeletionNotice, TrackLimitationNotice, ScrubGeo, StallWarning
        - decode_event: Maps one decoded frame to one event

    Query:
        - FilterQuery: Predicates for the filter endpoint

    Lifecycle:
        - ConnectionMode, SessionState, LifecycleEvent, BackoffKind
"""

from chirpstream.models.events import (
    ScrubGeo,
    StallWarning,
    Status,
    StatusDeletionNotice,
    StreamEvent,
    TrackLimitationNotice,
    User,
    decode_event,
)
from chirpstream.models.lifecycle import (
    BackoffKind,
    ConnectionMode,
    LifecycleEvent,
    SessionState,
)
from chirpstream.models.query import FilterQuery

__all__ = [
    # Events
    "User",
    "Status",
    "StatusDeletionNotice",
    "TrackLimitationNotice",
    "ScrubGeo",
    "StallWarning",
    "StreamEvent",
    "decode_event",
    # Query
    "FilterQuery",
    # Lifecycle
    "ConnectionMode",
    "SessionState",
    "LifecycleEvent",
    "BackoffKind",
]
