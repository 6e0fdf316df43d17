"""
Listeners and Listener Registry
===============================

Callback interfaces and the thread-safe registry that holds them.

Capabilities are declared, not inferred: every registration carries the
set of capabilities it serves.

    STRUCTURED - receives typed events (on_status, on_deletion_notice, ...)
    RAW        - receives each frame's raw JSON text (on_message)

Listener classes declare a default through their ``capabilities``
class attribute; add() can override it per registration. A listener
holding both capabilities gets both calls for each frame, raw first.

Example:
    class Printer(StatusListener):
        def on_status(self, status):
            print(status.text)

    registry = ListenerRegistry()
    registry.add(Printer())
    snapshot = registry.snapshot()
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, FrozenSet, List, Optional, Tuple

from chirpstream.models.events import (
    ScrubGeo,
    StallWarning,
    Status,
    StatusDeletionNotice,
    StreamEvent,
    TrackLimitationNotice,
)


class Capability(str, Enum):
    """What a registration wants delivered."""

    STRUCTURED = "structured"
    RAW = "raw"


STRUCTURED_ONLY = frozenset({Capability.STRUCTURED})
RAW_ONLY = frozenset({Capability.RAW})
STRUCTURED_AND_RAW = frozenset({Capability.STRUCTURED, Capability.RAW})


class StreamListener:
    """Base for all stream listeners: every listener hears about failures."""

    capabilities: FrozenSet[Capability] = frozenset()

    def on_exception(self, error: Exception) -> None:
        """Called for every connection failure, retried or fatal."""


class StatusListener(StreamListener):
    """
    Structured listener. Override the callbacks you need.

    All callbacks run on a dispatcher thread, never on the thread
    reading the socket.
    """

    capabilities = STRUCTURED_ONLY

    def on_status(self, status: Status) -> None:
        pass

    def on_deletion_notice(self, notice: StatusDeletionNotice) -> None:
        pass

    def on_track_limitation_notice(self, notice: TrackLimitationNotice) -> None:
        pass

    def on_scrub_geo(self, notice: ScrubGeo) -> None:
        pass

    def on_stall_warning(self, warning: StallWarning) -> None:
        pass


class RawStreamListener(StreamListener):
    """Raw listener: receives each frame's text as received."""

    capabilities = RAW_ONLY

    def on_message(self, raw_json: str) -> None:
        pass


class StatusAdapter(StatusListener, RawStreamListener):
    """Listener with no-op callbacks for both capabilities."""

    capabilities = STRUCTURED_AND_RAW


class ConnectionLifecycleListener:
    """Observer of connect / disconnect / cleanup transitions."""

    def on_connect(self) -> None:
        pass

    def on_disconnect(self) -> None:
        pass

    def on_clean_up(self) -> None:
        pass


class _StatusCallback(StatusListener):
    def __init__(self, action: Callable[[Status], None]) -> None:
        self._action = action

    def on_status(self, status: Status) -> None:
        self._action(status)


class _ExceptionCallback(StatusListener):
    def __init__(self, action: Callable[[Exception], None]) -> None:
        self._action = action

    def on_exception(self, error: Exception) -> None:
        self._action(error)


def status_callback(action: Callable[[Status], None]) -> StatusListener:
    """Wrap a plain function as a listener that only handles statuses."""
    return _StatusCallback(action)


def exception_callback(action: Callable[[Exception], None]) -> StatusListener:
    """Wrap a plain function as a listener that only handles failures."""
    return _ExceptionCallback(action)


@dataclass(frozen=True)
class Registration:
    """One add() call: a listener and the capabilities it was registered with."""

    listener: StreamListener
    capabilities: FrozenSet[Capability]

    @property
    def structured(self) -> bool:
        return Capability.STRUCTURED in self.capabilities

    @property
    def raw(self) -> bool:
        return Capability.RAW in self.capabilities


@dataclass(frozen=True)
class ListenerSnapshot:
    """
    Immutable view of the registry taken at one point in time.

    Attributes:
        version: Registry version the snapshot was taken at
        registrations: All registrations, in insertion order
    """

    version: int
    registrations: Tuple[Registration, ...]

    @property
    def structured(self) -> Tuple[StreamListener, ...]:
        return tuple(r.listener for r in self.registrations if r.structured)

    @property
    def raw(self) -> Tuple[StreamListener, ...]:
        return tuple(r.listener for r in self.registrations if r.raw)

    def __len__(self) -> int:
        return len(self.registrations)


def deliver_event(listener: StreamListener, event: StreamEvent) -> None:
    """Route a typed event to the matching callback of a structured listener."""
    if isinstance(event, Status):
        listener.on_status(event)
    elif isinstance(event, StatusDeletionNotice):
        listener.on_deletion_notice(event)
    elif isinstance(event, TrackLimitationNotice):
        listener.on_track_limitation_notice(event)
    elif isinstance(event, ScrubGeo):
        listener.on_scrub_geo(event)
    elif isinstance(event, StallWarning):
        listener.on_stall_warning(event)


class ListenerRegistry:
    """
    Ordered, thread-safe collection of listener registrations.

    Every mutation increments ``version``; readers compare versions to
    know when their cached snapshot is stale. Snapshots are plain tuples,
    so dispatching never holds the registry lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._registrations: List[Registration] = []
        self._version: int = 0

    @property
    def version(self) -> int:
        return self._version

    def __len__(self) -> int:
        return len(self._registrations)

    def add(
        self,
        listener: StreamListener,
        capabilities: Optional[FrozenSet[Capability]] = None,
    ) -> Registration:
        """
        Register a listener.

        Args:
            listener: Listener to add (duplicates are kept)
            capabilities: Overrides the listener's declared capabilities

        Returns:
            The new registration

        Raises:
            ValueError: the registration would have no capability
        """
        caps = frozenset(capabilities if capabilities is not None else listener.capabilities)
        if not caps:
            raise ValueError(
                f"{type(listener).__name__} declares no capabilities; "
                "pass capabilities= explicitly"
            )
        registration = Registration(listener, caps)
        with self._lock:
            self._registrations.append(registration)
            self._version += 1
        return registration

    def remove(self, listener: StreamListener) -> bool:
        """
        Remove the first registration of listener.

        Returns:
            True if a registration was removed
        """
        with self._lock:
            removed = self._remove_locked(listener)
            if removed:
                self._version += 1
            return removed

    def replace(
        self,
        old: StreamListener,
        new: StreamListener,
        capabilities: Optional[FrozenSet[Capability]] = None,
    ) -> Registration:
        """
        Remove old (if present) and append new, as one atomic step.

        Returns:
            The registration created for new
        """
        caps = frozenset(capabilities if capabilities is not None else new.capabilities)
        if not caps:
            raise ValueError(f"{type(new).__name__} declares no capabilities")
        registration = Registration(new, caps)
        with self._lock:
            self._remove_locked(old)
            self._registrations.append(registration)
            self._version += 1
        return registration

    def clear(self) -> int:
        """
        Remove every registration.

        Returns:
            Number of registrations removed
        """
        with self._lock:
            cleared = len(self._registrations)
            self._registrations.clear()
            self._version += 1
            return cleared

    def snapshot(self) -> ListenerSnapshot:
        """Current registrations as an immutable snapshot."""
        with self._lock:
            return ListenerSnapshot(self._version, tuple(self._registrations))

    def _remove_locked(self, listener: StreamListener) -> bool:
        for index, registration in enumerate(self._registrations):
            if registration.listener is listener:
                del self._registrations[index]
                return True
        return False
