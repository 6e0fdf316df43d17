"""
Stream Consumer
===============

Connection supervisor for one streaming session.

This module provides the StreamConsumer class which:
    - Opens the connection through a connection factory
    - Parses frames from the live body
    - Hands every frame to the shared dispatcher, in order
    - Classifies failures and backs off before reconnecting
    - Reports connect / disconnect / cleanup to lifecycle listeners

State machine:

    IDLE → CONNECTING → STREAMING → (BACKOFF ↔ CONNECTING) → CLOSED

    403 / 406 go straight to CLOSED after one on_exception per listener.
    Any other failure notifies listeners, waits, and reconnects.

Design Rules:
    - One thread per session; listener code never runs on it
    - The socket read and the backoff wait both end promptly on close()
    - Lifecycle listener errors are logged, never propagated
    - After close(), queued frames are dropped and nothing is read
"""

import itertools
import logging
import threading
from functools import partial
from typing import Callable, List, Optional

from pydantic import ValidationError

from chirpstream.errors import (
    NetworkError,
    PermanentRejection,
    ProtocolError,
    StreamClosedError,
)
from chirpstream.models.events import StreamEvent, decode_event
from chirpstream.models.lifecycle import ConnectionMode, LifecycleEvent, SessionState
from chirpstream.stream.backoff import Backoff, classify_failure
from chirpstream.stream.dispatcher import Dispatcher, SerialLane
from chirpstream.stream.frame import Frame
from chirpstream.stream.listeners import (
    ConnectionLifecycleListener,
    ListenerRegistry,
    ListenerSnapshot,
    deliver_event,
)
from chirpstream.stream.parser import FrameParser
from chirpstream.stream.transport import LiveBody


logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[], LiveBody]

_consumer_ids = itertools.count(1)


class StreamConsumerMetrics:
    """Metrics for StreamConsumer observability."""

    __slots__ = (
        "frames_received",
        "frames_dropped",
        "keep_alives",
        "decode_failures",
        "failures",
        "reconnect_count",
        "last_wait_ms",
    )

    def __init__(self) -> None:
        self.frames_received: int = 0
        self.frames_dropped: int = 0
        self.keep_alives: int = 0
        self.decode_failures: int = 0
        self.failures: int = 0
        self.reconnect_count: int = 0
        self.last_wait_ms: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "frames_received": self.frames_received,
            "frames_dropped": self.frames_dropped,
            "keep_alives": self.keep_alives,
            "decode_failures": self.decode_failures,
            "failures": self.failures,
            "reconnect_count": self.reconnect_count,
            "last_wait_ms": self.last_wait_ms,
        }


class StreamConsumer:
    """
    Supervises one streaming session on its own thread.

    The consumer does not know which endpoint it reads: the connection
    factory opens the request and returns a live body, so every
    streaming verb shares this one state machine.

    Attributes:
        mode: Endpoint the session is attached to
        metrics: Operational metrics

    Example:
        consumer = StreamConsumer(
            mode=ConnectionMode.SAMPLE,
            connection_factory=lambda: transport.open("GET", url, params, auth),
            listeners=registry,
            lifecycle_listeners=[],
            dispatcher=provider.acquire(),
        )
        consumer.start()

        # Later, from any thread
        consumer.close()
        consumer.join(timeout=5)
    """

    def __init__(
        self,
        mode: ConnectionMode,
        connection_factory: ConnectionFactory,
        listeners: ListenerRegistry,
        lifecycle_listeners: List[ConnectionLifecycleListener],
        dispatcher: Dispatcher,
        backoff: Optional[Backoff] = None,
        thread_name: str = "",
        daemon: bool = True,
        on_closed: Optional[Callable[[], object]] = None,
    ) -> None:
        """
        Initialize stream consumer.

        Args:
            mode: Endpoint the session is attached to
            connection_factory: Opens the request; raises NetworkError or
                ProtocolError on failure
            listeners: Registry shared with the owning client
            lifecycle_listeners: List shared with the owning client
            dispatcher: Shared pool running listener callbacks
            backoff: Backoff state (default schedules when None)
            thread_name: Label included in the thread name
            daemon: Run the consumer thread as a daemon
            on_closed: Called once on the consumer thread after the session
                reaches CLOSED, however it got there
        """
        self.mode = mode
        self._factory = connection_factory
        self._registry = listeners
        self._lifecycle_listeners = lifecycle_listeners
        self._lane = SerialLane(dispatcher)
        self._backoff = backoff or Backoff()
        self._on_closed = on_closed

        # State
        self._lock = threading.Lock()
        self._closed = threading.Event()
        self._body: Optional[LiveBody] = None
        self._connected: bool = False
        self._state = SessionState.IDLE
        self._snapshot: ListenerSnapshot = listeners.snapshot()

        # Metrics
        self.metrics = StreamConsumerMetrics()

        self._name = f"chirpstream consumer / {thread_name} [{next(_consumer_ids)}]"
        self._thread = threading.Thread(
            target=self._run,
            name=f"{self._name}[initializing]",
            daemon=daemon,
        )

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def connected(self) -> bool:
        """Whether a live body is currently being read."""
        return self._connected

    @property
    def backoff(self) -> Backoff:
        return self._backoff

    @property
    def alive(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> None:
        """Start the consumer thread."""
        self._thread.start()

    def close(self) -> None:
        """
        Stop the session. Idempotent and callable from any thread.

        Sets the closed flag, then closes the live body so a blocked read
        returns. Never joins the consumer thread, so it is safe to call
        from a listener callback.
        """
        with self._lock:
            if self._closed.is_set():
                return
            self._closed.set()
            body = self._body
        self._set_status("[Disposing thread]")

        if body is not None:
            body.close()

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the consumer thread to finish.

        Returns:
            True if the thread has exited
        """
        if self._thread.ident is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def update_listeners(self) -> None:
        """Refresh the cached listener snapshot from the registry."""
        self._snapshot = self._registry.snapshot()

    # -------------------------------------------------------------------------
    # Consumer thread
    # -------------------------------------------------------------------------

    def _run(self) -> None:
        try:
            while not self._closed.is_set():
                try:
                    self._connect_and_consume()
                except StreamClosedError:
                    break
                except PermanentRejection as e:
                    self._reject(e)
                    break
                except (NetworkError, ProtocolError) as e:
                    if self._closed.is_set():
                        break
                    self._back_off(e)
                except Exception as e:
                    logger.exception("Unexpected error in stream consumer, closing")
                    self._notify_exception(e)
                    self._closed.set()
                    break
        finally:
            self._finish()

    def _connect_and_consume(self) -> None:
        """Connect and read frames until the body ends or fails."""
        logger.info("Establishing connection.")
        self._set_state(SessionState.CONNECTING, "[Establishing connection]")
        body = self._factory()

        with self._lock:
            if self._closed.is_set():
                body.close()
                raise StreamClosedError("Stream closed while connecting")
            self._body = body

        try:
            self._connected = True
            self._backoff.reset()
            logger.info("Connection established.")
            self._emit(LifecycleEvent.CONNECTED)

            logger.info("Receiving status stream.")
            self._set_state(SessionState.STREAMING, "[Receiving stream]")
            for frame in FrameParser(body):
                if self._closed.is_set():
                    raise StreamClosedError("Stream closed by caller")
                if frame.keep_alive:
                    self.metrics.keep_alives += 1
                    continue
                self._dispatch(frame)

            if self._closed.is_set():
                raise StreamClosedError("Stream closed by caller")
            raise NetworkError("Stream closed by server")
        finally:
            self._discard_body()

    def _dispatch(self, frame: Frame) -> None:
        try:
            event = decode_event(frame.payload)
        except (ValidationError, AttributeError, TypeError) as e:
            self.metrics.decode_failures += 1
            logger.warning(f"Failed to decode frame {frame!r}: {e}")
            event = None

        self.metrics.frames_received += 1
        self._lane.submit(partial(self._deliver, frame, event, self._listeners()))

    def _deliver(
        self,
        frame: Frame,
        event: Optional[StreamEvent],
        snapshot: ListenerSnapshot,
    ) -> None:
        """Runs on a dispatcher thread."""
        if self._closed.is_set():
            self.metrics.frames_dropped += 1
            return

        for registration in snapshot.registrations:
            listener = registration.listener
            if registration.raw:
                try:
                    listener.on_message(frame.raw)
                except Exception:
                    logger.exception(f"{type(listener).__name__}.on_message failed")
            if registration.structured and event is not None:
                try:
                    deliver_event(listener, event)
                except Exception:
                    logger.exception(f"{type(listener).__name__} failed handling {type(event).__name__}")

    def _back_off(self, error: Exception) -> None:
        """Report a retryable failure and wait before the next attempt."""
        kind = classify_failure(error)
        self.metrics.failures += 1
        logger.info(f"{type(error).__name__}: {error}")

        if self._connected:
            self._connected = False
            self._emit(LifecycleEvent.DISCONNECTED)
        self._notify_exception(error)

        wait_ms = self._backoff.next_wait_ms(kind)
        self.metrics.last_wait_ms = wait_ms
        logger.info(f"Waiting for {wait_ms} milliseconds")
        self._set_state(SessionState.BACKOFF, f"[Waiting for {wait_ms} milliseconds]")

        if self._closed.wait(wait_ms / 1000.0):
            return
        self.metrics.reconnect_count += 1

    def _reject(self, error: PermanentRejection) -> None:
        """403 / 406: tell every listener once and stop for good."""
        if error.status_code == 403:
            logger.warning(f"This account is not in required role. {error}")
        else:
            logger.warning(f"Parameter not accepted with the role. {error}")
        self.metrics.failures += 1
        self._notify_exception(error)
        self._closed.set()

    def _notify_exception(self, error: Exception) -> None:
        snapshot = self._listeners()
        try:
            self._lane.submit(partial(self._deliver_exception, error, snapshot))
        except RuntimeError as e:
            logger.warning(f"Could not report {type(error).__name__} to listeners: {e}")

    @staticmethod
    def _deliver_exception(error: Exception, snapshot: ListenerSnapshot) -> None:
        """Runs on a dispatcher thread, even after close()."""
        for registration in snapshot.registrations:
            try:
                registration.listener.on_exception(error)
            except Exception:
                logger.exception(f"{type(registration.listener).__name__}.on_exception failed")

    def _finish(self) -> None:
        with self._lock:
            self._closed.set()
        self._discard_body()

        if self._connected:
            self._connected = False
            self._emit(LifecycleEvent.DISCONNECTED)
        self._set_state(SessionState.CLOSED, "[Closed]")
        self._emit(LifecycleEvent.CLEANED_UP)
        logger.info(f"Stream consumer stopped: {self.metrics.to_dict()}")

        if self._on_closed is not None:
            try:
                self._on_closed()
            except Exception:
                logger.exception("on_closed callback failed")

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _listeners(self) -> ListenerSnapshot:
        """Cached snapshot, refreshed when the registry has changed."""
        if self._snapshot.version != self._registry.version:
            self._snapshot = self._registry.snapshot()
        return self._snapshot

    def _discard_body(self) -> None:
        with self._lock:
            body = self._body
            self._body = None
        if body is not None:
            body.close()

    def _emit(self, event: LifecycleEvent) -> None:
        for listener in list(self._lifecycle_listeners):
            try:
                if event is LifecycleEvent.CONNECTED:
                    listener.on_connect()
                elif event is LifecycleEvent.DISCONNECTED:
                    listener.on_disconnect()
                else:
                    listener.on_clean_up()
            except Exception as e:
                logger.warning(f"Lifecycle listener failed on {event.value}: {e}")

    def _set_state(self, state: SessionState, status: str) -> None:
        self._state = state
        self._set_status(status)

    def _set_status(self, status: str) -> None:
        name = f"{self._name}{status}"
        self._thread.name = name
        logger.debug(name)
