"""
Test Configuration
==================

Pytest fixtures and test doubles for chirpstream.

The fakes stand in for the HTTP layer:
    - FakeBody: a live body fed line by line from the test
    - ScriptedTransport: returns bodies / raises errors in a fixed order
    - RecordingListener / RecordingLifecycle: thread-safe call recorders
"""

import queue
import threading
import time

import pytest

from chirpstream.config import BackoffConfig, Settings
from chirpstream.errors import StreamClosedError
from chirpstream.models.lifecycle import ConnectionMode
from chirpstream.stream.backoff import Backoff, BackoffPolicy
from chirpstream.stream.consumer import StreamConsumer
from chirpstream.stream.dispatcher import DispatcherProvider
from chirpstream.stream.listeners import (
    ConnectionLifecycleListener,
    ListenerRegistry,
    StatusAdapter,
)


STREAM_URL = "https://stream.example.test/1.1/statuses/sample.json"

_CLOSE = object()
_EOF = object()


def status_line(status_id: int, text: str = "hello") -> str:
    return f'{{"id": {status_id}, "text": "{text}", "user": {{"id": 7, "screen_name": "tester"}}}}'


class FakeBody:
    """Live body whose lines are pushed by the test."""

    status_code = 200

    def __init__(self, lines=()) -> None:
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._closed = threading.Event()
        self.close_calls = 0
        self.push(*lines)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def push(self, *lines) -> None:
        for line in lines:
            self._queue.put(line)

    def end(self) -> None:
        """Simulate the server hanging up."""
        self._queue.put(_EOF)

    def fail(self, error: Exception) -> None:
        """Simulate a read error."""
        self._queue.put(error)

    def iter_lines(self):
        while True:
            item = self._queue.get()
            if self._closed.is_set() or item is _CLOSE:
                raise StreamClosedError("Stream closed by caller")
            if item is _EOF:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    def close(self) -> None:
        self.close_calls += 1
        self._closed.set()
        self._queue.put(_CLOSE)


class ScriptedTransport:
    """Transport returning scripted outcomes, one per open() call."""

    def __init__(self, *outcomes, default=None) -> None:
        self._outcomes = list(outcomes)
        self._default = default
        self._lock = threading.Lock()
        self.calls = []

    @property
    def open_count(self) -> int:
        return len(self.calls)

    def open(self, method, url, params=None, authorization=None, read_timeout=None):
        with self._lock:
            self.calls.append((method, url, dict(params or {})))
            if self._outcomes:
                outcome = self._outcomes.pop(0)
            elif self._default is not None:
                outcome = self._default
            else:
                outcome = FakeBody()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class RecordingListener(StatusAdapter):
    """Records every callback as (kind, value) in arrival order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.calls = []

    def _record(self, kind, value) -> None:
        with self._lock:
            self.calls.append((kind, value))

    def of(self, kind):
        with self._lock:
            return [value for recorded, value in self.calls if recorded == kind]

    def on_message(self, raw_json):
        self._record("raw", raw_json)

    def on_status(self, status):
        self._record("status", status)

    def on_deletion_notice(self, notice):
        self._record("delete", notice)

    def on_track_limitation_notice(self, notice):
        self._record("limit", notice)

    def on_scrub_geo(self, notice):
        self._record("scrub_geo", notice)

    def on_stall_warning(self, warning):
        self._record("warning", warning)

    def on_exception(self, error):
        self._record("exception", error)


class RecordingLifecycle(ConnectionLifecycleListener):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.events = []

    def _record(self, event) -> None:
        with self._lock:
            self.events.append(event)

    def count(self, event) -> int:
        with self._lock:
            return self.events.count(event)

    def on_connect(self):
        self._record("connected")

    def on_disconnect(self):
        self._record("disconnected")

    def on_clean_up(self):
        self._record("cleaned_up")


def wait_for(predicate, timeout: float = 3.0, interval: float = 0.01) -> bool:
    """Poll predicate until it is true or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def fast_backoff() -> Backoff:
    return Backoff(
        network=BackoffPolicy(initial_ms=10, cap_ms=40),
        protocol=BackoffPolicy(initial_ms=20, cap_ms=80),
    )


@pytest.fixture
def wait_until():
    return wait_for


@pytest.fixture
def settings():
    """Settings with credentials and millisecond backoff."""
    return Settings.model_validate({
        "auth": {"bearer_token": "test-token"},
        "stream": {"base_url": "https://stream.example.test/1.1/"},
        "backoff": BackoffConfig(
            network_initial_ms=10,
            network_cap_ms=40,
            protocol_initial_ms=20,
            protocol_cap_ms=80,
        ).model_dump(),
    })


@pytest.fixture
def provider():
    """Dispatcher provider private to one test."""
    provider = DispatcherProvider()
    yield provider
    while provider.active_sessions:
        provider.release()
    provider.shutdown_if_idle(wait=True)


@pytest.fixture
def registry():
    return ListenerRegistry()


@pytest.fixture
def recorder(registry):
    listener = RecordingListener()
    registry.add(listener)
    return listener


@pytest.fixture
def lifecycle():
    return RecordingLifecycle()


@pytest.fixture
def make_consumer(provider):
    """Build StreamConsumers reading from a transport; closed on teardown."""
    created = []

    def _make(transport, registry, lifecycle_listeners=None, backoff=None, on_closed=None):
        consumer = StreamConsumer(
            mode=ConnectionMode.SAMPLE,
            connection_factory=lambda: transport.open("GET", STREAM_URL, {}),
            listeners=registry,
            lifecycle_listeners=lifecycle_listeners if lifecycle_listeners is not None else [],
            dispatcher=provider.acquire(),
            backoff=backoff or fast_backoff(),
            thread_name="test",
            on_closed=on_closed,
        )
        created.append(consumer)
        return consumer

    yield _make

    for consumer in created:
        consumer.close()
        consumer.join(timeout=3.0)
