"""
Stream Client
=============

Public handle for the streaming API.

The client:
    - Starts one supervised session per streaming verb, replacing any prior one
    - Manages stream listeners and connection lifecycle listeners
    - Shares one dispatcher with every other client in the process

Example:
    from chirpstream import StreamClient, StatusListener
    from chirpstream.config import load_config

    class Printer(StatusListener):
        def on_status(self, status):
            print(status.user.screen_name, status.text)

    client = StreamClient(load_config())
    client.add_listener(Printer()).filter("python")

    # Later
    client.shutdown()

Design Rules:
    - Verbs fail fast (no connection attempt) without a listener or credentials
    - At most one active session per client
    - A session stops counting against the shared dispatcher once it closes,
      whether it closed itself (403 / 406) or was cleaned up
    - cleanup() keeps the shared dispatcher; shutdown() releases it when idle
"""

import logging
import threading
from typing import Callable, Dict, FrozenSet, List, Optional, Union

from chirpstream.auth import Authorization, authorization_from_settings
from chirpstream.config import Settings
from chirpstream.errors import AuthorizationError, ConfigurationError
from chirpstream.models.events import Status
from chirpstream.models.lifecycle import ConnectionMode
from chirpstream.models.query import FilterQuery
from chirpstream.stream.backoff import Backoff
from chirpstream.stream.consumer import ConnectionFactory, StreamConsumer
from chirpstream.stream.dispatcher import DispatcherLease, DispatcherProvider, default_provider
from chirpstream.stream.listeners import (
    Capability,
    ConnectionLifecycleListener,
    ListenerRegistry,
    StreamListener,
    exception_callback,
    status_callback,
)
from chirpstream.stream.transport import HttpTransport


logger = logging.getLogger(__name__)


class StreamClient:
    """
    Streaming API handle.

    Attributes:
        settings: Client configuration
        authorization: Credentials attached to each request

    Example:
        client = StreamClient(settings, authorization=BearerTokenAuthorization(token))
        client.on_status(lambda status: print(status.text))
        client.sample()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        authorization: Optional[Authorization] = None,
        transport=None,
        provider: Optional[DispatcherProvider] = None,
    ) -> None:
        """
        Initialize stream client.

        Args:
            settings: Configuration (defaults when None)
            authorization: Credentials; built from settings.auth when None
            transport: Object with open(method, url, params, authorization);
                an HttpTransport when None
            provider: Owner of the shared dispatcher; the process-wide
                default when None
        """
        self.settings = settings or Settings()
        self.authorization = authorization or authorization_from_settings(self.settings.auth)
        self._transport = transport or HttpTransport(
            self.settings.http,
            chunk_size=self.settings.stream.chunk_size,
        )
        self._provider = provider or default_provider

        self._lock = threading.RLock()
        self._listeners = ListenerRegistry()
        self._lifecycle_listeners: List[ConnectionLifecycleListener] = []
        self._consumer: Optional[StreamConsumer] = None
        self._lease: Optional[DispatcherLease] = None

    @property
    def current_session(self) -> Optional[StreamConsumer]:
        """Consumer of the most recently started verb, if any."""
        return self._consumer

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    # -------------------------------------------------------------------------
    # Streaming verbs
    # -------------------------------------------------------------------------

    def sample(self, language: Optional[str] = None) -> "StreamClient":
        """
        Stream a random sample of all public statuses.

        Args:
            language: Only deliver statuses in this language
        """
        params = self._stall_warnings_param()
        if language:
            params["language"] = language
        return self._start(ConnectionMode.SAMPLE, "GET", "statuses/sample.json", params)

    def filter(self, query: Union[FilterQuery, str], *track: str) -> "StreamClient":
        """
        Stream public statuses matching the query.

        Args:
            query: FilterQuery, or the first keyword to track
            track: More keywords, when query is a keyword

        Example:
            client.filter(FilterQuery(follow=[12], track=["python"]))
            client.filter("python", "asyncio")
        """
        if isinstance(query, str):
            query = FilterQuery(track=[query, *track])
        params = query.to_params(stall_warnings=self.settings.stream.stall_warnings_enabled)
        return self._start(ConnectionMode.FILTER, "POST", "statuses/filter.json", params)

    def firehose(self, count: int = 0) -> "StreamClient":
        """
        Stream all public statuses (approved parties only).

        Args:
            count: Previous statuses to deliver before going live
        """
        params = {"count": str(count), **self._stall_warnings_param()}
        return self._start(ConnectionMode.FIREHOSE, "POST", "statuses/firehose.json", params)

    def links(self, count: int = 0) -> "StreamClient":
        """
        Stream all public statuses containing links (approved parties only).

        Args:
            count: Previous statuses to deliver before going live
        """
        params = {"count": str(count), **self._stall_warnings_param()}
        return self._start(ConnectionMode.LINKS, "POST", "statuses/links.json", params)

    def retweet(self) -> "StreamClient":
        """Stream all retweets (approved parties only)."""
        return self._start(
            ConnectionMode.RETWEET,
            "POST",
            "statuses/retweet.json",
            self._stall_warnings_param(),
        )

    # -------------------------------------------------------------------------
    # Listener management
    # -------------------------------------------------------------------------

    def add_listener(
        self,
        listener: StreamListener,
        capabilities: Optional[FrozenSet[Capability]] = None,
    ) -> "StreamClient":
        """
        Register a stream listener.

        Args:
            listener: StatusListener, RawStreamListener, or any listener
            capabilities: Overrides the listener's declared capabilities
        """
        with self._lock:
            self._listeners.add(listener, capabilities)
            self._update_listeners()
        return self

    def on_status(self, action: Callable[[Status], None]) -> "StreamClient":
        """Register a plain function called for each status."""
        return self.add_listener(status_callback(action))

    def on_exception(self, action: Callable[[Exception], None]) -> "StreamClient":
        """Register a plain function called for each connection failure."""
        return self.add_listener(exception_callback(action))

    def remove_listener(self, listener: StreamListener) -> "StreamClient":
        with self._lock:
            self._listeners.remove(listener)
            self._update_listeners()
        return self

    def replace_listener(
        self,
        to_be_removed: StreamListener,
        to_be_added: StreamListener,
    ) -> "StreamClient":
        with self._lock:
            self._listeners.replace(to_be_removed, to_be_added)
            self._update_listeners()
        return self

    def clear_listeners(self) -> "StreamClient":
        with self._lock:
            self._listeners.clear()
            self._update_listeners()
        return self

    def add_connection_lifecycle_listener(
        self,
        listener: ConnectionLifecycleListener,
    ) -> "StreamClient":
        """Register an observer of connect / disconnect / cleanup."""
        with self._lock:
            self._lifecycle_listeners.append(listener)
        return self

    # -------------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------------

    def cleanup(self) -> "StreamClient":
        """
        Stop the current session. Idempotent; safe from any thread,
        including from inside a listener callback. The shared dispatcher
        stays up for other clients.
        """
        with self._lock:
            consumer, lease = self._consumer, self._lease
            self._consumer, self._lease = None, None
        if consumer is not None:
            consumer.close()
        if lease is not None:
            lease.release()
        return self

    def shutdown(self) -> "StreamClient":
        """
        Stop the current session and release the shared dispatcher if no
        other client still has an active session.
        """
        self.cleanup()
        if self._provider.shutdown_if_idle():
            logger.info("Shared dispatcher released")
        return self

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _start(
        self,
        mode: ConnectionMode,
        method: str,
        path: str,
        params: Dict[str, str],
    ) -> "StreamClient":
        self._ensure_authorization_enabled()
        self._ensure_listener_is_set()

        url = self.settings.stream.base_url + path
        factory = self._connection_factory(method, url, params)

        with self._lock:
            self.cleanup()
            lease = self._provider.lease(self.settings.dispatcher.num_threads)
            try:
                consumer = StreamConsumer(
                    mode=mode,
                    connection_factory=factory,
                    listeners=self._listeners,
                    lifecycle_listeners=self._lifecycle_listeners,
                    dispatcher=lease.dispatcher,
                    backoff=Backoff.from_config(self.settings.backoff),
                    thread_name=self.settings.stream.thread_name,
                    daemon=self.settings.stream.daemon,
                    on_closed=lease.release,
                )
                consumer.start()
            except Exception:
                lease.release()
                raise
            self._consumer, self._lease = consumer, lease
        logger.info(f"Started {mode.value} stream: {url}")
        return self

    def _connection_factory(
        self,
        method: str,
        url: str,
        params: Dict[str, str],
    ) -> ConnectionFactory:
        transport = self._transport
        authorization = self.authorization

        def open_connection():
            return transport.open(method, url, params, authorization)

        return open_connection

    def _stall_warnings_param(self) -> Dict[str, str]:
        enabled = self.settings.stream.stall_warnings_enabled
        return {"stall_warnings": "true" if enabled else "false"}

    def _ensure_authorization_enabled(self) -> None:
        if not self.authorization.is_enabled():
            raise AuthorizationError("Authentication credentials are missing")

    def _ensure_listener_is_set(self) -> None:
        if len(self._listeners) == 0:
            raise ConfigurationError("No stream listener is set")

    def _update_listeners(self) -> None:
        if self._consumer is not None:
            self._consumer.update_listeners()

    def __repr__(self) -> str:
        return (
            f"StreamClient(listeners={len(self._listeners)}, "
            f"lifecycle_listeners={len(self._lifecycle_listeners)}, "
            f"session={self._consumer.mode.value if self._consumer else None})"
        )
