"""
Stream Module
=============

Streaming connection components.

This module provides the supervised streaming layer of chirpstream:
    - Frame / FrameParser: newline-delimited JSON frames from a live body
    - HttpTransport: opens streaming requests with requests
    - Dispatcher / SerialLane / DispatcherProvider / DispatcherLease: listener callback pool
    - ListenerRegistry and listener base classes
    - Backoff: reconnect wait schedules
    - StreamConsumer: the per-session connection supervisor
    - StreamClient: the public handle

Example:
    from chirpstream.stream import StreamClient, StatusListener

    client = StreamClient(settings)
    client.add_listener(MyListener()).sample()
"""

from chirpstream.stream.backoff import Backoff, BackoffPolicy
from chirpstream.stream.client import StreamClient
from chirpstream.stream.consumer import StreamConsumer, StreamConsumerMetrics
from chirpstream.stream.dispatcher import (
    Dispatcher,
    DispatcherLease,
    DispatcherProvider,
    SerialLane,
    default_provider,
)
from chirpstream.stream.frame import Frame
from chirpstream.stream.listeners import (
    Capability,
    ConnectionLifecycleListener,
    ListenerRegistry,
    RawStreamListener,
    StatusAdapter,
    StatusListener,
    StreamListener,
)
from chirpstream.stream.parser import FrameParser
from chirpstream.stream.transport import HttpLiveBody, HttpTransport, LiveBody


__all__ = [
    "Backoff",
    "BackoffPolicy",
    "Capability",
    "ConnectionLifecycleListener",
    "Dispatcher",
    "DispatcherLease",
    "DispatcherProvider",
    "Frame",
    "FrameParser",
    "HttpLiveBody",
    "HttpTransport",
    "ListenerRegistry",
    "LiveBody",
    "RawStreamListener",
    "SerialLane",
    "StatusAdapter",
    "StatusListener",
    "StreamClient",
    "StreamConsumer",
    "StreamConsumerMetrics",
    "StreamListener",
    "default_provider",
]
