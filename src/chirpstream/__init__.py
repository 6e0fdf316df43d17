"""
chirpstream
===========

Client library for a social network's streaming API.

It opens authorized streaming requests, parses newline-delimited JSON
events into typed models, and keeps long-lived connections alive with
network and protocol backoff while fanning events out to listeners.

Components:
    - stream: connection supervisor, frame parser, dispatcher, listeners
    - models: event models, filter query, lifecycle enums
    - auth: authorization providers
    - config: settings loaded from YAML and environment

Example:
    from chirpstream import StreamClient, StatusListener
    from chirpstream.config import load_config

    client = StreamClient(load_config())
    client.on_status(lambda status: print(status.text)).sample()
"""

__version__ = "0.1.0"

from chirpstream.auth import (
    Authorization,
    BasicAuthorization,
    BearerTokenAuthorization,
    NullAuthorization,
)
from chirpstream.models import FilterQuery
from chirpstream.stream import (
    ConnectionLifecycleListener,
    RawStreamListener,
    StatusAdapter,
    StatusListener,
    StreamClient,
)

__all__ = [
    "__version__",
    "Authorization",
    "BasicAuthorization",
    "BearerTokenAuthorization",
    "NullAuthorization",
    "FilterQuery",
    "ConnectionLifecycleListener",
    "RawStreamListener",
    "StatusAdapter",
    "StatusListener",
    "StreamClient",
]
