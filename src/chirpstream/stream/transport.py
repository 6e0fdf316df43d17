"""
HTTP Transport
==============

Opens streaming HTTP requests with requests and hands back a live body.

This module provides:
    - LiveBody: the interface the consumer reads frames from
    - HttpLiveBody: LiveBody over a streamed requests.Response
    - HttpTransport: issues the GET/POST and classifies failures

Failure classification:
    - requests could not connect (DNS, TCP, TLS, timeout) -> NetworkError
    - server answered with a non-200 status -> ProtocolError / PermanentRejection
    - read failed after the caller closed the body -> StreamClosedError
    - read failed otherwise -> NetworkError

Design Rules:
    - Connection: close on every request; streaming connections are never pooled
    - Streaming reads use their own read timeout (longer than keep-alive interval)
    - close() may be called from any thread and unblocks a pending read
"""

import logging
import socket
import threading
from typing import Dict, Iterator, Optional, Protocol

import requests

from chirpstream.config import HttpConfig
from chirpstream.errors import NetworkError, StreamClosedError, error_for_status


logger = logging.getLogger(__name__)


class LiveBody(Protocol):
    """Readable body of an established streaming response."""

    status_code: int

    def iter_lines(self) -> Iterator[str]:
        ...

    def close(self) -> None:
        ...


def _find_socket(response: requests.Response) -> Optional[socket.socket]:
    """Locate the socket under a streamed response, if still attached."""
    fp = getattr(getattr(response.raw, "_fp", None), "fp", None)
    return getattr(getattr(fp, "raw", None), "_sock", None)


class HttpLiveBody:
    """
    LiveBody backed by a streamed requests.Response.

    Closing sets the closed flag first, then shuts the socket down so a
    read blocked in another thread returns immediately. Whatever error
    that read then raises is reported as StreamClosedError.
    """

    def __init__(self, response: requests.Response, chunk_size: int = 512) -> None:
        self._response = response
        self._chunk_size = chunk_size
        self._closed = threading.Event()

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def iter_lines(self) -> Iterator[str]:
        try:
            for line in self._response.iter_lines(
                chunk_size=self._chunk_size,
                decode_unicode=True,
            ):
                if self._closed.is_set():
                    raise StreamClosedError("Stream closed by caller")
                yield line
        except (requests.exceptions.RequestException, OSError, ValueError) as e:
            if self._closed.is_set():
                raise StreamClosedError("Stream closed by caller") from e
            raise NetworkError(f"Stream read failed: {e}") from e
        except AttributeError as e:
            # urllib3 drops its file object on close
            if self._closed.is_set():
                raise StreamClosedError("Stream closed by caller") from e
            raise

        if self._closed.is_set():
            raise StreamClosedError("Stream closed by caller")

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()

        sock = _find_socket(self._response)
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError as e:
                logger.debug(f"Socket shutdown failed: {e}")
        self._response.close()


class HttpTransport:
    """
    Opens streaming connections.

    Attributes:
        config: HTTP timeouts and headers

    Example:
        transport = HttpTransport(settings.http)
        body = transport.open(
            "GET",
            "https://stream.twitter.com/1.1/statuses/sample.json",
            {"stall_warnings": "true"},
            BearerTokenAuthorization(token),
        )
        for line in body.iter_lines():
            ...
    """

    def __init__(
        self,
        config: Optional[HttpConfig] = None,
        chunk_size: int = 512,
        session: Optional[requests.Session] = None,
    ) -> None:
        """
        Initialize transport.

        Args:
            config: HTTP settings (defaults used when None)
            chunk_size: Bytes per socket read while streaming
            session: Preconfigured requests.Session (mainly for tests)
        """
        self.config = config or HttpConfig()
        self._chunk_size = chunk_size
        self._session = session or requests.Session()
        self._session.headers.update({
            "Connection": "close",
            "User-Agent": self.config.user_agent,
            "Accept-Encoding": "gzip" if self.config.gzip_enabled else "identity",
        })

    def open(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, str]] = None,
        authorization=None,
        read_timeout: Optional[float] = None,
    ) -> HttpLiveBody:
        """
        Issue a streaming request.

        Args:
            method: "GET" or "POST" (POST sends params as a form body)
            url: Absolute endpoint URL
            params: Query or form parameters
            authorization: requests auth object
            read_timeout: Seconds to wait for each read; defaults to the
                streaming read timeout

        Returns:
            Live body of the 200 response

        Raises:
            NetworkError: connection could not be established
            ProtocolError: non-200 response (PermanentRejection for 403/406)
        """
        if read_timeout is None:
            read_timeout = self.config.streaming_read_timeout_ms / 1000.0
        timeout = (self.config.connection_timeout_ms / 1000.0, read_timeout)

        request_args = {"params": params} if method == "GET" else {"data": params}
        logger.debug(f"{method} {url} params={params}")

        try:
            response = self._session.request(
                method,
                url,
                auth=authorization,
                stream=True,
                timeout=timeout,
                **request_args,
            )
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"{method} {url} failed: {e}") from e

        if response.status_code != 200:
            try:
                body = response.text
            except requests.exceptions.RequestException:
                body = ""
            finally:
                response.close()
            raise error_for_status(response.status_code, body)

        return HttpLiveBody(response, self._chunk_size)

    def close(self) -> None:
        """Release pooled resources held by the session."""
        self._session.close()
