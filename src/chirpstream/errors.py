"""
Error Hierarchy
===============

All chirpstream errors inherit from ChirpStreamError for easy catching.

Classification used by the stream consumer:
    - ConfigurationError: no listener registered (fatal, never retried)
    - AuthorizationError: missing credentials (fatal)
    - NetworkError: connection never reached the HTTP layer (network backoff)
    - ProtocolError: non-200 response or malformed frame (protocol backoff)
    - PermanentRejection: 403/406, the account lacks the required role (terminal)
    - StreamClosedError: the body was closed by the caller, not a failure
"""

from typing import Optional


class ChirpStreamError(Exception):
    """Base error for all chirpstream operations."""


class ConfigurationError(ChirpStreamError):
    """Client is not set up to stream (e.g. no listener registered)."""


class AuthorizationError(ChirpStreamError):
    """Credentials are missing or were not accepted."""


class NetworkError(ChirpStreamError):
    """Transport-level failure: DNS, TCP, TLS, read timeout, server hang-up."""


class ProtocolError(ChirpStreamError):
    """
    Application-level failure.

    Raised for non-200 HTTP responses (status_code is set) and for
    frames that are not valid JSON objects (fragment is set).
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        fragment: Optional[str] = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.fragment = fragment
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message with status and fragment if available."""
        message = self.message
        if self.status_code is not None:
            message = f"{message} (status: {self.status_code})"
        if self.fragment is not None:
            message = f"{message} (payload: {self.fragment!r})"
        return message


class PermanentRejection(ProtocolError):
    """403/406 from the streaming endpoint. Never retried."""


class StreamClosedError(ChirpStreamError):
    """The live body was closed by the caller while a read was blocked."""


def error_for_status(status_code: int, body: str = "") -> ProtocolError:
    """
    Build the error for a non-200 streaming response.

    Args:
        status_code: HTTP status returned by the endpoint
        body: Response body (truncated for the message)

    Returns:
        PermanentRejection for 403/406, ProtocolError otherwise
    """
    fragment = body[:64] if body else None
    if status_code == 403:
        return PermanentRejection(
            "This account is not in the required role", status_code, fragment
        )
    if status_code == 406:
        return PermanentRejection(
            "Parameter not accepted with the role", status_code, fragment
        )
    return ProtocolError("Streaming endpoint rejected the request", status_code, fragment)
