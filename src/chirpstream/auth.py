"""
Authorization Providers
=======================

Authorization objects attach credentials to outgoing streaming requests.

Each provider is a requests.auth.AuthBase, so the transport hands it
straight to requests. The stream client only needs to know whether
credentials are present (is_enabled) before it opens a connection.

Signing schemes (OAuth 1.0a HMAC) are left to callers: any AuthBase
subclass implementing is_enabled() can be passed to StreamClient.
"""

from typing import Optional

from requests.auth import AuthBase, HTTPBasicAuth

from chirpstream.config import AuthConfig


class Authorization(AuthBase):
    """Base class for authorization providers."""

    def is_enabled(self) -> bool:
        raise NotImplementedError

    def __call__(self, request):
        return request


class NullAuthorization(Authorization):
    """No credentials. Streaming verbs refuse to start with this."""

    def is_enabled(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NullAuthorization()"


class BearerTokenAuthorization(Authorization):
    """
    Application-only OAuth2 bearer token.

    Attributes:
        token: Access token issued by the API
    """

    def __init__(self, token: str) -> None:
        self.token = token

    def is_enabled(self) -> bool:
        return bool(self.token)

    def __call__(self, request):
        request.headers["Authorization"] = f"Bearer {self.token}"
        return request

    def __eq__(self, other) -> bool:
        return isinstance(other, BearerTokenAuthorization) and other.token == self.token

    def __repr__(self) -> str:
        # Never leak the token into logs
        return "BearerTokenAuthorization(token=***)"


class BasicAuthorization(Authorization):
    """HTTP basic credentials."""

    def __init__(self, user: str, password: str) -> None:
        self.user = user
        self._basic = HTTPBasicAuth(user, password)

    def is_enabled(self) -> bool:
        return bool(self.user)

    def __call__(self, request):
        return self._basic(request)

    def __repr__(self) -> str:
        return f"BasicAuthorization(user={self.user!r})"


def authorization_from_settings(auth: Optional[AuthConfig]) -> Authorization:
    """
    Pick an authorization provider from configuration.

    A bearer token wins over basic credentials. Returns
    NullAuthorization when nothing is configured.
    """
    if auth is None:
        return NullAuthorization()
    if auth.bearer_token:
        return BearerTokenAuthorization(auth.bearer_token)
    if auth.user and auth.password:
        return BasicAuthorization(auth.user, auth.password)
    return NullAuthorization()
