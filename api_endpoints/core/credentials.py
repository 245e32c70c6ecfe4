"""Credential providers that supply OAuth bearer tokens.

Tokens are resolved when a request is sent, not when it is built, so a
long-lived endpoint never holds a stale token.
"""

import os
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from api_endpoints.core.exceptions import AuthorizationError, ConfigurationError

AMBIENT_IDENTITY = "me"
DEFAULT_TOKEN_ENV_VAR = "API_ENDPOINTS_ACCESS_TOKEN"


class CredentialProvider(ABC):
    """Supplies a bearer token on demand."""

    @abstractmethod
    def resolve_token(self) -> str:
        """Return a token, or raise ``AuthorizationError`` if none is available."""


class StaticTokenCredential(CredentialProvider):
    """A fixed token, e.g. one obtained out of band."""

    def __init__(self, token: str):
        self.token = token

    def resolve_token(self) -> str:
        if not self.token:
            raise AuthorizationError("No authorization")
        return self.token

    def __repr__(self):
        return "StaticTokenCredential(token=<redacted>)"


class AmbientCredential(CredentialProvider):
    """The identity of the running process.

    By default the token is read from an environment variable on every
    resolve. Pass ``token_source`` to plug in any other source (a metadata
    server, a CLI helper, a test double).
    """

    def __init__(
        self, token_source: Optional[Callable[[], Optional[str]]] = None, env_var: str = DEFAULT_TOKEN_ENV_VAR
    ):
        self.env_var = env_var
        self.token_source = token_source or (lambda: os.environ.get(self.env_var))

    def resolve_token(self) -> str:
        token = self.token_source()
        if not token:
            raise AuthorizationError(f"No authorization: ambient identity has no token (checked ${self.env_var})")
        return token


class OAuthServiceCredential(CredentialProvider):
    """Adapter for OAuth service objects with ``has_access()`` / ``get_access_token()``."""

    def __init__(self, service: Any):
        self.service = service

    def resolve_token(self) -> str:
        if not self.service.has_access():
            raise AuthorizationError("No authorization: OAuth service reports no access")
        token = self.service.get_access_token()
        if not token:
            raise AuthorizationError("No authorization: OAuth service returned an empty token")
        return token


def as_credential(value: Any, env_var: str = DEFAULT_TOKEN_ENV_VAR) -> Optional[CredentialProvider]:
    """Coerce the accepted credential shapes into a ``CredentialProvider``.

    Accepted: ``None``, ``"me"`` (ambient identity), any other string (a
    static token), a ``CredentialProvider``, an object with ``has_access`` and
    ``get_access_token``, or an object with a ``token`` attribute (read on
    every resolve).

    Raises:
        ConfigurationError: For any other shape
    """
    if value is None or isinstance(value, CredentialProvider):
        return value
    if isinstance(value, str):
        if value == AMBIENT_IDENTITY:
            return AmbientCredential(env_var=env_var)
        return StaticTokenCredential(value)
    if callable(getattr(value, "has_access", None)) and callable(getattr(value, "get_access_token", None)):
        return OAuthServiceCredential(value)
    if hasattr(value, "token"):
        return AmbientCredential(token_source=lambda: getattr(value, "token", None))
    raise ConfigurationError(f"Unsupported credential of type {type(value).__name__}")
