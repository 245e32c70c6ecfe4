"""Exception types raised by api-endpoints.

HTTP 429 is deliberately absent: rate limiting is a ``Response`` state that
drives the retry logic, not an error.
"""

from typing import Any, Dict, Optional


class EndpointsError(Exception):
    """Base class for all errors raised by this package."""

    pass


class ConfigurationError(EndpointsError, ValueError):
    """Raised at construction time for invalid endpoints, requests or batches.

    Examples:
    - both ``url`` and a stored base URL given alongside path parameters
    - an unknown HTTP method
    - an unsupported credential shape
    """

    pass


class TemplateError(ConfigurationError):
    """Raised when a URL template has placeholders without a matching parameter."""

    def __init__(self, message: str, missing=()):
        super().__init__(message)
        self.missing = tuple(missing)


class DiscoveryError(ConfigurationError):
    """Raised when a Discovery descriptor cannot be resolved to a path."""

    pass


class AuthorizationError(EndpointsError):
    """Raised when an attached credential cannot supply a bearer token. Never retried."""

    pass


class TransportError(EndpointsError):
    """Raised when the underlying HTTP call fails.

    Carries the attempted URL and the request options (with the
    Authorization header redacted) for diagnostics.
    """

    def __init__(self, message: str, url: Optional[str] = None, options: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.url = url
        self.options = redact_options(options) if options is not None else None

    def __str__(self):
        base = super().__str__()
        if self.url:
            method = (self.options or {}).get("method", "get")
            return f"{base} ({method.upper()} {self.url})"
        return base


class ResponseParseError(EndpointsError):
    """Raised by ``Response.json`` in strict mode when the body is not JSON."""

    pass


def redact_options(options: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of fetch options without any Authorization header value."""
    redacted = dict(options)
    headers = redacted.get("headers")
    if headers:
        redacted["headers"] = {
            key: ("<redacted>" if key.lower() == "authorization" else value) for key, value in headers.items()
        }
    return redacted
