"""A single pending HTTP call."""

import json
from typing import Any, Dict, List, Optional, Tuple

from api_endpoints.cache.store import compute_request_hash
from api_endpoints.core.credentials import CredentialProvider
from api_endpoints.core.exceptions import ConfigurationError, EndpointsError, TransportError
from api_endpoints.core.response import Response
from api_endpoints.core.transport import StoredHostResponse, get_default_transport
from api_endpoints.throttling.policy import RateLimitPolicy
from api_endpoints.utils.logger import get_logger
from api_endpoints.utils.templates import make_query_string

HTTP_METHODS = ("get", "post", "put", "patch", "delete")


class Request:
    """A request built by an ``Endpoint``, ready to be fetched or batched.

    The final URL and headers are computed on every ``fetch`` (or
    ``get_params``) call, so ``add_query`` / ``add_header`` / ``set_fields``
    affect the next dispatch. The bearer token is resolved at that point too
    and is never written back into ``headers``.

    Example:
        >>> request = endpoint.httpget({"spreadsheetId": "abc"})
        >>> request.add_query({"includeGridData": True})
        >>> request.set_fields("sheets.properties")
        >>> response = request.fetch()
    """

    def __init__(
        self,
        url: str,
        method: str = "get",
        headers: Optional[Dict[str, str]] = None,
        payload: Optional[Dict[str, Any]] = None,
        query: Optional[Dict[str, Any]] = None,
        credential: Optional[CredentialProvider] = None,
        store: Any = None,
        store_ttl: Optional[int] = None,
        transport: Any = None,
        policy: Optional[RateLimitPolicy] = None,
        strict_json: bool = False,
        extra: Any = None,
        path_params: Optional[Dict[str, Any]] = None,
    ) -> None:
        if not isinstance(url, str) or not url:
            raise ConfigurationError("Request requires a non-empty url string")
        method = str(method).lower()
        if method not in HTTP_METHODS:
            raise ConfigurationError(f"Unsupported HTTP method {method!r}; expected one of {', '.join(HTTP_METHODS)}")
        self.url_base = url
        self.method = method
        self.headers: Dict[str, str] = dict(headers or {})
        self.payload: Dict[str, Any] = dict(payload or {})
        self.query: Dict[str, Any] = dict(query or {})
        self.credential = credential
        self.store = store
        self.store_ttl = store_ttl
        self._transport = transport
        self.policy = policy or RateLimitPolicy()
        self.strict_json = strict_json
        self.extra = extra
        self.path_params: Dict[str, Any] = dict(path_params or {})
        self._fields: List[str] = []
        self.logger = get_logger("core.request")

    @property
    def transport(self):
        return self._transport or get_default_transport()

    def set_store(self, store: Any, ttl_seconds: Optional[int] = None) -> None:
        """Attach a response store (any object with ``get`` and ``put``)."""
        self.store = store
        self.store_ttl = ttl_seconds

    @property
    def url(self) -> str:
        """Base URL plus query string; non-empty fields are folded in as ``fields=a,b``."""
        query = dict(self.query)
        if self._fields:
            query["fields"] = ",".join(self._fields)
        return self.url_base + make_query_string(query)

    def get_url(self) -> str:
        return self.url

    @property
    def fields(self) -> Tuple[str, ...]:
        return tuple(self._fields)

    def set_fields(self, value: str) -> None:
        """Append to the ``fields`` partial-response selector. Earlier values are kept."""
        if not isinstance(value, str) or not value:
            raise ConfigurationError("fields value must be a non-empty string")
        self._fields.append(value)

    def clear_fields(self) -> None:
        self._fields = []

    def add_query(self, params: Dict[str, Any]) -> None:
        """Merge ``params`` into the query parameters sent on the next fetch."""
        for key, value in params.items():
            self.query[key] = value

    def add_header(self, headers: Dict[str, str]) -> None:
        for key, value in headers.items():
            self.headers[key] = value

    def clear_query(self) -> None:
        self.query = {}

    def get_params(self, embed_url: bool = False, mute_exceptions: bool = True) -> Tuple[str, Dict[str, Any]]:
        """Compute the URL and transport options for this request.

        Args:
            embed_url: Include ``url`` in the options (needed for multi-fetch)
            mute_exceptions: When true, HTTP error statuses come back as
                responses instead of raising

        Returns:
            ``(url, options)``

        Raises:
            AuthorizationError: If a credential is attached but has no token
        """
        url = self.url
        headers = dict(self.headers)
        if self.credential is not None:
            headers["Authorization"] = f"Bearer {self.credential.resolve_token()}"

        params: Dict[str, Any] = {}
        if headers:
            params["headers"] = headers
        params["muteHttpExceptions"] = mute_exceptions
        params["method"] = self.method
        if embed_url:
            params["url"] = url
        if self.payload:
            params["payload"] = json.dumps(self.payload)
            params["contentType"] = "application/json"
        return url, params

    def fetch(self, retry_on_rate_limit: bool = True) -> Response:
        """Send the request and wrap the result.

        On HTTP 429 the request sleeps for the signaled reset time and tries
        exactly once more, returning whatever that second attempt produces.

        Args:
            retry_on_rate_limit: Set to False for a single attempt

        Raises:
            AuthorizationError: If the credential has no token (not retried)
            TransportError: If the HTTP call itself fails
        """
        url, params = self.get_params(embed_url=True)
        self.logger.debug(f"Fetching {self.method.upper()} {url}")
        response = self._build_response(self._send(url, params))

        if retry_on_rate_limit and response.hit_rate_limit():
            self.logger.info(f"Hit rate limit on {url}, trying again")
            response = self._build_response(self._send(url, params))
        return response

    def resolve(self) -> Any:
        """Shortcut for ``fetch().json``."""
        return self.fetch().json

    def _build_response(self, raw: Any) -> Response:
        return Response(raw, request=self, strict_json=self.strict_json, policy=self.policy)

    def _send(self, url: str, params: Dict[str, Any]) -> Any:
        cache_key = None
        if self.store is not None and self.method == "get":
            cache_key = compute_request_hash(url, params)
            data = self.store.get(cache_key)
            if data is not None:
                self.logger.debug(f"Store hit for {url}")
                return StoredHostResponse(data)

        try:
            raw = self.transport.fetch(url, params)
        except EndpointsError:
            raise
        except Exception as e:
            self.logger.error(f"Failed to fetch {url}: {e}")
            raise TransportError(f"Request failed: {e}", url=url, options=params) from e

        if cache_key is not None and raw.get_response_code() == 200:
            self.store.put(cache_key, raw.get_content_text(), self.store_ttl)
        return raw

    def __repr__(self):
        return f"<Request [{self.method.upper()} {self.url}]>"
