"""
Endpoint: a factory for ``Request`` objects against one API surface.

An endpoint holds a base URL (optionally with ``${name}`` placeholders), a
credential and sticky headers/query/payload that are merged into every
request it creates.
"""

from typing import Any, Dict, Optional, Tuple

from api_endpoints.batching.batch import Batch
from api_endpoints.core.credentials import AMBIENT_IDENTITY, DEFAULT_TOKEN_ENV_VAR, AmbientCredential, as_credential
from api_endpoints.core.discovery import DiscoveryCache
from api_endpoints.core.exceptions import ConfigurationError
from api_endpoints.core.request import HTTP_METHODS, Request
from api_endpoints.throttling.policy import RateLimitPolicy
from api_endpoints.utils.logger import get_logger
from api_endpoints.utils.templates import interpolate, translate_to_placeholder_syntax


class Endpoint:
    """Builds requests for one base URL.

    Args:
        base_url: URL template, e.g. ``https://sheets.googleapis.com/v4/spreadsheets/${spreadsheetId}``
        credential: A ``CredentialProvider``, a token string, ``"me"`` for the
            ambient identity, or an object with ``has_access`` / ``get_access_token``
        sticky_headers: Headers sent with every request
        sticky_query: Query parameters sent with every request
        sticky_payload: Payload keys sent with every request
        store: Optional response store for GET requests
        store_ttl: TTL in seconds for stored responses
        transport: Transport used by created requests (default: shared transport)
        policy: Rate-limit policy used by created requests
        use_ambient_identity: Attach the ambient-identity credential when no
            ``credential`` is given
        strict_json: Make ``Response.json`` raise on unparseable bodies
        token_env_var: Environment variable read by the ambient credential

    Example:
        >>> endpoint = Endpoint(base_url="https://sheets.googleapis.com/v4/spreadsheets/${spreadsheetId}")
        >>> endpoint.httpget({"spreadsheetId": "id"}).url
        'https://sheets.googleapis.com/v4/spreadsheets/id'
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        credential: Any = None,
        sticky_headers: Optional[Dict[str, str]] = None,
        sticky_query: Optional[Dict[str, Any]] = None,
        sticky_payload: Optional[Dict[str, Any]] = None,
        store: Any = None,
        store_ttl: Optional[int] = None,
        transport: Any = None,
        policy: Optional[RateLimitPolicy] = None,
        use_ambient_identity: bool = False,
        strict_json: bool = False,
        token_env_var: str = DEFAULT_TOKEN_ENV_VAR,
    ) -> None:
        if base_url is not None and (not isinstance(base_url, str) or not base_url):
            raise ConfigurationError("base_url must be a non-empty string")
        self.base_url = base_url
        self.credential = as_credential(credential, env_var=token_env_var)
        if self.credential is None and use_ambient_identity:
            self.credential = AmbientCredential(env_var=token_env_var)
        self.sticky_headers = dict(sticky_headers or {})
        self.sticky_query = dict(sticky_query or {})
        self.sticky_payload = dict(sticky_payload or {})
        self.store = store
        self.store_ttl = store_ttl
        self.transport = transport
        self.policy = policy
        self.strict_json = strict_json
        self.logger = get_logger("core.endpoint")

    @classmethod
    def discovery(
        cls,
        name: str,
        version: str,
        resource: str,
        method: str,
        credential: Any = AMBIENT_IDENTITY,
        resolver: Optional[DiscoveryCache] = None,
        **kwargs,
    ) -> "Endpoint":
        """Build an endpoint whose base URL comes from the Discovery service.

        Example:
            >>> endpoint = Endpoint.discovery("sheets", "v4", "spreadsheets.values", "get")
            >>> endpoint.get_base_url()
            'https://sheets.googleapis.com/v4/spreadsheets/${spreadsheetId}/values/${range}'
        """
        if resolver is None:
            resolver = DiscoveryCache(transport=kwargs.get("transport"))
        raw_url = resolver.get_url(name, version, resource, method)
        return cls(base_url=translate_to_placeholder_syntax(raw_url), credential=credential, **kwargs)

    def get_base_url(self) -> Optional[str]:
        return self.base_url

    def set_store(self, store: Any, ttl_seconds: Optional[int] = None) -> None:
        """Attach a response store used by requests created from now on."""
        self.store = store
        self.store_ttl = ttl_seconds

    def _resolve_url(self, url: Optional[str], path_params: Dict[str, Any]) -> str:
        if path_params:
            if url is not None and self.base_url is not None:
                raise ConfigurationError("createRequest has been passed url when baseUrl has already been defined")
            template = url if url is not None else self.base_url
            if template is None:
                raise ConfigurationError(
                    f"Path parameters {', '.join(path_params)} given but neither url nor base_url is defined"
                )
            return interpolate(template, path_params)
        if url is not None:
            return url
        if self.base_url is not None:
            return self.base_url
        raise ConfigurationError("createRequest requires a url or an endpoint base_url")

    def create_request(
        self,
        method: str,
        path_params: Optional[Dict[str, Any]] = None,
        *,
        url: Optional[str] = None,
        query: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        extra: Any = None,
    ) -> Request:
        """Create a request for ``method``.

        Args:
            method: One of get, post, put, patch, delete
            path_params: Values for the ``${name}`` placeholders; a ``url``
                key here is treated as the ``url`` argument
            url: Explicit URL (or template when path params are given)
            query: Per-call query parameters (win over sticky ones)
            payload: Per-call payload keys (win over sticky ones)
            headers: Per-call headers (win over sticky ones)
            extra: Arbitrary metadata carried to the request and its response

        Raises:
            ConfigurationError: On an unknown method, or when the URL cannot
                be resolved unambiguously
            TemplateError: When path params do not cover every placeholder
        """
        if str(method).lower() not in HTTP_METHODS:
            raise ConfigurationError(f"Unsupported HTTP method {method!r}; expected one of {', '.join(HTTP_METHODS)}")

        params = dict(path_params or {})
        if "url" in params:
            url = params.pop("url")

        final_url = self._resolve_url(url, params)
        return Request(
            final_url,
            method=method,
            headers={**self.sticky_headers, **(headers or {})},
            payload={**self.sticky_payload, **(payload or {})},
            query={**self.sticky_query, **(query or {})},
            credential=self.credential,
            store=self.store,
            store_ttl=self.store_ttl,
            transport=self.transport,
            policy=self.policy,
            strict_json=self.strict_json,
            extra=extra,
            path_params=params,
        )

    def httpget(self, path_params: Optional[Dict[str, Any]] = None, **options) -> Request:
        return self.create_request("get", path_params, **options)

    def httppost(self, path_params: Optional[Dict[str, Any]] = None, **options) -> Request:
        return self.create_request("post", path_params, **options)

    def httpput(self, path_params: Optional[Dict[str, Any]] = None, **options) -> Request:
        return self.create_request("put", path_params, **options)

    def httppatch(self, path_params: Optional[Dict[str, Any]] = None, **options) -> Request:
        return self.create_request("patch", path_params, **options)

    def httpdelete(self, path_params: Optional[Dict[str, Any]] = None, **options) -> Request:
        return self.create_request("delete", path_params, **options)

    def __repr__(self):
        return f"<Endpoint [{self.base_url}]>"


def create_endpoint(**kwargs) -> Endpoint:
    """Shortcut for ``Endpoint(**kwargs)``."""
    return Endpoint(**kwargs)


_BATCH_OPTIONS = ("rate_limit", "last_execution_date", "max_rounds", "pacing_factor")


def batch_requests(**kwargs) -> Tuple[Batch, Endpoint]:
    """Create a ``Batch`` and an ``Endpoint`` that share a transport and policy.

    Batch options (``rate_limit``, ``last_execution_date``, ``max_rounds``,
    ``pacing_factor``) go to the batch; everything else to the endpoint.

    Example:
        >>> batch, endpoint = batch_requests(base_url="https://example.com/items/${id}", rate_limit=10)
        >>> for item_id in range(3):
        ...     batch.add(endpoint.httpget({"id": item_id}))
        >>> responses = batch.fetch_all()
    """
    batch_options = {key: kwargs.pop(key) for key in _BATCH_OPTIONS if key in kwargs}
    endpoint = Endpoint(**kwargs)
    batch = Batch(transport=endpoint.transport, policy=endpoint.policy, **batch_options)
    return batch, endpoint
