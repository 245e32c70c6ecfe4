"""api-endpoints - Ergonomic, rate-limit-aware requests against REST APIs.

Build parameterized requests against REST and Discovery-described APIs
(primarily Google APIs) without hand-managing URL templating, query strings,
OAuth bearer headers or HTTP 429 backoff.
"""

from api_endpoints.batching.batch import Batch
from api_endpoints.cache.store import MemoryStore, ResponseStore
from api_endpoints.core.client import EndpointsClient
from api_endpoints.core.credentials import AmbientCredential, CredentialProvider, StaticTokenCredential
from api_endpoints.core.discovery import DiscoveryCache
from api_endpoints.core.endpoint import Endpoint, batch_requests, create_endpoint
from api_endpoints.core.exceptions import (
    AuthorizationError,
    ConfigurationError,
    DiscoveryError,
    EndpointsError,
    ResponseParseError,
    TemplateError,
    TransportError,
)
from api_endpoints.core.request import Request
from api_endpoints.core.response import Response
from api_endpoints.throttling.policy import RateLimitDecision, RateLimitPolicy
from api_endpoints.utils.templates import interpolate, make_query_string, translate_to_placeholder_syntax

__version__ = "0.3.0"

__all__ = [
    "AmbientCredential",
    "AuthorizationError",
    "Batch",
    "ConfigurationError",
    "CredentialProvider",
    "DiscoveryCache",
    "DiscoveryError",
    "Endpoint",
    "EndpointsClient",
    "EndpointsError",
    "MemoryStore",
    "RateLimitDecision",
    "RateLimitPolicy",
    "Request",
    "Response",
    "ResponseParseError",
    "ResponseStore",
    "StaticTokenCredential",
    "TemplateError",
    "TransportError",
    "batch_requests",
    "create_endpoint",
    "interpolate",
    "make_query_string",
    "translate_to_placeholder_syntax",
]
