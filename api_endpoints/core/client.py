from typing import Any, Dict, Optional

from api_endpoints.batching.batch import Batch
from api_endpoints.cache.store import ResponseStore
from api_endpoints.core.config import ConfigurationManager
from api_endpoints.core.discovery import DiscoveryCache
from api_endpoints.core.endpoint import Endpoint
from api_endpoints.core.request import Request
from api_endpoints.core.transport import RequestsTransport
from api_endpoints.throttling.policy import RateLimitPolicy
from api_endpoints.utils.logger import configure_logging, get_logger
from api_endpoints.utils.templates import interpolate


class EndpointsClient:
    """Configured entry point that wires transport, policy, store and discovery.

    Every endpoint, request and batch created through a client shares the
    client's transport and rate-limit policy, so one ``requests.Session`` is
    reused and every rate-limit sleep goes through the same sleeper.

    Example:
        Basic usage:

        >>> client = EndpointsClient({"batch": {"rate_limit": 10}})
        >>> endpoint = client.create_endpoint(base_url="https://example.com/items/${id}")
        >>> batch = client.batch()
        >>> for item_id in range(3):
        ...     batch.add(endpoint.httpget({"id": item_id}))
        >>> responses = batch.fetch_all()

        Using as context manager:

        >>> with EndpointsClient() as client:
        ...     data = client.create_request("get", url="https://example.com/items").resolve()
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        transport: Any = None,
        policy: Optional[RateLimitPolicy] = None,
    ) -> None:
        """Initialize the client from configuration.

        Args:
            config: Configuration dictionary; missing keys take their defaults
            transport: Transport overriding the one built from ``http`` settings
            policy: Rate-limit policy overriding the one built from ``rate_limit``

        Raises:
            ConfigurationError: If configuration is invalid
        """
        self.config_manager = ConfigurationManager(config or {})
        self.config = self.config_manager.config
        configure_logging(self.config.get("logging", {}))
        self.logger = get_logger("core.client")

        http_config = self.config["http"]
        self.transport = transport or RequestsTransport(
            timeout=http_config["timeout"],
            max_workers=http_config["max_workers"],
            user_agent=http_config["user_agent"],
        )
        self.policy = policy or RateLimitPolicy.from_config(self.config["rate_limit"])

        cache_config = self.config["cache"]
        self.store: Optional[ResponseStore] = None
        if cache_config["enabled"]:
            self.store = ResponseStore.from_config(cache_config)
            self.logger.info(f"Response store enabled at {cache_config['database_path']}")

        self.discovery_cache = DiscoveryCache.from_config(
            self.config["discovery"], store=self.store, transport=self.transport
        )

    def _endpoint_defaults(self) -> Dict[str, Any]:
        auth_config = self.config["auth"]
        return {
            "store": self.store,
            "store_ttl": self.config["cache"]["default_ttl_seconds"] if self.store is not None else None,
            "transport": self.transport,
            "policy": self.policy,
            "use_ambient_identity": auth_config["use_ambient_identity"],
            "token_env_var": auth_config["token_env_var"],
        }

    def create_endpoint(self, **kwargs) -> Endpoint:
        """Create an endpoint; explicit keyword arguments win over client defaults."""
        options = self._endpoint_defaults()
        options.update(kwargs)
        return Endpoint(**options)

    def create_request(self, method: str, path_params: Optional[Dict[str, Any]] = None, **options) -> Request:
        """Create a one-off request without keeping an endpoint around."""
        return self.create_endpoint().create_request(method, path_params, **options)

    def discovery(self, name: str, version: str, resource: str, method: str, **kwargs) -> Endpoint:
        options = self._endpoint_defaults()
        options.update(kwargs)
        return Endpoint.discovery(name, version, resource, method, resolver=self.discovery_cache, **options)

    def batch(self, **kwargs) -> Batch:
        batch_config = self.config["batch"]
        options = {
            "rate_limit": batch_config["rate_limit"],
            "max_rounds": batch_config["max_rounds"],
            "pacing_factor": batch_config["pacing_factor"],
            "transport": self.transport,
            "policy": self.policy,
        }
        options.update(kwargs)
        return Batch(**options)

    @staticmethod
    def interpolate(template: str, params: Dict[str, Any]) -> str:
        return interpolate(template, params)

    def close(self) -> None:
        """Release the HTTP session and the store's database connections."""
        if hasattr(self.transport, "close"):
            self.transport.close()
        if self.store is not None:
            self.store.close()

    def __enter__(self) -> "EndpointsClient":
        return self

    def __exit__(self, exc_type: Optional[type], exc_val: Optional[Exception], exc_tb: Optional[Any]) -> None:
        self.close()
