"""
DiscoveryCache: resolves Google Discovery descriptors to path templates.

``{name, version, resource, method}`` is looked up in the service's
Discovery document and turned into ``baseUrl + method.path``, e.g.
``https://sheets.googleapis.com/v4/spreadsheets/{spreadsheetId}``. Results
are kept in a store for six hours.
"""

from typing import Any, Dict, Optional

from api_endpoints.cache.store import MemoryStore
from api_endpoints.core.exceptions import DiscoveryError
from api_endpoints.core.request import Request
from api_endpoints.utils.logger import get_logger

DISCOVERY_BASE_URL = "https://www.googleapis.com/discovery/v1/apis"
DISCOVERY_TTL_SECONDS = 21600  # 6 hours

DESCRIPTOR_FIELDS = ("name", "version", "resource", "method")


def validate_discovery(descriptor: Optional[Dict[str, Any]]) -> bool:
    """True when every descriptor field is present and non-empty."""
    if not descriptor:
        return False
    return all(descriptor.get(field) for field in DESCRIPTOR_FIELDS)


class DiscoveryCache:
    """Looks up Discovery documents and caches the resolved path templates.

    Args:
        store: Any object with ``get`` / ``put``; defaults to a ``MemoryStore``
        transport: Transport used to fetch Discovery documents
        base_url: Root of the Discovery service
        ttl_seconds: How long a resolved template is kept
    """

    def __init__(
        self,
        store: Any = None,
        transport: Any = None,
        base_url: str = DISCOVERY_BASE_URL,
        ttl_seconds: int = DISCOVERY_TTL_SECONDS,
    ) -> None:
        self.store = store if store is not None else MemoryStore()
        self.transport = transport
        self.base_url = base_url.rstrip("/")
        self.ttl_seconds = ttl_seconds
        self.logger = get_logger("core.discovery")

    @classmethod
    def from_config(cls, discovery_config: dict, store: Any = None, transport: Any = None) -> "DiscoveryCache":
        config = discovery_config or {}
        return cls(
            store=store,
            transport=transport,
            base_url=config.get("base_url", DISCOVERY_BASE_URL),
            ttl_seconds=config.get("ttl_seconds", DISCOVERY_TTL_SECONDS),
        )

    def get_url(self, name: str, version: str, resource: str, method: str) -> str:
        """Return the raw path template for a Discovery descriptor.

        Raises:
            DiscoveryError: If the service, resource or method is unknown
        """
        descriptor = {"name": name, "version": version, "resource": resource, "method": method}
        if not validate_discovery(descriptor):
            missing = [field for field in DESCRIPTOR_FIELDS if not descriptor[field]]
            raise DiscoveryError(f"Discovery descriptor is missing: {', '.join(missing)}")

        key = f"{name}{version}{resource}{method}"
        cached = self.store.get(key)
        if cached:
            self.logger.debug(f"Discovery cache hit for {key}")
            return cached

        document = self.get_document(name, version)
        if not isinstance(document, dict) or "error" in document:
            raise DiscoveryError(f'No "{name}" with version "{version}" found. Perhaps spelling is wrong?')

        node = document
        for part in resource.split("."):
            resources = node.get("resources") or {}
            if part not in resources:
                raise DiscoveryError(
                    f'No resource "{resource}" found in {name}{version}; only has: {", ".join(resources)}'
                )
            node = resources[part]

        methods = node.get("methods") or {}
        if method not in methods:
            raise DiscoveryError(
                f'No method "{method}" found in resource "{resource}" of "{name}{version}", '
                f'only: {", ".join(methods)} available'
            )

        url = document.get("baseUrl", "") + methods[method]["path"]
        self.store.put(key, url, self.ttl_seconds)
        self.logger.info(f"Resolved {name} {version} {resource}.{method} to {url}")
        return url

    def get_document(self, name: str, version: str) -> Any:
        """Fetch the Discovery document for ``name`` / ``version``."""
        request = Request(f"{self.base_url}/{name}/{version}/rest", transport=self.transport)
        return request.fetch().json
