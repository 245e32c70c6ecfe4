"""HTTP transport: the synchronous fetch primitive and its multi-fetch variant.

Requests and batches never talk to ``requests`` directly; they hand a URL and
an options dict to a transport and get back an object with
``get_content_text()``, ``get_all_headers()`` and ``get_response_code()``.
Tests substitute their own transport with the same two methods.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Mapping, Optional

import requests
from requests.structures import CaseInsensitiveDict

from api_endpoints.core.exceptions import TransportError
from api_endpoints.utils.logger import get_logger

logger = get_logger("core.transport")

STORED_CONTENT_TYPE = "text/html; charset=utf-8"


class HttpResponse:
    """Host response backed by a ``requests.Response``."""

    def __init__(self, response: requests.Response):
        self._response = response

    def get_content_text(self) -> str:
        return self._response.text

    def get_all_headers(self) -> Mapping[str, str]:
        return self._response.headers

    def get_response_code(self) -> int:
        return self._response.status_code


class StoredHostResponse:
    """Host response rebuilt from a body found in a response store.

    Only successful bodies are ever stored, so the status is always 200. The
    content type is a placeholder used when the body fails to parse as JSON.
    """

    def __init__(self, text: str):
        self._text = text

    def get_content_text(self) -> str:
        return self._text

    def get_all_headers(self) -> Mapping[str, str]:
        return CaseInsensitiveDict({"Content-Type": STORED_CONTENT_TYPE})

    def get_response_code(self) -> int:
        return 200


class RequestsTransport:
    """Transport built on a shared ``requests.Session``.

    ``fetch_all`` dispatches on a thread pool; results come back in the same
    order as the options that were passed in.
    """

    def __init__(
        self,
        timeout: float = 60,
        max_workers: int = 8,
        user_agent: str = "api-endpoints/0.3.0",
        session: Optional[requests.Session] = None,
    ) -> None:
        self.timeout = timeout
        self.max_workers = max_workers
        self.user_agent = user_agent
        self.session = session or requests.Session()

    def fetch(self, url: str, options: Dict[str, Any]) -> HttpResponse:
        """Perform one HTTP call.

        Args:
            url: Fully resolved URL, query string included
            options: ``method``, optional ``headers``, ``payload`` and
                ``contentType``, and ``muteHttpExceptions``

        Raises:
            TransportError: On connection failures, timeouts, or (when
                ``muteHttpExceptions`` is false) any status >= 400
        """
        method = str(options.get("method", "get")).upper()
        headers = dict(options.get("headers") or {})
        if options.get("contentType"):
            headers.setdefault("Content-Type", options["contentType"])
        headers.setdefault("User-Agent", self.user_agent)
        payload = options.get("payload")
        if isinstance(payload, str):
            payload = payload.encode("utf-8")

        logger.debug(f"Making {method} request to {url} with timeout={self.timeout}")
        try:
            response = self.session.request(method, url, headers=headers, data=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Failed to reach {url}: {e}")
            raise TransportError(f"Request failed: {e}", url=url, options=options) from e

        logger.debug(f"Received response from {url}: {response.status_code}")
        if not options.get("muteHttpExceptions", True) and response.status_code >= 400:
            raise TransportError(f"HTTP error {response.status_code} {response.reason}", url=url, options=options)
        return HttpResponse(response)

    def fetch_all(self, requests_options: List[Dict[str, Any]]) -> List[HttpResponse]:
        """Perform several HTTP calls concurrently.

        Each options dict must carry its own ``url`` key.
        """
        if not requests_options:
            return []
        workers = max(1, min(self.max_workers, len(requests_options)))
        logger.debug(f"Dispatching {len(requests_options)} requests on {workers} workers")
        with ThreadPoolExecutor(max_workers=workers) as executor:
            return list(executor.map(lambda options: self.fetch(options["url"], options), requests_options))

    def close(self) -> None:
        self.session.close()


_default_transport: Optional[RequestsTransport] = None


def get_default_transport() -> RequestsTransport:
    """Return the shared transport, creating it on first use."""
    global _default_transport
    if _default_transport is None:
        _default_transport = RequestsTransport()
    return _default_transport


def set_default_transport(transport) -> None:
    """Replace the shared transport (``None`` resets to a fresh one on next use)."""
    global _default_transport
    _default_transport = transport
