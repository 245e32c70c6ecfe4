"""Response wrapper around a host response."""

import json
from typing import Any, Dict, Mapping, Optional, Tuple

from api_endpoints.core.exceptions import ResponseParseError
from api_endpoints.throttling.policy import RateLimitDecision, RateLimitPolicy, find_header
from api_endpoints.utils.logger import get_logger

_default_policy = RateLimitPolicy()


def split_content_type(content_type: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """``"text/html; charset=utf-8"`` -> ``("text/html", "utf-8")``."""
    if not content_type:
        return None, None
    parts = [part.strip() for part in content_type.split(";")]
    mime = parts[0] or None
    charset = None
    for part in parts[1:]:
        if part.lower().startswith("charset="):
            charset = part.split("=", 1)[1].strip().strip('"') or None
            break
    return mime, charset


class Response:
    """One completed HTTP exchange.

    Holds the raw host response and a back-reference to the ``Request`` that
    produced it. Any ``extra`` metadata attached to the request at creation
    is carried over unchanged.

    By default ``json`` never raises: an unparseable body yields an error
    envelope shaped like a Google API error, so callers can treat every
    response as JSON. Set ``strict_json`` to raise instead.

    Example:
        >>> response = request.fetch()
        >>> if response.ok:
        ...     print(response.json["items"])
        ... else:
        ...     print(response.json["error"]["message"])
    """

    def __init__(
        self,
        raw: Any,
        request: Any = None,
        strict_json: bool = False,
        extra: Any = None,
        policy: Optional[RateLimitPolicy] = None,
    ):
        self.raw = raw
        self.request = request
        self.strict_json = strict_json
        if extra is None and request is not None:
            extra = getattr(request, "extra", None)
        self.extra = extra
        self.policy = policy or getattr(request, "policy", None) or _default_policy
        self.logger = get_logger("core.response")

    @property
    def text(self) -> str:
        return self.raw.get_content_text()

    @property
    def headers(self) -> Mapping[str, str]:
        return self.raw.get_all_headers()

    @property
    def status_code(self) -> int:
        return self.raw.get_response_code()

    @property
    def ok(self) -> bool:
        """True only for status 200."""
        return self.status_code == 200

    @property
    def json(self) -> Any:
        """The parsed body, or an error envelope if the body is not JSON.

        Raises:
            ResponseParseError: Only when ``strict_json`` is set
        """
        text = self.text
        try:
            return json.loads(text)
        except (TypeError, ValueError) as e:
            if self.strict_json:
                raise ResponseParseError(f"Response body is not valid JSON: {e}") from e
            mime, charset = split_content_type(find_header(self.headers, "Content-Type"))
            return {
                "error": {
                    "status": self.status_code,
                    "message": str(e),
                    "charset": charset,
                    "mime": mime,
                },
                "text": text,
            }

    @property
    def check_rate_limit(self) -> RateLimitDecision:
        return self.policy.check_rate_limit(self)

    def hit_rate_limit(self) -> bool:
        """False unless status is 429; on 429, sleep the signaled wait and return True."""
        decision = self.check_rate_limit
        if not decision.hit_rate_limit:
            return False
        self.logger.warning(
            f"429 rate limit encountered in fetch, sleeping for {decision.wait_milliseconds / 1000:.3f} seconds"
        )
        self.policy.wait(decision.wait_milliseconds)
        return True

    def get_request_params(self) -> Dict[str, Any]:
        """The options that were (or would be) handed to the transport for this request."""
        _, params = self.request.get_params()
        return params

    def __repr__(self):
        return f"<Response [{self.status_code}]>"
