"""
RateLimitPolicy: HTTP 429 detection and reset-header based backoff.
"""

import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

from api_endpoints.utils.logger import get_logger

RATE_LIMITED_STATUS = 429
RESET_HEADER = "x-ratelimit-reset"

# Numeric reset values below this are seconds-from-now, above it epoch seconds
_EPOCH_THRESHOLD = 1_000_000_000

# One hour
DEFAULT_MAX_WAIT_MS = 3_600_000

_RESET_FORMATS = (
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
)


@dataclass(frozen=True)
class RateLimitDecision:
    """Whether a response hit the rate limit, and how long to wait before retrying."""

    hit_rate_limit: bool
    wait_milliseconds: float = 0


def find_header(headers: Optional[Mapping[str, Any]], name: str) -> Optional[Any]:
    """Case-insensitive header lookup that works on plain dicts too."""
    if not headers:
        return None
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def parse_reset_header(value: Any, now: float) -> Optional[float]:
    """Convert an ``x-ratelimit-reset`` value to epoch seconds.

    Accepts timestamps like ``2020-05-04 10:00:00 UTC`` (``" UTC"`` becomes
    ``+0000`` and the date/time space becomes ``T``), ISO-8601 strings, and
    numbers. Returns ``None`` when the value cannot be understood or is not
    a finite point in time (``nan``, ``inf``, out-of-range dates).
    """
    text = str(value).strip()
    if not text:
        return None

    try:
        number = float(text)
    except ValueError:
        number = None
    if number is not None:
        if not math.isfinite(number):
            return None
        return number if number >= _EPOCH_THRESHOLD else now + number

    normalized = text.replace(" UTC", "+0000").replace(" ", "T", 1)
    parsed = None
    for fmt in _RESET_FORMATS:
        try:
            parsed = datetime.strptime(normalized, fmt)
            break
        except ValueError:
            continue
    if parsed is None:
        try:
            parsed = datetime.fromisoformat(normalized)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.timestamp()
    except (OverflowError, ValueError):
        return None


class RateLimitPolicy:
    """Decides whether a response was throttled and how long to back off.

    A detected 429 always produces a strictly positive wait: the reset time
    minus now plus ``epsilon_ms``, floored at ``epsilon_ms`` and capped at
    ``max_wait_ms``. Without a usable reset header the wait is
    ``fallback_wait_ms``.
    """

    def __init__(
        self,
        fallback_wait_ms: float = 10000,
        epsilon_ms: float = 1,
        max_wait_ms: float = DEFAULT_MAX_WAIT_MS,
        clock: Callable[[], float] = time.time,
        sleeper: Callable[[float], None] = time.sleep,
    ):
        self.fallback_wait_ms = fallback_wait_ms
        self.epsilon_ms = epsilon_ms
        self.max_wait_ms = max_wait_ms
        self.clock = clock
        self.sleeper = sleeper
        self.logger = get_logger("throttling.policy")

    @classmethod
    def from_config(cls, rate_limit_config: dict, **kwargs) -> "RateLimitPolicy":
        """Build a policy from the ``rate_limit`` configuration section."""
        config = rate_limit_config or {}
        return cls(
            fallback_wait_ms=config.get("fallback_wait_ms", 10000),
            epsilon_ms=config.get("epsilon_ms", 1),
            max_wait_ms=config.get("max_wait_ms", DEFAULT_MAX_WAIT_MS),
            **kwargs,
        )

    def check_rate_limit(self, response) -> RateLimitDecision:
        """Inspect a response (anything with ``status_code`` and ``headers``)."""
        if response.status_code != RATE_LIMITED_STATUS:
            return RateLimitDecision(hit_rate_limit=False, wait_milliseconds=0)
        return RateLimitDecision(hit_rate_limit=True, wait_milliseconds=self.reset_wait_ms(response.headers))

    def reset_wait_ms(self, headers: Optional[Mapping[str, Any]]) -> float:
        """Milliseconds until the throttled resource is available again."""
        raw_value = find_header(headers, RESET_HEADER)
        if raw_value is None:
            return self.fallback_wait_ms

        now = self.clock()
        reset_at = parse_reset_header(raw_value, now)
        if reset_at is None:
            self.logger.warning(f"Unrecognized {RESET_HEADER} header {raw_value!r}, waiting {self.fallback_wait_ms}ms")
            return self.fallback_wait_ms

        milliseconds = (reset_at - now) * 1000 + self.epsilon_ms
        if milliseconds > self.max_wait_ms:
            self.logger.warning(
                f"{RESET_HEADER} header {raw_value!r} is {milliseconds:.0f}ms away, capping at {self.max_wait_ms}ms"
            )
            return self.max_wait_ms
        return max(milliseconds, self.epsilon_ms)

    def wait(self, milliseconds: float) -> None:
        """Block for ``milliseconds`` (no-op for non-positive or non-finite values)."""
        if not math.isfinite(milliseconds) or milliseconds <= 0:
            return
        self.logger.debug(f"Sleeping for {milliseconds / 1000:.3f} seconds")
        self.sleeper(milliseconds / 1000)
