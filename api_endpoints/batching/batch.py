"""
Batch: dispatches many requests through the transport's multi-fetch.

Two ways to drain a batch:

* ``fetch_all()`` sends everything at once and, when some responses come
  back 429, sleeps for the longest signaled wait and resends only the tail
  starting at the first throttled request.
* Iterating the batch sends it in chunks of ``rate_limit`` requests, keeps
  successive chunks at least a second apart, and yields responses one at a
  time, re-fetching any throttled request on its own after its wait.

Both return responses in the order the requests were added.
"""

from typing import Any, Iterator, List, Optional

from api_endpoints.core.exceptions import ConfigurationError, EndpointsError, TransportError
from api_endpoints.core.request import Request
from api_endpoints.core.response import Response
from api_endpoints.core.transport import get_default_transport
from api_endpoints.throttling.policy import RateLimitPolicy
from api_endpoints.utils.logger import get_logger

ONE_SECOND_MS = 1000


class Batch:
    """An ordered queue of requests dispatched together.

    ``fetch_all`` assumes every queued request shares one rate-limit domain:
    a 429 anywhere causes everything after the first throttled request to be
    resent, including requests that had already succeeded.

    Args:
        rate_limit: Requests-per-second ceiling used to size iteration chunks
        last_execution_date: Epoch seconds of the previous dispatch, used to
            pace the first chunk
        transport: Transport providing ``fetch_all`` (default: shared transport)
        policy: Rate-limit policy; also supplies the clock and sleeper
        max_rounds: Upper bound on ``fetch_all`` dispatch rounds (None for no bound)
        pacing_factor: Multiplier applied to the inter-chunk sleep

    Example:
        >>> batch = Batch(rate_limit=10)
        >>> for request in requests_to_send:
        ...     batch.add(request)
        >>> for response in batch:
        ...     print(response.status_code)
    """

    def __init__(
        self,
        rate_limit: int = 50,
        last_execution_date: Optional[float] = None,
        transport: Any = None,
        policy: Optional[RateLimitPolicy] = None,
        max_rounds: Optional[int] = 10,
        pacing_factor: float = 1.01,
    ) -> None:
        if isinstance(rate_limit, bool) or not isinstance(rate_limit, int) or rate_limit <= 0:
            raise ConfigurationError(f"Batch rate_limit must be a positive integer, got {rate_limit!r}")
        if max_rounds is not None and (
            isinstance(max_rounds, bool) or not isinstance(max_rounds, int) or max_rounds <= 0
        ):
            raise ConfigurationError(f"Batch max_rounds must be a positive integer or None, got {max_rounds!r}")
        self.rate_limit = rate_limit
        self.max_rounds = max_rounds
        self.pacing_factor = pacing_factor
        self._transport = transport
        self.policy = policy or RateLimitPolicy()
        self.logger = get_logger("batching.batch")
        self.reset(last_execution_date)

    @property
    def transport(self):
        return self._transport or get_default_transport()

    def reset(self, last_execution_date: Optional[float] = None) -> None:
        """Empty the queue and the ``after`` list."""
        self.queue: List[Request] = []
        self._after: List[Response] = []
        self._timing = {"last_execution_date": last_execution_date}

    def add(self, request: Request) -> None:
        if not isinstance(request, Request):
            raise ConfigurationError(f"Batch.add expects a Request, got {type(request).__name__}")
        self.queue.append(request)

    def after(self, response: Response) -> None:
        """Queue a ready-made response to be returned after all fetched ones."""
        self._after.append(response)

    def __len__(self):
        return len(self.queue)

    @property
    def last_execution_date(self) -> Optional[float]:
        return self._timing["last_execution_date"]

    def _dispatch(self, requests: List[Request]) -> List[Any]:
        options = [request.get_params(embed_url=True)[1] for request in requests]
        self.logger.debug(f"Dispatching {len(options)} requests")
        try:
            raws = list(self.transport.fetch_all(options))
        except EndpointsError:
            raise
        except Exception as e:
            self.logger.error(f"Multi-fetch of {len(options)} requests failed: {e}")
            raise TransportError(f"Batch request failed: {e}") from e
        if len(raws) != len(options):
            self.logger.error(f"Multi-fetch returned {len(raws)} responses for {len(options)} requests")
            raise TransportError(f"Batch request failed: expected {len(options)} responses, got {len(raws)}")
        return raws

    def _refetch(self, request: Request) -> Response:
        url, params = request.get_params(embed_url=True)
        try:
            raw = self.transport.fetch(url, params)
        except EndpointsError:
            raise
        except Exception as e:
            self.logger.error(f"Failed to re-fetch {url}: {e}")
            raise TransportError(f"Request failed: {e}", url=url, options=params) from e
        return self._wrap(raw, request)

    def _wrap(self, raw: Any, request: Request) -> Response:
        return Response(raw, request=request, strict_json=request.strict_json, policy=self.policy)

    def fetch_all(self) -> List[Response]:
        """Send every queued request and return the responses in order.

        When a round produces 429s, the successful prefix before the first
        throttled request is kept, the longest signaled wait is slept, and the
        remaining tail is sent again. Once ``max_rounds`` is reached the
        throttled responses are returned as they are.
        """
        results: List[Response] = []
        start = 0
        rounds = 0

        while start < len(self.queue):
            pending = self.queue[start:]
            rounds += 1
            responses = [self._wrap(raw, request) for raw, request in zip(self._dispatch(pending), pending)]

            max_wait = 0
            first_failed = None
            for offset, response in enumerate(responses):
                decision = response.check_rate_limit
                if decision.hit_rate_limit:
                    max_wait = max(max_wait, decision.wait_milliseconds)
                    if first_failed is None:
                        first_failed = offset

            if first_failed is None:
                results.extend(responses)
                break
            if self.max_rounds is not None and rounds >= self.max_rounds:
                pending = len(responses) - first_failed
                self.logger.warning(f"Giving up after {rounds} rounds with {pending} requests pending")
                results.extend(responses)
                break

            results.extend(responses[:first_failed])
            self.logger.warning(
                f"Hit rate limit in batch at request {start + first_failed}, "
                f"sleeping for {max_wait / 1000:.3f} seconds"
            )
            self.policy.wait(max_wait)
            start += first_failed

        results.extend(self._after)
        self.reset(self._timing["last_execution_date"])
        return results

    def __iter__(self) -> Iterator[Response]:
        """Yield responses one at a time, chunk by chunk.

        All waits in a chunk are measured from the moment the chunk came
        back, so a later throttled request only sleeps for the part of its
        wait not already covered by earlier sleeps. Throttled requests are
        re-fetched once, on their own, through the batch transport.

        Consuming the whole iterator empties the queue; the pacing timestamp
        is kept for the next batch run.
        """
        queue = list(self.queue)
        for index in range(0, len(queue), self.rate_limit):
            chunk = queue[index : index + self.rate_limit]

            last_time = self._timing["last_execution_date"]
            if last_time is not None:
                delta_ms = (self.policy.clock() - last_time) * 1000
                if 0 <= delta_ms < ONE_SECOND_MS:
                    pause = (ONE_SECOND_MS - delta_ms) * self.pacing_factor
                    self.logger.debug(
                        f"Sleeping for {pause / 1000:.3f} seconds to match rate limit of {self.rate_limit} per second"
                    )
                    self.policy.wait(pause)

            raws = self._dispatch(chunk)
            self._timing["last_execution_date"] = self.policy.clock()

            responses = [self._wrap(raw, request) for raw, request in zip(raws, chunk)]
            decisions = [response.check_rate_limit for response in responses]

            slept_ms = 0
            for request, response, decision in zip(chunk, responses, decisions):
                if decision.hit_rate_limit:
                    remaining = decision.wait_milliseconds - slept_ms
                    if remaining > 0:
                        self.logger.warning(f"Hit rate limit in batch, sleeping for {remaining / 1000:.3f} seconds")
                        self.policy.wait(remaining)
                        slept_ms += remaining
                    response = self._refetch(request)
                yield response

        yield from self._after
        self.reset(self._timing["last_execution_date"])

    def __repr__(self):
        return f"<Batch [{len(self.queue)} requests, rate_limit={self.rate_limit}]>"
