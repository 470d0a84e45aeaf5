"""
Generic batched update queue.

Collects keys that need remote data, sends them in batches of at most
MAX_BATCH_SIZE with a single request in flight at a time, and merges the
results when the request's Future completes. Everything happens inside
`update()`, which is meant to be called once per tick and never blocks.

Keys are only removed once a response actually covers them, so anything
that failed or was left out of a response is retried on a later tick.
"""
import logging
import time
from concurrent.futures import Future
from itertools import islice
from typing import Callable, Dict, Generic, Iterable, List, Optional, TypeVar

logger = logging.getLogger(__name__)

KeyT = TypeVar("KeyT")
ResponseT = TypeVar("ResponseT")


class AsyncUpdateQueue(Generic[KeyT, ResponseT]):
    """
    Base class for batched fetches. Subclasses implement `send_request` and
    `on_data_ready`.

    Args:
        min_request_interval: Minimum seconds between two requests
        clock: Monotonic time source, replaceable for tests
    """

    MAX_BATCH_SIZE = 100

    def __init__(self, min_request_interval: float = 0.0, clock: Callable[[], float] = time.monotonic):
        # dict as an insertion-ordered set
        self._queued: Dict[KeyT, None] = {}
        self._future: Optional[Future] = None
        self._min_request_interval = min_request_interval
        self._clock = clock
        self._last_request_time: Optional[float] = None

    def __len__(self) -> int:
        return len(self._queued)

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def pending(self) -> List[KeyT]:
        return list(self._queued)

    @property
    def is_request_in_flight(self) -> bool:
        return self._future is not None

    def queue(self, key: KeyT):
        self._queued[key] = None

    def is_queued(self, key: KeyT) -> bool:
        return key in self._queued

    def is_rate_limited(self) -> bool:
        if self._last_request_time is None:
            return False
        return self._clock() - self._last_request_time < self._min_request_interval

    def update(self):
        """Merge a finished request, then send the next batch if allowed."""
        self._poll_in_flight()
        self._send_next_batch()

    def _poll_in_flight(self):
        future = self._future
        if future is None or not future.done():
            return

        self._future = None
        try:
            response = future.result()
        except Exception as e:
            logger.error(f"{self.name}: request failed, {len(self._queued)} key(s) stay queued: {e}",
                         exc_info=True)
            return

        for key in self.on_data_ready(response):
            self._queued.pop(key, None)

    def _send_next_batch(self):
        if self._future is not None or not self._queued or self.is_rate_limited():
            return

        batch = list(islice(self._queued, self.MAX_BATCH_SIZE))
        try:
            future = self.send_request(batch)
        except Exception as e:
            logger.error(f"{self.name}: failed to send request for {len(batch)} key(s): {e}", exc_info=True)
            self._last_request_time = self._clock()
            return

        if future is None:
            # Not configured to talk to the remote side yet
            return

        logger.debug(f"{self.name}: requested {len(batch)} of {len(self._queued)} queued key(s)")
        self._future = future
        self._last_request_time = self._clock()

    def send_request(self, keys: List[KeyT]) -> Optional[Future]:
        """
        Start a request for `keys` (never more than MAX_BATCH_SIZE).

        Returns:
            A Future resolving to the response, or None if no request can be
            made right now
        """
        raise NotImplementedError

    def on_data_ready(self, response: ResponseT) -> Iterable[KeyT]:
        """Merge `response` and return the keys it satisfied."""
        raise NotImplementedError
