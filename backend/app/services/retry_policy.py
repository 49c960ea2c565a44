import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, TypeVar

from tenacity import Retrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

RATE_LIMIT_STATUSES = frozenset({403, 429})


def chunked(lst, n):
    for i in range(0, len(lst), n):
        yield lst[i:i + n]


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded exponential backoff shared by every upstream call site.

    An exception is retried only when its ``status_code`` attribute is one of
    ``retryable_statuses``; anything else propagates on the first failure.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    retryable_statuses: frozenset[int] = RATE_LIMIT_STATUSES
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False)

    def is_retryable(self, exc: BaseException) -> bool:
        return getattr(exc, "status_code", None) in self.retryable_statuses

    def retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.base_delay, exp_base=self.multiplier),
            retry=retry_if_exception(self.is_retryable),
            sleep=self.sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    def call(self, fn: Callable[..., R], *args: Any, **kwargs: Any) -> R:
        return self.retrying()(fn, *args, **kwargs)


@dataclass(frozen=True)
class BatchPolicy:
    """Runs a function over items in concurrent batches with a fixed pause between batches."""

    size: int = 5
    pause: float = 0.5
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False)

    def map(self, fn: Callable[[T], R], items: Iterable[T]) -> list[R]:
        pending = list(items)
        results: list[R] = []
        batches = list(chunked(pending, max(1, self.size)))
        for index, batch in enumerate(batches):
            with ThreadPoolExecutor(max_workers=len(batch)) as executor:
                results.extend(executor.map(fn, batch))
            logger.debug("Processed batch %d/%d (%d/%d items)", index + 1, len(batches), len(results), len(pending))
            if index + 1 < len(batches) and self.pause > 0:
                self.sleep(self.pause)
        return results
