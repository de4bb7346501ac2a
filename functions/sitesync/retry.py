import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, TypeVar

from .errors import TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Bounded exponential backoff with full jitter, applied to TransientError only.

    The same policy object is handed to the diff reader, the publisher and the
    invalidator so all three back off the same way.
    """
    max_attempts: int = 4
    base_delay: float = 0.2
    max_delay: float = 5.0
    jitter: bool = True
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    rng: random.Random = field(default_factory=random.Random, repr=False)

    def delay_for(self, attempt: int) -> float:
        # attempt is 1-based: the wait after the first failure uses base_delay
        ceiling = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        if self.jitter:
            return self.rng.uniform(0, ceiling)
        return ceiling

    def call(self, fn: Callable[[], T], what: str = "call",
             deadline: Optional[Callable[[], float]] = None) -> T:
        """Run fn, retrying TransientError until attempts or the remaining time run out.

        deadline, if given, returns the seconds left in the invocation; the
        policy never sleeps past it.
        """
        attempt = 1
        while True:
            try:
                return fn()
            except TransientError as exc:
                if attempt >= self.max_attempts:
                    logger.warning("%s failed after %d attempts: %s", what, attempt, exc)
                    raise
                wait = self.delay_for(attempt)
                if deadline is not None and deadline() <= wait:
                    logger.warning("%s: no time left to retry: %s", what, exc)
                    raise
                logger.info("%s: transient failure (attempt %d/%d), retrying in %.2fs: %s",
                            what, attempt, self.max_attempts, wait, exc)
                self.sleep(wait)
                attempt += 1
