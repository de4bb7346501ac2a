import logging
import time
from enum import Enum
from typing import Callable, Optional

from .config import SyncConfig
from .diff import RevisionDiffReader
from .errors import PartialPublishError, QuotaExceededError
from .invalidator import CacheInvalidator
from .models import RevisionRange, SyncResult, TriggerEntry
from .notifier import FailureContext, FailureNotifier
from .publisher import ObjectStorePublisher

logger = logging.getLogger(__name__)

# time kept back from the publish stage for invalidation and notification
RESERVE_SECONDS = 10.0


class SyncState(str, Enum):
    START = "start"
    DIFFING = "diffing"
    PUBLISHING = "publishing"
    INVALIDATING = "invalidating"
    DONE = "done"
    ERROR = "error"


def make_deadline(budget_seconds: float, clock: Callable[[], float] = time.monotonic) -> Callable[[], float]:
    """Return a callable giving the seconds left for publishing within budget_seconds."""
    reserve = min(RESERVE_SECONDS, budget_seconds * 0.1)
    ends_at = clock() + budget_seconds - reserve
    return lambda: ends_at - clock()


class SyncOrchestrator:
    """Drives one commit range through diff, publish and invalidate.

    Nothing is kept between calls to run(); every piece of per-run state is
    local, which keeps redelivered triggers harmless.
    """

    def __init__(self, config: SyncConfig, reader: RevisionDiffReader,
                 publisher: ObjectStorePublisher, invalidator: CacheInvalidator,
                 notifier: FailureNotifier, clock: Callable[[], float] = time.monotonic):
        self.config = config
        self.reader = reader
        self.publisher = publisher
        self.invalidator = invalidator
        self.notifier = notifier
        self.clock = clock

    def run(self, entry: TriggerEntry, remaining_seconds: Optional[float] = None,
            on_transition: Optional[Callable[[SyncState], None]] = None) -> SyncResult:
        budget = self.config.timeout_seconds
        if remaining_seconds is not None:
            budget = min(budget, remaining_seconds)
        deadline = make_deadline(budget, self.clock)
        revision_range = entry.revision_range
        state = SyncState.START

        def enter(new_state: SyncState):
            nonlocal state
            logger.info("%s %s: %s -> %s", entry.repository, revision_range.describe(),
                        state.value, new_state.value)
            state = new_state
            if on_transition is not None:
                on_transition(new_state)

        if on_transition is not None:
            on_transition(state)
        try:
            enter(SyncState.DIFFING)
            if entry.needs_parent_lookup:
                revision_range = RevisionRange(
                    after_id=revision_range.after_id,
                    before_id=self.reader.resolve_parent(revision_range.after_id),
                )
            changes = self.reader.diff(revision_range, verified=entry.needs_parent_lookup)

            enter(SyncState.PUBLISHING)
            published = self.publisher.publish(changes, self.reader.read, deadline)

            enter(SyncState.INVALIDATING)
            batch_ids = []
            invalidated = frozenset()
            if published.succeeded:
                try:
                    batch_ids = self.invalidator.invalidate(published.succeeded, scope=revision_range.after_id)
                    invalidated = frozenset(self.invalidator.paths_for(published.succeeded))
                except QuotaExceededError as exc:
                    # content is already correct in the bucket; the cache catches up via TTL
                    logger.warning("invalidation skipped: %s", exc)
                    batch_ids = exc.batch_ids
                    invalidated = frozenset(self.invalidator.paths_for(published.succeeded)) - set(exc.pending_paths)
                    self._notify(entry, revision_range, SyncState.INVALIDATING, exc)
        except Exception as exc:
            failed_at = state
            enter(SyncState.ERROR)
            logger.error("sync of %s %s failed while %s: %s", entry.repository,
                         revision_range.describe(), failed_at.value, exc)
            self._notify(entry, revision_range, failed_at, exc)
            raise

        enter(SyncState.DONE)
        result = SyncResult(
            revision_range=revision_range,
            published_count=published.published_count,
            deleted_count=published.deleted_count,
            invalidated_paths=invalidated,
            batch_ids=tuple(batch_ids),
            errors=published.errors,
        )
        if result.errors:
            error = PartialPublishError(result)
            self._notify(entry, revision_range, SyncState.PUBLISHING, error, result)
            raise error
        return result

    def _notify(self, entry: TriggerEntry, revision_range: RevisionRange, stage: SyncState,
                exc: Exception, result: Optional[SyncResult] = None) -> None:
        self.notifier.notify(FailureContext(
            revision_range=revision_range,
            stage=stage.value,
            cause=str(exc) or type(exc).__name__,
            error_type=type(exc).__name__,
            repository=entry.repository,
            branch=entry.branch,
            errors=list(result.errors) if result else [],
        ))
