from typing import List, Optional, Sequence


class SyncError(Exception):
    """Base class for every failure raised by the sync engine."""


class ConfigurationError(SyncError):
    pass


class NotFoundError(SyncError):
    """A revision, repository or file reference does not exist upstream."""


class TransientError(SyncError):
    """Throttling or network trouble. Safe to retry."""


class QuotaExceededError(SyncError):
    """CloudFront refused further invalidations for now."""

    def __init__(self, message: str, batch_ids: Optional[Sequence[str]] = None,
                 pending_paths: Optional[Sequence[str]] = None):
        super().__init__(message)
        self.batch_ids: List[str] = list(batch_ids or [])
        self.pending_paths: List[str] = list(pending_paths or [])


class PartialPublishError(SyncError):
    """Some paths failed to publish. Carries the finished SyncResult."""

    def __init__(self, result):
        paths = ", ".join(e.path for e in result.errors[:5])
        more = "" if len(result.errors) <= 5 else f" (+{len(result.errors) - 5} more)"
        super().__init__(f"{len(result.errors)} path(s) failed to publish: {paths}{more}")
        self.result = result
