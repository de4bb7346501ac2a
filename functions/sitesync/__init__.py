"""Sync a CodeCommit branch into an S3 website bucket and invalidate CloudFront."""

import logging

from .config import SyncConfig
from .diff import RevisionDiffReader
from .errors import (
    ConfigurationError,
    NotFoundError,
    PartialPublishError,
    QuotaExceededError,
    SyncError,
    TransientError,
)
from .invalidator import CacheInvalidator
from .models import ChangeEntry, ChangeKind, ChangeSet, RevisionRange, SyncResult, TriggerEntry
from .notifier import FailureContext, FailureNotifier
from .orchestrator import SyncOrchestrator, SyncState
from .publisher import ObjectStorePublisher
from .retry import RetryPolicy
from .trigger import parse_trigger

__all__ = [
    "CacheInvalidator",
    "ChangeEntry",
    "ChangeKind",
    "ChangeSet",
    "ConfigurationError",
    "FailureContext",
    "FailureNotifier",
    "NotFoundError",
    "ObjectStorePublisher",
    "PartialPublishError",
    "QuotaExceededError",
    "RetryPolicy",
    "RevisionDiffReader",
    "RevisionRange",
    "SyncConfig",
    "SyncError",
    "SyncOrchestrator",
    "SyncResult",
    "SyncState",
    "TransientError",
    "TriggerEntry",
    "configure_logging",
    "parse_trigger",
]


def configure_logging(level: str = "INFO") -> logging.Logger:
    # the Lambda runtime owns the root handler; only the level is ours
    logger = logging.getLogger(__name__)
    logger.setLevel(level.upper())
    if not logging.getLogger().handlers:
        logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s %(message)s")
    return logger
