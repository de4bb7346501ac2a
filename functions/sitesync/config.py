import logging
import math
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigurationError

# CloudFront accepts at most 3000 file paths per invalidation request
MAX_INVALIDATION_PATHS = 3000

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _required(env: Mapping[str, str], name: str) -> str:
    value = (env.get(name) or "").strip()
    if not value:
        raise ConfigurationError(f"missing required environment variable {name!r}")
    return value


def _number(env: Mapping[str, str], name: str, default, cast=int, minimum=None):
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None
    if not math.isfinite(value):
        raise ConfigurationError(f"{name} must be finite, got {raw!r}")
    if minimum is not None and value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def _flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    raw = raw.strip().lower()
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


@dataclass(frozen=True)
class SyncConfig:
    bucket_name: str
    distribution_id: str
    topic_arn: Optional[str] = None
    timeout_seconds: float = 300.0
    branch_name: str = "main"
    repository_name: Optional[str] = None
    max_workers: int = 8
    invalidation_batch_size: int = MAX_INVALIDATION_PATHS
    index_document: str = "index.html"
    strip_html_extension: bool = False
    retry_max_attempts: int = 4
    retry_base_delay: float = 0.2
    log_level: str = "INFO"

    def __post_init__(self):
        if not 1 <= self.invalidation_batch_size <= MAX_INVALIDATION_PATHS:
            raise ConfigurationError(
                f"invalidation batch size must be between 1 and {MAX_INVALIDATION_PATHS}")
        if self.max_workers < 1:
            raise ConfigurationError("max workers must be at least 1")
        if self.timeout_seconds <= 0:
            raise ConfigurationError("timeout must be positive")
        if logging.getLevelName(self.log_level.upper()) == f"Level {self.log_level.upper()}":
            raise ConfigurationError(f"unknown log level {self.log_level!r}")

    @classmethod
    def from_env(cls, env: Mapping[str, str]) -> "SyncConfig":
        branch = (env.get("branchName") or "main").strip()
        if branch.startswith("refs/heads/"):
            branch = branch[len("refs/heads/"):]
        return cls(
            bucket_name=_required(env, "bucketName"),
            distribution_id=_required(env, "distributionId"),
            topic_arn=(env.get("topicArn") or "").strip() or None,
            timeout_seconds=_number(env, "timeoutSeconds", 300.0, float, minimum=1),
            branch_name=branch,
            repository_name=(env.get("repositoryName") or "").strip() or None,
            max_workers=_number(env, "maxWorkers", 8, minimum=1),
            invalidation_batch_size=_number(env, "invalidationBatchSize", MAX_INVALIDATION_PATHS, minimum=1),
            index_document=(env.get("indexDocument") or "index.html").strip(),
            strip_html_extension=_flag(env, "stripHtmlExtension", False),
            retry_max_attempts=_number(env, "retryMaxAttempts", 4, minimum=1),
            retry_base_delay=_number(env, "retryBaseDelay", 0.2, float, minimum=0),
            log_level=(env.get("logLevel") or "INFO").strip().upper(),
        )
