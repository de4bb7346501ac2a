import boto3
from botocore.config import Config
from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from .errors import NotFoundError, QuotaExceededError, SyncError, TransientError

NOT_FOUND_CODES = {
    "CommitDoesNotExistException",
    "CommitIdDoesNotExistException",
    "InvalidCommitIdException",
    "InvalidCommitException",
    "RepositoryDoesNotExistException",
    "FileDoesNotExistException",
    "PathDoesNotExistException",
    "BlobIdDoesNotExistException",
    "NoSuchBucket",
    "NoSuchDistribution",
    "NotFoundException",
}

TRANSIENT_CODES = {
    "Throttling",
    "ThrottlingException",
    "ThrottledException",
    "TooManyRequestsException",
    "RequestLimitExceeded",
    "SlowDown",
    "RequestTimeout",
    "RequestTimeoutException",
    "InternalError",
    "InternalFailure",
    "InternalServerError",
    "ServiceUnavailable",
    "ServiceUnavailableException",
    "EncryptionKeyUnavailableException",
}

QUOTA_CODES = {
    "TooManyInvalidationsInProgress",
    "InvalidationBatchQuotaExceeded",
}

NETWORK_ERRORS = (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError, ConnectionClosedError)

# the SDK makes its own short retries; the engine's RetryPolicy sits on top
_CLIENT_CONFIG = Config(
    connect_timeout=5,
    read_timeout=30,
    retries={"max_attempts": 3, "mode": "standard"},
)


def client(service: str, **kwargs):
    return boto3.client(service, config=_CLIENT_CONFIG, **kwargs)


def error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


def classify(exc: Exception, what: str) -> Exception:
    """Map an SDK exception onto the engine's error taxonomy.

    Unknown client errors come back unchanged so callers can re-raise them as is.
    """
    if isinstance(exc, SyncError):
        return exc
    if isinstance(exc, NETWORK_ERRORS):
        return TransientError(f"{what}: {exc}")
    if isinstance(exc, ClientError):
        code = error_code(exc)
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 0
        if code in NOT_FOUND_CODES:
            return NotFoundError(f"{what}: {code}")
        if code in QUOTA_CODES:
            return QuotaExceededError(f"{what}: {code}")
        if code in TRANSIENT_CODES or status >= 500 or status == 429:
            return TransientError(f"{what}: {code or status}")
    return exc
