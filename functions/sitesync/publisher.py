import logging
import mimetypes
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Tuple

from botocore.exceptions import ClientError

from .aws import classify, error_code
from .models import BlobRef, ChangeEntry, ChangeKind, ChangeSet, PathError, PublishResult
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

Fetch = Callable[[BlobRef, Optional[Callable[[], float]]], bytes]

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# types the platform mimetypes table often lacks
EXTRA_TYPES = {
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".webmanifest": "application/manifest+json",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".webp": "image/webp",
    ".avif": "image/avif",
    ".wasm": "application/wasm",
    ".map": "application/json",
    ".md": "text/markdown",
}


def content_type_for(path: str) -> str:
    name = path.rsplit("/", 1)[-1].lower()
    dot = name.rfind(".")
    if dot > 0 and name[dot:] in EXTRA_TYPES:
        return EXTRA_TYPES[name[dot:]]
    guessed, _ = mimetypes.guess_type(name, strict=False)
    return guessed or DEFAULT_CONTENT_TYPE


def object_key(path: str, strip_html_extension: bool = False) -> str:
    if strip_html_extension and path.lower().endswith(".html") and len(path) > len(".html"):
        stripped = path[:-len(".html")]
        if not stripped.endswith("/"):
            return stripped
    return path


class ObjectStorePublisher:
    """Applies a ChangeSet to an S3 bucket, one independent unit of work per key."""

    def __init__(self, s3, bucket: str, retry: Optional[RetryPolicy] = None, max_workers: int = 8,
                 strip_html_extension: bool = False):
        self.s3 = s3
        self.bucket = bucket
        self.retry = retry or RetryPolicy()
        self.max_workers = max_workers
        self.strip_html_extension = strip_html_extension

    def key_for(self, path: str) -> str:
        return object_key(path, self.strip_html_extension)

    def _call(self, what: str, fn: Callable[[], dict], deadline) -> dict:
        def attempt():
            try:
                return fn()
            except Exception as exc:
                mapped = classify(exc, what)
                if mapped is exc:
                    raise
                raise mapped from exc
        return self.retry.call(attempt, what, deadline=deadline)

    def _put(self, entry: ChangeEntry, key: str, fetch: Fetch, deadline) -> None:
        body = fetch(entry.blob, deadline)
        content_type = content_type_for(entry.path)
        self._call(
            f"put-object {key}",
            lambda: self.s3.put_object(Bucket=self.bucket, Key=key, Body=body, ContentType=content_type),
            deadline,
        )
        logger.debug("put %s (%s, %d bytes)", key, content_type, len(body))

    def _delete(self, key: str, deadline) -> None:
        def delete():
            try:
                return self.s3.delete_object(Bucket=self.bucket, Key=key)
            except ClientError as exc:
                # already gone is the state we wanted
                if error_code(exc) in ("NoSuchKey", "404"):
                    return {}
                raise
        self._call(f"delete-object {key}", delete, deadline)
        logger.debug("deleted %s", key)

    def _apply(self, key: str, entries: List[ChangeEntry], fetch: Fetch, deadline) -> Tuple[int, int, List[PathError]]:
        written = deleted = 0
        errors = []
        for entry in entries:
            if deadline is not None and deadline() <= 0:
                errors.append(PathError(entry.path, "execution budget exhausted before publish"))
                continue
            try:
                if entry.kind is ChangeKind.DELETED:
                    self._delete(key, deadline)
                    deleted += 1
                else:
                    self._put(entry, key, fetch, deadline)
                    written += 1
            except Exception as exc:
                logger.error("publishing %s to %s failed: %s", entry.path, key, exc)
                errors.append(PathError(entry.path, str(exc) or type(exc).__name__))
        return written, deleted, errors

    def publish(self, changes: ChangeSet, fetch: Fetch,
                deadline: Optional[Callable[[], float]] = None) -> PublishResult:
        """Write or delete every entry, collecting per-path failures instead of stopping.

        fetch(blob, deadline) returns the bytes of a file; it is only called once
        the entry is about to be written.

        Entries that map to the same key run in change set order on one worker;
        different keys run in parallel on up to max_workers threads.
        """
        groups = OrderedDict()
        for entry in changes:
            groups.setdefault(self.key_for(entry.path), []).append(entry)
        if not groups:
            return PublishResult(0, 0)

        workers = max(1, min(self.max_workers, len(groups)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="publish") as pool:
            futures = [(key, pool.submit(self._apply, key, entries, fetch, deadline))
                       for key, entries in groups.items()]
            outcomes = [(key, future.result()) for key, future in futures]

        published = deleted = 0
        succeeded = []
        errors = []
        for key, (w, d, errs) in outcomes:
            published += w
            deleted += d
            errors.extend(errs)
            if not errs:
                succeeded.append(key)
        logger.info("publish to s3://%s: %d written, %d deleted, %d failed",
                    self.bucket, published, deleted, len(errors))
        return PublishResult(published, deleted, tuple(succeeded), tuple(errors))
