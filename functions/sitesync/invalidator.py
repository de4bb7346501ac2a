import hashlib
import logging
from typing import Iterable, List, Optional
from urllib.parse import quote

from .aws import classify
from .config import MAX_INVALIDATION_PATHS
from .errors import QuotaExceededError
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

# RFC 3986 unreserved plus the sub-delims CloudFront takes literally
_SAFE = "/-_.~!$&'()+,;=:@"


def cdn_paths(key: str, index_document: Optional[str] = "index.html") -> List[str]:
    """CloudFront invalidation paths for one object key.

    A directory index is also reachable through its directory URL, so that
    URL is invalidated too.
    """
    paths = ["/" + quote(key.lstrip("/"), safe=_SAFE)]
    if index_document:
        directory, _, name = key.rpartition("/")
        if name == index_document:
            paths.append("/" + (quote(directory, safe=_SAFE) + "/" if directory else ""))
    return paths


class CacheInvalidator:
    def __init__(self, cloudfront, distribution_id: str, batch_size: int = MAX_INVALIDATION_PATHS,
                 index_document: Optional[str] = "index.html", retry: Optional[RetryPolicy] = None):
        self.cloudfront = cloudfront
        self.distribution_id = distribution_id
        self.batch_size = min(batch_size, MAX_INVALIDATION_PATHS)
        self.index_document = index_document
        self.retry = retry or RetryPolicy()

    def paths_for(self, keys: Iterable[str]) -> List[str]:
        paths = set()
        for key in keys:
            paths.update(cdn_paths(key, self.index_document))
        return sorted(paths)

    def caller_reference(self, scope: str, batch: List[str]) -> str:
        # same commit and same batch -> same reference, so CloudFront dedupes redeliveries
        digest = hashlib.sha256("\n".join([self.distribution_id, scope] + batch).encode("utf-8"))
        return f"sitesync-{digest.hexdigest()[:40]}"

    def _create(self, batch: List[str], reference: str) -> str:
        def attempt():
            try:
                return self.cloudfront.create_invalidation(
                    DistributionId=self.distribution_id,
                    InvalidationBatch={
                        "Paths": {"Quantity": len(batch), "Items": batch},
                        "CallerReference": reference,
                    },
                )
            except Exception as exc:
                mapped = classify(exc, f"create-invalidation {self.distribution_id}")
                if mapped is exc:
                    raise
                raise mapped from exc
        response = self.retry.call(attempt, "create-invalidation")
        return response["Invalidation"]["Id"]

    def invalidate(self, keys: Iterable[str], scope: str = "") -> List[str]:
        """Invalidate the CDN paths of the given object keys. Returns the batch ids.

        scope names the revision being synced and feeds the caller reference.
        """
        paths = self.paths_for(keys)
        batch_ids: List[str] = []
        for start in range(0, len(paths), self.batch_size):
            batch = paths[start:start + self.batch_size]
            try:
                batch_id = self._create(batch, self.caller_reference(scope, batch))
            except QuotaExceededError as exc:
                raise QuotaExceededError(
                    f"invalidation quota exhausted on {self.distribution_id} after "
                    f"{len(batch_ids)} batch(es): {exc}",
                    batch_ids=batch_ids,
                    pending_paths=paths[start:],
                ) from exc
            logger.info("invalidation %s created for %d path(s)", batch_id, len(batch))
            batch_ids.append(batch_id)
        return batch_ids
