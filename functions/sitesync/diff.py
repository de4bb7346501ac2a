import logging
from typing import Callable, Iterator, Optional

from .aws import classify
from .models import BlobRef, ChangeEntry, ChangeKind, ChangeSet, RevisionRange
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

# submodule pointers have no content of their own to publish
GITLINK_MODE = "160000"


class RevisionDiffReader:
    """Turns a commit range of a CodeCommit repository into a ChangeSet."""

    def __init__(self, codecommit, repository: str, retry: Optional[RetryPolicy] = None,
                 page_size: int = 400):
        self.codecommit = codecommit
        self.repository = repository
        self.retry = retry or RetryPolicy()
        self.page_size = page_size

    def _call(self, what: str, fn: Callable[[], dict], deadline=None) -> dict:
        def attempt():
            try:
                return fn()
            except Exception as exc:
                mapped = classify(exc, what)
                if mapped is exc:
                    raise
                raise mapped from exc
        return self.retry.call(attempt, what, deadline=deadline)

    def get_commit(self, commit_id: str) -> dict:
        return self._call(
            f"get-commit {commit_id}",
            lambda: self.codecommit.get_commit(repositoryName=self.repository, commitId=commit_id),
        )["commit"]

    def resolve_parent(self, commit_id: str) -> Optional[str]:
        parents = self.get_commit(commit_id).get("parents") or []
        return parents[0] if parents else None

    def _differences(self, revision_range: RevisionRange) -> Iterator[dict]:
        params = {
            "repositoryName": self.repository,
            "afterCommitSpecifier": revision_range.after_id,
            "MaxResults": self.page_size,
        }
        # without a before specifier CodeCommit lists every file of the after tree as added
        if revision_range.before_id:
            params["beforeCommitSpecifier"] = revision_range.before_id
        token = None
        while True:
            if token:
                params["NextToken"] = token
            page = self._call(
                f"get-differences {revision_range.describe()}",
                lambda: self.codecommit.get_differences(**params),
            )
            yield from page.get("differences", [])
            token = page.get("NextToken")
            if not token:
                return

    def diff(self, revision_range: RevisionRange, verified: bool = False) -> ChangeSet:
        """List the changes in the range.

        verified skips the up-front get-commit when the caller already fetched
        the after commit, as resolve_parent does.
        """
        after = revision_range.after_id
        if not verified:
            # fail fast on a bad reference before listing anything
            self.get_commit(after)
        changes = ChangeSet()
        for difference in self._differences(revision_range):
            for entry in self._entries(difference, after):
                changes.add(entry)
        logger.info("diff %s: %d change(s)", revision_range.describe(), len(changes))
        return changes

    def _entries(self, difference: dict, after: str) -> Iterator[ChangeEntry]:
        change_type = difference.get("changeType")
        before_blob = difference.get("beforeBlob") or {}
        after_blob = difference.get("afterBlob") or {}
        old_path = before_blob.get("path")
        new_path = after_blob.get("path")

        if change_type == ChangeKind.DELETED.value:
            if old_path and before_blob.get("mode") != GITLINK_MODE:
                yield ChangeEntry(old_path, ChangeKind.DELETED)
            return
        if after_blob.get("mode") == GITLINK_MODE or not new_path:
            logger.debug("skipping %r (%s)", new_path, change_type)
            return

        blob = BlobRef(commit_id=after, path=new_path, blob_id=after_blob.get("blobId"))
        if old_path and old_path != new_path:
            # a rename lands as two independent keys in the bucket
            yield ChangeEntry(old_path, ChangeKind.DELETED)
            yield ChangeEntry(new_path, ChangeKind.ADDED, blob)
        elif change_type == ChangeKind.ADDED.value:
            yield ChangeEntry(new_path, ChangeKind.ADDED, blob)
        else:
            yield ChangeEntry(new_path, ChangeKind.MODIFIED, blob)

    def read(self, blob: BlobRef, deadline=None) -> bytes:
        response = self._call(
            f"get-file {blob.path}@{blob.commit_id}",
            lambda: self.codecommit.get_file(
                repositoryName=self.repository,
                commitSpecifier=blob.commit_id,
                filePath=blob.path,
            ),
            deadline=deadline,
        )
        return response["fileContent"]
