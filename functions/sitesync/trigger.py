import logging
from typing import Iterator, List, Optional

from .errors import ConfigurationError
from .models import RevisionRange, TriggerEntry

logger = logging.getLogger(__name__)

BRANCH_PREFIX = "refs/heads/"


def branch_name(ref: str) -> str:
    return ref[len(BRANCH_PREFIX):] if ref.startswith(BRANCH_PREFIX) else ref


def repository_from_arn(arn: str) -> Optional[str]:
    # arn:aws:codecommit:<region>:<account>:<repository>
    parts = (arn or "").split(":")
    if len(parts) >= 6 and parts[2] == "codecommit" and parts[5]:
        return parts[5]
    return None


def _references(event: dict) -> Iterator[tuple]:
    for record in event.get("Records") or []:
        repository = repository_from_arn(record.get("eventSourceARN", ""))
        for ref in (record.get("codecommit") or {}).get("references") or []:
            # a new branch has nothing published yet: diff against the empty tree
            created = bool(ref.get("created"))
            yield repository, {
                "after": ref.get("commit"),
                "before": None if created else ref.get("oldCommit"),
                "lookup": not created and not ref.get("oldCommit"),
                "ref": ref.get("ref", ""),
                "deleted": ref.get("deleted", False),
            }
    # provider-neutral shape, used by manual re-runs
    for ref in event.get("references") or []:
        yield event.get("repository"), {
            "after": ref.get("afterCommitId"),
            "before": ref.get("beforeCommitId"),
            # an explicit null before means "diff against the empty tree"
            "lookup": "beforeCommitId" not in ref,
            "ref": ref.get("branchReference", ""),
            "deleted": False,
        }


def parse_trigger(event: dict, branch: str, repository: Optional[str] = None) -> List[TriggerEntry]:
    """Reduce a trigger event to the commit ranges on the watched branch.

    repository overrides whatever the event names.
    """
    entries = []
    seen = set()
    for source, ref in _references(event or {}):
        name = branch_name(ref["ref"])
        if name != branch:
            logger.info("ignoring reference %r (watching %r)", ref["ref"], branch)
            continue
        if ref["deleted"] or not ref["after"]:
            logger.info("ignoring deleted or empty reference %r", ref["ref"])
            continue
        repo = repository or source
        if not repo:
            raise ConfigurationError("trigger does not name a repository and none is configured")
        before = ref["before"] or None
        key = (repo, before, ref["after"])
        # the same push can be delivered in several records
        if key in seen:
            continue
        seen.add(key)
        entries.append(TriggerEntry(
            repository=repo,
            branch=name,
            revision_range=RevisionRange(after_id=ref["after"], before_id=before),
            needs_parent_lookup=ref["lookup"],
        ))
    return entries
