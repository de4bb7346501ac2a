from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple


class ChangeKind(str, Enum):
    ADDED = "A"
    MODIFIED = "M"
    DELETED = "D"


@dataclass(frozen=True)
class BlobRef:
    """Where to read a file's bytes from: the commit it lives in and its path there."""
    commit_id: str
    path: str
    blob_id: Optional[str] = None


@dataclass(frozen=True)
class ChangeEntry:
    path: str
    kind: ChangeKind
    blob: Optional[BlobRef] = None

    def __post_init__(self):
        if not self.path:
            raise ValueError("change entry path must not be empty")
        if self.kind is ChangeKind.DELETED and self.blob is not None:
            raise ValueError(f"deleted entry {self.path!r} must not carry a blob")
        if self.kind is not ChangeKind.DELETED and self.blob is None:
            raise ValueError(f"{self.kind.name.lower()} entry {self.path!r} needs a blob")


class ChangeSet:
    """Ordered changes keyed by path. Adding a path again replaces the earlier entry."""

    def __init__(self, entries: Iterable[ChangeEntry] = ()):
        self._entries: Dict[str, ChangeEntry] = {}
        for entry in entries:
            self.add(entry)

    def add(self, entry: ChangeEntry) -> None:
        # re-insert so iteration order follows the latest write
        self._entries.pop(entry.path, None)
        self._entries[entry.path] = entry

    def get(self, path: str) -> Optional[ChangeEntry]:
        return self._entries.get(path)

    def paths(self) -> List[str]:
        return list(self._entries)

    def __iter__(self) -> Iterator[ChangeEntry]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __repr__(self) -> str:
        return f"ChangeSet({list(self._entries.values())!r})"


@dataclass(frozen=True)
class RevisionRange:
    after_id: str
    before_id: Optional[str] = None

    @property
    def is_root(self) -> bool:
        return self.before_id is None

    def describe(self) -> str:
        return f"{self.before_id or '<empty tree>'}..{self.after_id}"


@dataclass(frozen=True)
class PathError:
    path: str
    cause: str


@dataclass(frozen=True)
class PublishResult:
    published_count: int
    deleted_count: int
    # object keys that were written or deleted, in change set order
    succeeded: Tuple[str, ...] = ()
    errors: Tuple[PathError, ...] = ()


@dataclass(frozen=True)
class SyncResult:
    revision_range: RevisionRange
    published_count: int = 0
    deleted_count: int = 0
    invalidated_paths: FrozenSet[str] = frozenset()
    batch_ids: Tuple[str, ...] = ()
    errors: Tuple[PathError, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "before": self.revision_range.before_id,
            "after": self.revision_range.after_id,
            "published": self.published_count,
            "deleted": self.deleted_count,
            "invalidated": sorted(self.invalidated_paths),
            "batches": list(self.batch_ids),
            "errors": [{"path": e.path, "cause": e.cause} for e in self.errors],
        }


@dataclass(frozen=True)
class TriggerEntry:
    repository: str
    branch: str
    revision_range: RevisionRange
    # True when the trigger did not say what the previous commit was
    needs_parent_lookup: bool = field(default=False)
