"""Version lineage resolution.

Records point at an earlier version through ``parent_id``. A lineage is every
record connected through those links, and its head is the newest member by
``created_at``. The head's policy fields govern access for the whole lineage,
so every access path resolves the head first.

Resolution is union-find with path compression over the records fetched for
the current request. Build a fresh ``LineageResolver`` per request; it holds no
state across requests, so a head can never go stale after records change.

Malformed data is tolerated rather than reported:
  - a parent id that is not in the record set makes the record its own root
  - ``parent_id == id`` is treated as no parent
  - a cycle stops at the first revisited node, which becomes the root, so all
    members of the cycle land in one lineage rooted at whichever member was
    walked first in input order
"""
from datetime import datetime, timezone
from typing import Iterable, Optional

from fileshare.models.file_record import FileRecord

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def created_at_key(record: FileRecord) -> datetime:
    """Sort key for created_at. Naive values are read as UTC, missing as oldest."""
    ts = record.created_at
    if ts is None:
        return _OLDEST
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


class LineageResolver:
    """Groups records into lineages and picks each lineage's head."""

    def __init__(self, records: Iterable[FileRecord]):
        self._by_id: dict[str, FileRecord] = {}
        for record in records:
            # First occurrence wins if the input repeats an id
            self._by_id.setdefault(record.id, record)

        self._parent: dict[str, str] = {}
        for record in self._by_id.values():
            parent_id = record.parent_id
            if parent_id and parent_id != record.id and parent_id in self._by_id:
                self._parent[record.id] = parent_id

        self._root_cache: dict[str, str] = {}
        self._heads: Optional[dict[str, FileRecord]] = None
        # Walk in input order so a cycle is rooted at its first-seen member
        for file_id in self._by_id:
            self.root_of(file_id)

    @property
    def records(self) -> list[FileRecord]:
        """Distinct records, in input order."""
        return list(self._by_id.values())

    def __contains__(self, file_id: str) -> bool:
        return file_id in self._by_id

    def get(self, file_id: str) -> Optional[FileRecord]:
        return self._by_id.get(file_id)

    def root_of(self, file_id: str) -> str:
        """Return the lineage root id for ``file_id``."""
        cached = self._root_cache.get(file_id)
        if cached is not None:
            return cached

        path: list[str] = []
        visited: set[str] = set()
        node = file_id
        while True:
            cached = self._root_cache.get(node)
            if cached is not None:
                root = cached
                break
            parent = self._parent.get(node)
            if parent is None or node in visited:
                root = node
                break
            visited.add(node)
            path.append(node)
            node = parent

        for member in path:
            self._root_cache[member] = root
        self._root_cache[root] = root
        return root

    def _compute_heads(self) -> dict[str, FileRecord]:
        heads: dict[str, FileRecord] = {}
        for record in self._by_id.values():
            root = self.root_of(record.id)
            current = heads.get(root)
            # Strictly newer replaces, so ties keep the first-seen record
            if current is None or created_at_key(record) > created_at_key(current):
                heads[root] = record
        return heads

    @property
    def _head_by_root(self) -> dict[str, FileRecord]:
        if self._heads is None:
            self._heads = self._compute_heads()
        return self._heads

    def head_of(self, file_id: str) -> Optional[FileRecord]:
        """Return the head of ``file_id``'s lineage, or None for an unknown id."""
        if file_id not in self._by_id:
            return None
        return self._head_by_root[self.root_of(file_id)]

    def heads(self) -> list[FileRecord]:
        """One head per lineage, in first-seen lineage order."""
        return list(self._head_by_root.values())

    def members(self, file_id: str) -> list[FileRecord]:
        """All records in ``file_id``'s lineage, newest first."""
        if file_id not in self._by_id:
            return []
        root = self.root_of(file_id)
        found = [r for r in self._by_id.values() if self.root_of(r.id) == root]
        return sorted(found, key=created_at_key, reverse=True)


def resolve_heads(records: Iterable[FileRecord]) -> dict[str, FileRecord]:
    """Map every record id to the head record of its lineage."""
    resolver = LineageResolver(records)
    return {record.id: resolver.head_of(record.id) for record in resolver.records}


def lineage_of(records: Iterable[FileRecord], target_id: str) -> list[FileRecord]:
    """Every record in ``target_id``'s lineage, newest first."""
    return LineageResolver(records).members(target_id)
