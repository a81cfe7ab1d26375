"""Tie-break and deduplication rules shared by batch resolution and update checks."""

from __future__ import annotations

import dataclasses
from datetime import datetime
from typing import Iterable, Protocol, Sequence

from models import PackageRecord, SourceKind
from vercmp import vercmp


class MergePolicy(Protocol):
    def choose(self, requested: str, candidates: Sequence[PackageRecord]) -> PackageRecord | None:
        """Pick the single best record for ``requested`` or None if nothing qualifies."""
        ...


class SourcePriorityPolicy:
    """Prefer official sync repositories (in configured order), then the remote source.

    Every candidate is scanned before choosing, so arrival order never affects
    the outcome. Local records are not eligible: they describe what is
    installed, not where the package comes from.
    """

    def __init__(self, sync_repositories: Sequence[str] = ()) -> None:
        self.sync_repositories = list(sync_repositories)

    def rank(self, record: PackageRecord) -> tuple[int, int] | None:
        if record.source is SourceKind.SYNC:
            try:
                position = self.sync_repositories.index(record.repository)
            except ValueError:
                position = len(self.sync_repositories)
            return (0, position)
        if record.source is SourceKind.REMOTE:
            return (1, 0)
        return None

    def choose(self, requested: str, candidates: Sequence[PackageRecord]) -> PackageRecord | None:
        best: PackageRecord | None = None
        best_key: tuple[tuple[int, int], bool, str] | None = None
        for record in _eligible(requested, candidates):
            rank = self.rank(record)
            if rank is None:
                continue
            # exact-case name, then repository name, settle ties deterministically
            key = (rank, record.name != requested, record.repository)
            if best_key is None or key < best_key:
                best, best_key = record, key
        return _renamed(best, requested)


class LatestMetadataPolicy(SourcePriorityPolicy):
    """Prefer the candidate with the newest last-modified timestamp.

    Ties and records without a timestamp fall back to source priority.
    """

    def choose(self, requested: str, candidates: Sequence[PackageRecord]) -> PackageRecord | None:
        ranked = [
            (record, rank)
            for record in _eligible(requested, candidates)
            if (rank := self.rank(record)) is not None
        ]
        if not ranked:
            return None

        def sort_key(item: tuple[PackageRecord, tuple[int, int]]) -> tuple[float, tuple[int, int], str]:
            record, rank = item
            if isinstance(record.last_modified, datetime):
                stamp = record.last_modified.timestamp()
            else:
                stamp = float("-inf")
            return (-stamp, rank, record.repository)

        best, _ = min(ranked, key=sort_key)
        return _renamed(best, requested)


def pick_newest(
    records: Iterable[PackageRecord],
    repository_order: Sequence[str] = (),
) -> PackageRecord | None:
    """Return the record with the highest version; ties keep the earlier repository."""
    order = list(repository_order)

    def position(record: PackageRecord) -> int:
        try:
            return order.index(record.repository)
        except ValueError:
            return len(order)

    newest: PackageRecord | None = None
    for record in sorted(records, key=position):
        if newest is None or vercmp(record.version, newest.version) > 0:
            newest = record
    return newest


def deduplicate(records: Iterable[PackageRecord]) -> list[PackageRecord]:
    """Keep the first record seen per (source tag, name)."""
    seen: set[tuple[str, str]] = set()
    unique: list[PackageRecord] = []
    for record in records:
        key = (record.source_tag, record.name)
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique


def _eligible(requested: str, candidates: Iterable[PackageRecord]) -> Iterable[PackageRecord]:
    lowered = requested.lower()
    return (record for record in candidates if record.name.lower() == lowered)


def _renamed(record: PackageRecord | None, requested: str) -> PackageRecord | None:
    if record is None or record.name == requested:
        return record
    return dataclasses.replace(record, name=requested)
