"""Shared typed models for package discovery and update checks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

UNKNOWN_REPOSITORY = "unknown"
LOCAL_REPOSITORY = "local"


class SourceKind(str, Enum):
    LOCAL = "Local"
    SYNC = "Sync"
    REMOTE = "Remote"
    UNKNOWN = "unknown"


def _source_tag(source: SourceKind, repository: str) -> str:
    if source is SourceKind.SYNC:
        return f"Sync:{repository}"
    return source.value


@dataclass(frozen=True, slots=True)
class PackageRecord:
    """Normalized package record produced by every source reader."""

    name: str
    version: str
    description: str
    source: SourceKind
    repository: str
    maintainer: str = ""
    upstream_url: str = ""
    depends: tuple[str, ...] = ()
    last_modified: datetime | None = None
    download_size: int = 0

    @property
    def source_tag(self) -> str:
        return _source_tag(self.source, self.repository)

    @classmethod
    def placeholder(cls, name: str) -> PackageRecord:
        """Stand-in for a requested name that no source could resolve."""
        return cls(
            name=name,
            version="",
            description="Package not found in any sync repository or the remote source",
            source=SourceKind.UNKNOWN,
            repository=UNKNOWN_REPOSITORY,
        )

    def to_dict(self) -> dict[str, object]:
        """Export shape kept compatible with the package-info JSON files."""
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "repository": self.repository,
            "maintainer": self.maintainer,
            "upstreamurl": self.upstream_url,
            "dependlist": list(self.depends),
            "lastupdated": self.last_modified.isoformat() if self.last_modified else "",
        }


@dataclass(frozen=True, slots=True)
class UpdateRecord:
    """A pending update for one installed package."""

    name: str
    old_version: str
    new_version: str
    source: SourceKind
    repository: str
    download_size: int = 0

    @property
    def source_tag(self) -> str:
        return _source_tag(self.source, self.repository)

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "oldVersion": self.old_version,
            "newVersion": self.new_version,
            "repository": self.repository,
            "downloadSize": self.download_size,
        }


@dataclass(frozen=True, slots=True)
class Query:
    """A search term, matched either as a substring or as an exact name."""

    term: str
    exact: bool = False

    @classmethod
    def substring(cls, term: str) -> Query:
        return cls(term=term, exact=False)

    @classmethod
    def exact_name(cls, name: str) -> Query:
        return cls(term=name, exact=True)

    def matches(self, name: str) -> bool:
        needle = self.term.lower()
        if self.exact:
            return name.lower() == needle
        return needle in name.lower()


@dataclass(frozen=True, slots=True)
class SourceFailure:
    """One source's failure that did not abort the surrounding operation."""

    source_tag: str
    kind: str
    message: str

    @classmethod
    def from_exception(cls, source_tag: str, exc: Exception) -> SourceFailure:
        return cls(source_tag=source_tag, kind=type(exc).__name__, message=str(exc))


@dataclass(slots=True)
class AggregationResult:
    """Records in arrival order plus the per-source failures seen on the way."""

    records: list[PackageRecord] = field(default_factory=list)
    failures: list[SourceFailure] = field(default_factory=list)
    cancelled: bool = False
    sources_queried: int = 0
    sources_failed: int = 0

    @property
    def all_failed(self) -> bool:
        # Distinguishes "every source failed" from "no source had a match".
        return self.sources_queried > 0 and self.sources_failed >= self.sources_queried
