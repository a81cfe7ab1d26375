"""Error taxonomy shared by source readers and the aggregation engine."""

from __future__ import annotations


class PackageSourceError(RuntimeError):
    """A single source failed; siblings keep going."""

    def __init__(self, source_tag: str, message: str) -> None:
        super().__init__(f"{source_tag}: {message}")
        self.source_tag = source_tag


class SourceUnavailable(PackageSourceError):
    """The source could not be reached or initialized."""


class ParseFailure(PackageSourceError):
    """The source answered with something we could not decode."""


class Cancelled(RuntimeError):
    """The operation was abandoned because its cancellation signal fired."""
