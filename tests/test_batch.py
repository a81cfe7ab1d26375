"""Tests for batch.resolve_many."""

from __future__ import annotations

import threading
import time
from typing import Iterator

import pytest

from aggregator import Aggregator
from batch import resolve_many
from errors import Cancelled
from merge_policy import SourcePriorityPolicy
from models import PackageRecord, Query, SourceKind


def _record(name: str, source: SourceKind, repository: str) -> PackageRecord:
    return PackageRecord(name=name, version="1.0-1", description="", source=source, repository=repository)


class DelayedReader:
    """Reader whose answer time depends on the requested name."""

    def __init__(self, source_tag: str, records: list[PackageRecord], delays: dict[str, float]) -> None:
        self.source_tag = source_tag
        self.records = records
        self.delays = delays

    def search(self, query: Query) -> Iterator[PackageRecord]:
        time.sleep(self.delays.get(query.term, 0.0))
        for record in self.records:
            if query.matches(record.name):
                yield record


class BlockingReader:
    source_tag = "Remote"

    def __init__(self, gate: threading.Event) -> None:
        self.gate = gate

    def search(self, query: Query) -> Iterator[PackageRecord]:
        self.gate.wait(timeout=5)
        yield _record(query.term, SourceKind.REMOTE, "AUR")


def test_resolve_many_keeps_input_order_with_placeholder() -> None:
    core = DelayedReader(
        "Sync:core",
        [_record("a", SourceKind.SYNC, "core"), _record("c", SourceKind.SYNC, "core")],
        # the first name finishes last
        delays={"a": 0.2, "c": 0.0},
    )
    aggregator = Aggregator([core])

    result = resolve_many(aggregator, ["a", "b", "c"])

    assert [r.name for r in result] == ["a", "b", "c"]
    assert result[0].repository == "core"
    assert result[1].repository == "unknown"
    assert result[1].source is SourceKind.UNKNOWN
    assert "not found" in result[1].description
    assert result[2].repository == "core"


def test_resolve_many_prefers_sync_over_remote() -> None:
    core = DelayedReader("Sync:core", [_record("foo", SourceKind.SYNC, "core")], delays={"foo": 0.1})
    remote = DelayedReader("Remote", [_record("foo", SourceKind.REMOTE, "AUR")], delays={})
    aggregator = Aggregator([remote, core])

    result = resolve_many(aggregator, ["foo"], policy=SourcePriorityPolicy(["core"]))

    assert result[0].repository == "core"


def test_resolve_many_normalizes_case_to_requested_name() -> None:
    remote = DelayedReader("Remote", [_record("Google-Chrome", SourceKind.REMOTE, "AUR")], delays={})

    result = resolve_many(Aggregator([remote]), ["google-chrome"])

    assert result[0].name == "google-chrome"
    assert result[0].source_tag == "Remote"


def test_resolve_many_length_matches_input_for_many_names() -> None:
    names = [f"pkg{i}" for i in range(20)]
    records = [_record(name, SourceKind.SYNC, "extra") for name in names[::2]]
    delays = {name: 0.01 * (20 - i) for i, name in enumerate(names)}
    aggregator = Aggregator([DelayedReader("Sync:extra", records, delays)])

    result = resolve_many(aggregator, names, max_workers=4)

    assert [r.name for r in result] == names
    assert [r.repository for r in result] == ["extra", "unknown"] * 10


def test_resolve_many_cancelled_raises_without_result() -> None:
    gate = threading.Event()
    cancel = threading.Event()
    timer = threading.Timer(0.2, cancel.set)

    timer.start()
    try:
        with pytest.raises(Cancelled):
            resolve_many(Aggregator([BlockingReader(gate)]), ["a", "b", "c"], cancel=cancel)
    finally:
        gate.set()
        timer.cancel()


def test_resolve_many_does_not_set_callers_event_on_success() -> None:
    cancel = threading.Event()
    reader = DelayedReader("Sync:core", [_record("a", SourceKind.SYNC, "core")], delays={})

    resolve_many(Aggregator([reader]), ["a"], cancel=cancel)

    assert cancel.is_set() is False


def test_resolve_many_empty_input() -> None:
    assert resolve_many(Aggregator([]), []) == []


@pytest.mark.parametrize("names", [[""], ["a", "  "]])
def test_resolve_many_rejects_blank_names(names: list[str]) -> None:
    with pytest.raises(ValueError):
        resolve_many(Aggregator([]), names)
