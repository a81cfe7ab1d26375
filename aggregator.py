"""Concurrent fan-out of one query to every configured package source."""

from __future__ import annotations

import concurrent.futures
import logging
import queue
import threading
from typing import Iterable, Protocol, Sequence

from errors import PackageSourceError
from merge_policy import deduplicate
from models import AggregationResult, PackageRecord, Query, SourceFailure

LOGGER = logging.getLogger(__name__)

# How often the collector re-checks the cancellation signal while idle.
COLLECT_POLL_SECONDS = 0.05


class SourceReader(Protocol):
    source_tag: str

    def search(self, query: Query) -> Iterable[PackageRecord]:
        ...


class _Done:
    """Completion marker a unit puts on the queue when it stops emitting."""

    __slots__ = ("failure",)

    def __init__(self, failure: SourceFailure | None = None) -> None:
        self.failure = failure


class Aggregator:
    """Fans a query out to all readers and merges what comes back.

    Each reader gets one worker; records are collected in arrival order, which
    is neither deterministic nor a ranking. A failing reader contributes a
    ``SourceFailure`` instead of records and never stops its siblings.
    """

    def __init__(
        self,
        readers: Sequence[SourceReader],
        registration_failures: Sequence[SourceFailure] = (),
    ) -> None:
        self.readers = list(readers)
        self.registration_failures = list(registration_failures)

    def search_all(
        self,
        query: Query | str,
        cancel: threading.Event | None = None,
    ) -> AggregationResult:
        if isinstance(query, str):
            query = Query.substring(query)
        cancel = cancel or threading.Event()

        # Sources that failed to register count as queried and failed.
        result = AggregationResult(
            failures=list(self.registration_failures),
            sources_queried=len(self.readers) + len(self.registration_failures),
            sources_failed=len(self.registration_failures),
        )
        if not self.readers:
            LOGGER.warning("Aggregate search: no sources configured for term=%s", query.term)
            return result

        channel: queue.Queue[PackageRecord | _Done] = queue.Queue()
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=len(self.readers),
            thread_name_prefix="source",
        )
        try:
            for reader in self.readers:
                executor.submit(_run_reader, reader, query, cancel, channel)
            self._collect(channel, cancel, result)
        finally:
            # Cancelled units are not waited for; they stop on their own.
            executor.shutdown(wait=not result.cancelled, cancel_futures=True)

        result.records = deduplicate(result.records)

        LOGGER.info(
            "Aggregate search: term=%s exact=%s records=%s failures=%s cancelled=%s",
            query.term,
            query.exact,
            len(result.records),
            len(result.failures),
            result.cancelled,
        )
        return result

    def _collect(
        self,
        channel: queue.Queue[PackageRecord | _Done],
        cancel: threading.Event,
        result: AggregationResult,
    ) -> None:
        pending = len(self.readers)
        while pending:
            if cancel.is_set():
                result.cancelled = True
                break
            try:
                item = channel.get(timeout=COLLECT_POLL_SECONDS)
            except queue.Empty:
                continue
            pending -= self._accept(item, result)

        if result.cancelled:
            # Keep whatever already arrived.
            while True:
                try:
                    item = channel.get_nowait()
                except queue.Empty:
                    break
                self._accept(item, result)

    @staticmethod
    def _accept(item: PackageRecord | _Done, result: AggregationResult) -> int:
        if isinstance(item, _Done):
            if item.failure is not None:
                result.failures.append(item.failure)
                result.sources_failed += 1
            return 1
        result.records.append(item)
        return 0


def _run_reader(
    reader: SourceReader,
    query: Query,
    cancel: threading.Event,
    channel: queue.Queue[PackageRecord | _Done],
) -> None:
    failure: SourceFailure | None = None
    emitted = 0
    try:
        if cancel.is_set():
            return
        for record in reader.search(query):
            if cancel.is_set():
                break
            channel.put(record)
            emitted += 1
    except PackageSourceError as exc:
        LOGGER.warning("Source %s failed for term=%s: %s", reader.source_tag, query.term, exc)
        failure = SourceFailure.from_exception(reader.source_tag, exc)
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("Source %s crashed for term=%s", reader.source_tag, query.term)
        failure = SourceFailure.from_exception(reader.source_tag, exc)
    finally:
        channel.put(_Done(failure))
    LOGGER.debug("Source %s emitted %s records for term=%s", reader.source_tag, emitted, query.term)
