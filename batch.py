"""Resolve a list of package names to one best record each, in input order."""

from __future__ import annotations

import concurrent.futures
import logging
import os
import threading
from typing import Sequence

from aggregator import COLLECT_POLL_SECONDS, Aggregator
from errors import Cancelled
from merge_policy import MergePolicy, SourcePriorityPolicy
from models import UNKNOWN_REPOSITORY, PackageRecord, Query

LOGGER = logging.getLogger(__name__)

_DEFAULT_MAX_WORKERS = 8


def resolve_many(
    aggregator: Aggregator,
    names: Sequence[str],
    policy: MergePolicy | None = None,
    cancel: threading.Event | None = None,
    max_workers: int | None = None,
) -> list[PackageRecord]:
    """Return exactly one record per name, positionally aligned with ``names``.

    Names are resolved concurrently with exact-name aggregate searches. A name
    no source knows gets a placeholder record in the ``unknown`` repository.
    If ``cancel`` fires before every name is resolved, ``Cancelled`` is raised
    and nothing is returned: callers bind results by position, so a partial
    list would be misleading.

    Args:
        aggregator: Aggregator used for each per-name search.
        names: Package names; each must be a non-empty string.
        policy: Merge policy choosing the best record. Defaults to
            SourcePriorityPolicy over no particular repository order.
        cancel: Optional external cancellation signal.
        max_workers: Concurrency cap. Reads BATCH_MAX_WORKERS if not supplied.
    """
    for name in names:
        if not isinstance(name, str) or not name.strip():
            raise ValueError(f"package names must be non-empty strings, got {name!r}")
    if not names:
        return []

    policy = policy or SourcePriorityPolicy()
    cancel = cancel or threading.Event()
    if max_workers is None:
        max_workers = int(os.getenv("BATCH_MAX_WORKERS", _DEFAULT_MAX_WORKERS))
    max_workers = max(1, min(max_workers, len(names)))

    # Units observe ``stop``; it mirrors ``cancel`` and is also raised when we
    # bail out on an error, without touching the caller's event.
    stop = threading.Event()
    slots: list[PackageRecord | None] = [None] * len(names)
    executor = concurrent.futures.ThreadPoolExecutor(
        max_workers=max_workers,
        thread_name_prefix="resolve",
    )
    futures = {
        executor.submit(_resolve_one, aggregator, policy, name, stop): index
        for index, name in enumerate(names)
    }
    pending = set(futures)
    try:
        while pending:
            if cancel.is_set():
                raise Cancelled(
                    f"batch resolution cancelled with {len(pending)} of {len(names)} names pending"
                )
            done, pending = concurrent.futures.wait(
                pending,
                timeout=COLLECT_POLL_SECONDS,
                return_when=concurrent.futures.FIRST_COMPLETED,
            )
            for future in done:
                slots[futures[future]] = future.result()
    except BaseException:
        stop.set()
        executor.shutdown(wait=False, cancel_futures=True)
        raise
    executor.shutdown(wait=True)

    resolved = [record for record in slots if record is not None]
    LOGGER.info(
        "Batch resolve: requested=%s found=%s placeholders=%s",
        len(names),
        sum(1 for record in resolved if record.repository != UNKNOWN_REPOSITORY),
        sum(1 for record in resolved if record.repository == UNKNOWN_REPOSITORY),
    )
    return resolved


def _resolve_one(
    aggregator: Aggregator,
    policy: MergePolicy,
    name: str,
    cancel: threading.Event,
) -> PackageRecord:
    result = aggregator.search_all(Query.exact_name(name), cancel=cancel)
    if result.cancelled:
        raise Cancelled(f"resolution of {name} cancelled")
    if result.failures:
        LOGGER.debug("Batch resolve: name=%s partial failures=%s", name, result.failures)

    best = policy.choose(name, result.records)
    if best is None:
        LOGGER.info("Batch resolve: no source has %s, using placeholder", name)
        return PackageRecord.placeholder(name)
    return best
