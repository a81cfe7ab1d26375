"""Diff installed packages against sync repositories and the remote source."""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from typing import Callable, Sequence

from errors import Cancelled, PackageSourceError, SourceUnavailable
from merge_policy import pick_newest
from models import PackageRecord, SourceKind, UpdateRecord
from sources import PackageSources
from vercmp import vercmp

LOGGER = logging.getLogger(__name__)


def compute_updates(
    sources: PackageSources,
    cancel: threading.Event | None = None,
) -> list[UpdateRecord]:
    """Return pending updates for every installed package, sorted by name.

    Installed packages are split into those some sync repository carries and
    those none does. The first group is compared with the newest sync version;
    the second is looked up on the remote source one package at a time. Both
    groups run concurrently and share one lock-guarded accumulator. A remote
    lookup failure only skips that package.

    Raises:
        SourceUnavailable: the local database is not available.
        Cancelled: ``cancel`` fired before both branches finished.
    """
    if sources.local is None:
        raise SourceUnavailable(SourceKind.LOCAL.value, "cannot compute updates without the local database")
    cancel = cancel or threading.Event()

    sync_backed: list[tuple[PackageRecord, list[PackageRecord]]] = []
    foreign: list[PackageRecord] = []
    for installed in sources.local.installed():
        candidates = [
            record
            for db in sources.sync
            if (record := db.lookup_exact(installed.name)) is not None
        ]
        if candidates:
            sync_backed.append((installed, candidates))
        else:
            foreign.append(installed)

    LOGGER.info(
        "Update check: installed=%s sync_backed=%s foreign=%s",
        len(sync_backed) + len(foreign),
        len(sync_backed),
        len(foreign),
    )

    updates: list[UpdateRecord] = []
    lock = threading.Lock()

    def append(update: UpdateRecord) -> None:
        with lock:
            updates.append(update)

    with concurrent.futures.ThreadPoolExecutor(max_workers=2, thread_name_prefix="updates") as executor:
        branches = [executor.submit(_diff_sync, sync_backed, sources.repositories, cancel, append)]
        if sources.remote is not None:
            branches.append(executor.submit(_diff_remote, foreign, sources, cancel, append))
        else:
            LOGGER.info("Update check: remote source disabled, skipping %s foreign packages", len(foreign))
        for branch in branches:
            branch.result()

    if cancel.is_set():
        raise Cancelled("update check cancelled")

    updates.sort(key=lambda update: update.name)
    LOGGER.info("Update check complete: updates=%s", len(updates))
    return updates


def _diff_sync(
    sync_backed: Sequence[tuple[PackageRecord, list[PackageRecord]]],
    repository_order: Sequence[str],
    cancel: threading.Event,
    append: Callable[[UpdateRecord], None],
) -> None:
    for installed, candidates in sync_backed:
        if cancel.is_set():
            return
        newest = pick_newest(candidates, repository_order)
        if newest is None or vercmp(newest.version, installed.version) <= 0:
            continue
        append(
            UpdateRecord(
                name=installed.name,
                old_version=installed.version,
                new_version=newest.version,
                source=SourceKind.SYNC,
                repository=newest.repository,
                download_size=newest.download_size,
            )
        )


def _diff_remote(
    foreign: Sequence[PackageRecord],
    sources: PackageSources,
    cancel: threading.Event,
    append: Callable[[UpdateRecord], None],
) -> None:
    remote = sources.remote
    skipped = 0
    for installed in foreign:
        if cancel.is_set():
            return
        try:
            version = remote.lookup_exact_version(installed.name)
        except PackageSourceError as exc:
            skipped += 1
            LOGGER.warning("Remote update check failed for %s, skipping: %s", installed.name, exc)
            continue

        if version is None or vercmp(version, installed.version) == 0:
            continue
        append(
            UpdateRecord(
                name=installed.name,
                old_version=installed.version,
                new_version=version,
                source=SourceKind.REMOTE,
                repository=remote.repository,
                download_size=0,
            )
        )

    if skipped:
        LOGGER.info("Remote update check: skipped=%s of %s", skipped, len(foreign))
