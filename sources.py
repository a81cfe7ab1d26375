"""Process-wide package source handles, opened once and released on exit."""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Sequence

from aggregator import Aggregator, SourceReader
from aur_client import AurClient
from errors import SourceUnavailable
from merge_policy import SourcePriorityPolicy
from models import SourceFailure
from pacman_db import DEFAULT_CONF_PATH, DEFAULT_DB_PATH, LocalDatabase, SyncDatabase, read_repositories

LOGGER = logging.getLogger(__name__)

_DEFAULT_REPOSITORIES = ("core", "extra")


@dataclass
class PackageSources:
    """Every live source handle, plus the sources that failed to register."""

    local: LocalDatabase | None
    sync: list[SyncDatabase] = field(default_factory=list)
    remote: AurClient | None = None
    registration_failures: list[SourceFailure] = field(default_factory=list)

    @property
    def repositories(self) -> list[str]:
        return [db.repository for db in self.sync]

    def readers(self) -> list[SourceReader]:
        readers: list[SourceReader] = []
        if self.local is not None:
            readers.append(self.local)
        readers.extend(self.sync)
        if self.remote is not None:
            readers.append(self.remote)
        return readers

    def aggregator(self) -> Aggregator:
        return Aggregator(self.readers(), registration_failures=self.registration_failures)

    def merge_policy(self) -> SourcePriorityPolicy:
        return SourcePriorityPolicy(self.repositories)

    def close(self) -> None:
        if self.remote is not None:
            self.remote.close()


def configured_repositories(conf_path: str | Path | None = None) -> list[str]:
    """Repository names from PACMAN_REPOSITORIES, else pacman.conf, else core/extra."""
    override = os.getenv("PACMAN_REPOSITORIES", "")
    if override.strip():
        return [name.strip() for name in override.split(",") if name.strip()]

    conf_path = conf_path or os.getenv("PACMAN_CONF", DEFAULT_CONF_PATH)
    try:
        repositories = read_repositories(conf_path)
    except SourceUnavailable as exc:
        LOGGER.warning("Falling back to default repositories: %s", exc)
        return list(_DEFAULT_REPOSITORIES)
    return repositories or list(_DEFAULT_REPOSITORIES)


@contextmanager
def open_sources(
    db_path: str | Path | None = None,
    repositories: Sequence[str] | None = None,
    remote: AurClient | bool | None = None,
) -> Iterator[PackageSources]:
    """Open the local, sync and remote sources for the lifetime of the block.

    A source that cannot be opened is logged and recorded in
    ``registration_failures``; the others are still usable.

    Args:
        db_path: pacman database directory. Reads PACMAN_DB_PATH if not supplied.
        repositories: Sync repositories to register, in priority order.
            Defaults to ``configured_repositories()``.
        remote: An AurClient to use, False to disable the remote source, or
            None to build one unless AUR_ENABLED is "0".
    """
    db_path = db_path or os.getenv("PACMAN_DB_PATH", DEFAULT_DB_PATH)
    if repositories is None:
        repositories = configured_repositories()

    failures: list[SourceFailure] = []

    local: LocalDatabase | None = LocalDatabase(db_path)
    try:
        local.open()
    except SourceUnavailable as exc:
        LOGGER.warning("Local database unavailable: %s", exc)
        failures.append(SourceFailure.from_exception(local.source_tag, exc))
        local = None

    sync: list[SyncDatabase] = []
    for repository in repositories:
        db = SyncDatabase(repository, db_path)
        try:
            db.open()
        except SourceUnavailable as exc:
            LOGGER.warning("Sync repository %s not registered: %s", repository, exc)
            failures.append(SourceFailure.from_exception(db.source_tag, exc))
            continue
        sync.append(db)

    if remote is None:
        remote = os.getenv("AUR_ENABLED", "1") != "0"
    client: AurClient | None
    if isinstance(remote, AurClient):
        client = remote
    else:
        client = AurClient() if remote else None

    sources = PackageSources(local=local, sync=sync, remote=client, registration_failures=failures)
    LOGGER.info(
        "Opened sources: local=%s sync=%s remote=%s failed=%s",
        local is not None,
        sources.repositories,
        client is not None,
        len(failures),
    )
    try:
        yield sources
    finally:
        sources.close()
