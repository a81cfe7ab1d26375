"""Readers for pacman's on-disk package databases.

The local database is a directory with one ``<name>-<version>/desc`` entry per
installed package. A sync database is a tar archive (``<repo>.db``) holding the
same ``desc`` entries for every package the repository offers. Both are parsed
once and kept in memory for the lifetime of the process.
"""

from __future__ import annotations

import configparser
import logging
import re
import tarfile
import threading
import zlib
from datetime import UTC, datetime
from pathlib import Path
from typing import Callable, Iterable, Iterator

from errors import SourceUnavailable
from models import LOCAL_REPOSITORY, PackageRecord, Query, SourceKind

LOGGER = logging.getLogger(__name__)

DEFAULT_DB_PATH = "/var/lib/pacman"
DEFAULT_CONF_PATH = "/etc/pacman.conf"

# Dependency entries look like "glibc>=2.38"; only the name is kept.
_DEPEND_NAME_RE = re.compile(r"^([^<>=:\s]+)")


def parse_desc(text: str) -> dict[str, list[str]]:
    """Parse a ``desc`` file into ``{FIELD: [values...]}``."""
    fields: dict[str, list[str]] = {}
    key: str | None = None
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            key = None
            continue
        if key is None and len(line) > 2 and line.startswith("%") and line.endswith("%"):
            key = line[1:-1]
            fields[key] = []
            continue
        if key is not None:
            fields[key].append(line)
    return fields


def record_from_desc(
    fields: dict[str, list[str]],
    source: SourceKind,
    repository: str,
) -> PackageRecord | None:
    """Map parsed ``desc`` fields to a PackageRecord; None when NAME is missing."""
    name = _first(fields, "NAME")
    if not name:
        return None

    depends = []
    for entry in fields.get("DEPENDS", []):
        match = _DEPEND_NAME_RE.match(entry)
        if match:
            depends.append(match.group(1))

    return PackageRecord(
        name=name,
        version=_first(fields, "VERSION"),
        description=_first(fields, "DESC"),
        source=source,
        repository=repository,
        maintainer=_first(fields, "PACKAGER"),
        upstream_url=_first(fields, "URL"),
        depends=tuple(depends),
        last_modified=_parse_timestamp(_first(fields, "BUILDDATE")),
        download_size=_parse_int(_first(fields, "CSIZE")),
    )


def read_repositories(conf_path: str | Path = DEFAULT_CONF_PATH) -> list[str]:
    """Return the repository sections of ``pacman.conf`` in file order."""
    parser = configparser.ConfigParser(
        allow_no_value=True,
        strict=False,
        interpolation=None,
        delimiters=("=",),
        comment_prefixes=("#",),
    )
    try:
        with open(conf_path, encoding="utf-8") as fh:
            parser.read_file(fh)
    except (OSError, configparser.Error) as exc:
        raise SourceUnavailable("pacman.conf", f"cannot read {conf_path}: {exc}") from exc
    return [section for section in parser.sections() if section != "options"]


class _DescDatabase:
    """Common read-only view over a set of parsed ``desc`` records."""

    source_tag: str

    def __init__(self) -> None:
        self._records: dict[str, PackageRecord] | None = None
        self._lock = threading.Lock()

    def _load(self) -> Iterable[PackageRecord]:
        raise NotImplementedError

    def _cache(self) -> dict[str, PackageRecord]:
        with self._lock:
            if self._records is None:
                self._records = {record.name: record for record in self._load()}
                LOGGER.debug("Loaded %s packages from %s", len(self._records), self.source_tag)
            return self._records

    def open(self) -> None:
        """Parse the database now so that load failures surface at startup."""
        self._cache()

    def reload(self) -> None:
        with self._lock:
            self._records = None
        self._cache()

    def packages(self) -> Iterator[PackageRecord]:
        yield from self._cache().values()

    def for_each(self, visit: Callable[[PackageRecord], bool | None]) -> None:
        """Call ``visit`` for every package until it returns False."""
        for record in self.packages():
            if visit(record) is False:
                return

    def lookup_exact(self, name: str) -> PackageRecord | None:
        records = self._cache()
        record = records.get(name)
        if record is not None:
            return record
        lowered = name.lower()
        for candidate in records.values():
            if candidate.name.lower() == lowered:
                return candidate
        return None

    def search(self, query: Query) -> Iterator[PackageRecord]:
        if query.exact:
            record = self.lookup_exact(query.term)
            if record is not None:
                yield record
            return
        for record in self.packages():
            if query.matches(record.name):
                yield record


class LocalDatabase(_DescDatabase):
    """The installed-package database (``<dbpath>/local``)."""

    source_tag = SourceKind.LOCAL.value

    def __init__(self, db_path: str | Path = DEFAULT_DB_PATH) -> None:
        super().__init__()
        self.path = Path(db_path) / "local"

    def _load(self) -> Iterator[PackageRecord]:
        if not self.path.is_dir():
            raise SourceUnavailable(self.source_tag, f"local database not found at {self.path}")
        try:
            entries = sorted(self.path.iterdir())
        except OSError as exc:
            raise SourceUnavailable(self.source_tag, f"cannot list {self.path}: {exc}") from exc

        for entry in entries:
            desc_path = entry / "desc"
            if not desc_path.is_file():
                continue
            try:
                text = desc_path.read_text(encoding="utf-8", errors="replace")
            except OSError as exc:
                LOGGER.warning("Skipping unreadable local entry %s: %s", desc_path, exc)
                continue
            record = record_from_desc(parse_desc(text), SourceKind.LOCAL, LOCAL_REPOSITORY)
            if record is not None:
                yield record

    def installed(self) -> Iterator[PackageRecord]:
        return self.packages()

    def for_each_installed(self, visit: Callable[[PackageRecord], bool | None]) -> None:
        self.for_each(visit)

    def is_installed(self, name: str) -> bool:
        return self.lookup_exact(name) is not None


class SyncDatabase(_DescDatabase):
    """One synchronized repository mirror (``<dbpath>/sync/<repo>.db``)."""

    def __init__(self, repository: str, db_path: str | Path = DEFAULT_DB_PATH) -> None:
        super().__init__()
        self.repository = repository
        self.path = Path(db_path) / "sync" / f"{repository}.db"
        self.source_tag = f"{SourceKind.SYNC.value}:{repository}"

    def repository_name(self) -> str:
        return self.repository

    def _load(self) -> list[PackageRecord]:
        if not self.path.is_file():
            raise SourceUnavailable(self.source_tag, f"sync database not found at {self.path}")

        records: list[PackageRecord] = []
        try:
            with tarfile.open(self.path, mode="r:*") as archive:
                for member in archive:
                    if not member.isfile() or not member.name.endswith("/desc"):
                        continue
                    fh = archive.extractfile(member)
                    if fh is None:
                        continue
                    text = fh.read().decode("utf-8", errors="replace")
                    record = record_from_desc(parse_desc(text), SourceKind.SYNC, self.repository)
                    if record is not None:
                        records.append(record)
        except (OSError, EOFError, zlib.error, tarfile.TarError) as exc:
            raise SourceUnavailable(self.source_tag, f"cannot read {self.path}: {exc}") from exc
        return records


def _first(fields: dict[str, list[str]], key: str) -> str:
    values = fields.get(key)
    return values[0] if values else ""


def _parse_int(raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        return 0


def _parse_timestamp(raw: str) -> datetime | None:
    if not raw:
        return None
    try:
        return datetime.fromtimestamp(int(raw), UTC)
    except (ValueError, OverflowError, OSError):
        return None
