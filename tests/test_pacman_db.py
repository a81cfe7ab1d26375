from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from errors import SourceUnavailable
from models import PackageRecord, Query, SourceKind
from pacman_db import LocalDatabase, SyncDatabase, parse_desc, read_repositories, record_from_desc


def test_parse_desc_reads_multi_value_fields() -> None:
    text = (
        "%NAME%\nfirefox\n\n"
        "%VERSION%\n125.0-1\n\n"
        "%DEPENDS%\ngtk3\nlibxt>=1.2\nnss: optional thing\n\n"
    )

    fields = parse_desc(text)

    assert fields["NAME"] == ["firefox"]
    assert fields["VERSION"] == ["125.0-1"]
    assert fields["DEPENDS"] == ["gtk3", "libxt>=1.2", "nss: optional thing"]


def test_record_from_desc_strips_dependency_constraints() -> None:
    fields = parse_desc(
        "%NAME%\nfoo\n\n%VERSION%\n1.0-1\n\n%BUILDDATE%\n1700000000\n\n"
        "%CSIZE%\n2048\n\n%DEPENDS%\nglibc>=2.38\nzlib\n\n"
    )

    record = record_from_desc(fields, SourceKind.SYNC, "core")

    assert record is not None
    assert record.depends == ("glibc", "zlib")
    assert record.download_size == 2048
    assert record.last_modified == datetime.fromtimestamp(1700000000, UTC)
    assert record.source_tag == "Sync:core"


def test_record_from_desc_without_name_is_dropped() -> None:
    assert record_from_desc({"VERSION": ["1.0"]}, SourceKind.LOCAL, "local") is None


def test_local_database_lists_and_looks_up_installed(pacman_tree) -> None:
    pacman_tree.install("foo", "1.0-1", description="Foo tool", packager="Jane <j@example.com>")
    pacman_tree.install("libfoo", "2.3-1")

    db = LocalDatabase(pacman_tree.root)

    names = sorted(record.name for record in db.installed())
    assert names == ["foo", "libfoo"]

    foo = db.lookup_exact("FOO")
    assert foo is not None
    assert foo.name == "foo"
    assert foo.maintainer == "Jane <j@example.com>"
    assert foo.source is SourceKind.LOCAL
    assert db.is_installed("foo") is True
    assert db.is_installed("bar") is False


def test_local_database_substring_search_is_case_insensitive(pacman_tree) -> None:
    pacman_tree.install("Foo-Bar", "1.0-1")
    pacman_tree.install("baz", "1.0-1")

    db = LocalDatabase(pacman_tree.root)

    assert [r.name for r in db.search(Query.substring("foo"))] == ["Foo-Bar"]
    assert [r.name for r in db.search(Query.exact_name("foo"))] == []


def test_for_each_installed_stops_when_visitor_returns_false(pacman_tree) -> None:
    for name in ("a", "b", "c"):
        pacman_tree.install(name, "1.0-1")
    db = LocalDatabase(pacman_tree.root)
    seen: list[PackageRecord] = []

    def visit(record: PackageRecord) -> bool:
        seen.append(record)
        return len(seen) < 2

    db.for_each_installed(visit)

    assert len(seen) == 2


def test_local_database_missing_directory_is_unavailable(tmp_path: Path) -> None:
    db = LocalDatabase(tmp_path / "nowhere")

    with pytest.raises(SourceUnavailable):
        db.open()


def test_sync_database_reads_archive(pacman_tree) -> None:
    pacman_tree.repo("core", [
        {"name": "foo", "version": "1.2-1", "csize": 4096, "url": "https://foo.example"},
        {"name": "bar", "version": "0.9-1"},
    ])

    db = SyncDatabase("core", pacman_tree.root)

    foo = db.lookup_exact("foo")
    assert foo is not None
    assert foo.version == "1.2-1"
    assert foo.download_size == 4096
    assert foo.upstream_url == "https://foo.example"
    assert foo.repository == "core"
    assert db.repository_name() == "core"
    assert db.source_tag == "Sync:core"


def test_sync_database_broken_archive_is_unavailable(pacman_tree) -> None:
    pacman_tree.broken_repo("extra")

    with pytest.raises(SourceUnavailable):
        SyncDatabase("extra", pacman_tree.root).open()


def test_sync_database_missing_archive_is_unavailable(pacman_tree) -> None:
    with pytest.raises(SourceUnavailable):
        SyncDatabase("multilib", pacman_tree.root).open()


def test_read_repositories_skips_options(tmp_path: Path) -> None:
    conf = tmp_path / "pacman.conf"
    conf.write_text(
        "[options]\n"
        "HoldPkg = pacman glibc\n"
        "Color\n"
        "#[testing]\n"
        "\n"
        "[core]\n"
        "Include = /etc/pacman.d/mirrorlist\n"
        "\n"
        "[extra]\n"
        "Include = /etc/pacman.d/mirrorlist\n"
        "Include = /etc/pacman.d/other\n",
        encoding="utf-8",
    )

    assert read_repositories(conf) == ["core", "extra"]


def test_read_repositories_missing_file(tmp_path: Path) -> None:
    with pytest.raises(SourceUnavailable):
        read_repositories(tmp_path / "absent.conf")
