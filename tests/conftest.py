"""Fixtures that lay out real pacman database trees under tmp_path."""

from __future__ import annotations

import io
import tarfile
from pathlib import Path

import pytest


def desc_text(
    name: str,
    version: str,
    description: str = "",
    url: str = "",
    packager: str = "",
    builddate: int | None = None,
    depends: tuple[str, ...] = (),
    csize: int | None = None,
) -> str:
    """Render a pacman ``desc`` file."""
    blocks = [("NAME", [name]), ("VERSION", [version])]
    if description:
        blocks.append(("DESC", [description]))
    if url:
        blocks.append(("URL", [url]))
    if packager:
        blocks.append(("PACKAGER", [packager]))
    if builddate is not None:
        blocks.append(("BUILDDATE", [str(builddate)]))
    if csize is not None:
        blocks.append(("CSIZE", [str(csize)]))
    if depends:
        blocks.append(("DEPENDS", list(depends)))
    return "".join(f"%{key}%\n" + "".join(f"{v}\n" for v in values) + "\n" for key, values in blocks)


class PacmanTree:
    """Builds ``local/`` entries and ``sync/<repo>.db`` archives in one directory."""

    def __init__(self, root: Path) -> None:
        self.root = root
        (root / "local").mkdir(parents=True, exist_ok=True)
        (root / "sync").mkdir(parents=True, exist_ok=True)

    def install(self, name: str, version: str, **fields) -> None:
        entry = self.root / "local" / f"{name}-{version}"
        entry.mkdir(parents=True)
        (entry / "desc").write_text(desc_text(name, version, **fields), encoding="utf-8")

    def repo(self, repository: str, packages: list[dict]) -> Path:
        path = self.root / "sync" / f"{repository}.db"
        with tarfile.open(path, "w:gz") as archive:
            for package in packages:
                fields = dict(package)
                name = fields.pop("name")
                version = fields.pop("version")
                data = desc_text(name, version, **fields).encode("utf-8")
                info = tarfile.TarInfo(f"{name}-{version}/desc")
                info.size = len(data)
                archive.addfile(info, io.BytesIO(data))
        return path

    def broken_repo(self, repository: str) -> Path:
        path = self.root / "sync" / f"{repository}.db"
        path.write_bytes(b"this is not a tar archive")
        return path


@pytest.fixture
def pacman_tree(tmp_path: Path) -> PacmanTree:
    return PacmanTree(tmp_path / "pacman")
