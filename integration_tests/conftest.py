"""Shared helpers for integration tests that drive real shell and make."""

from __future__ import annotations

import io
import shutil
import tarfile
from collections.abc import Mapping
from pathlib import Path

import pytest

REQUIRED_TOOLS = ("sh", "make", "patch")


def snapshot_tree(root: Path) -> dict[str, str]:
    """Capture every file under *root* as ``{relative_path: content}``."""
    tree: dict[str, str] = {}
    for path in sorted(root.rglob("*")):
        if path.is_file():
            try:
                tree[str(path.relative_to(root))] = path.read_text(encoding="utf-8")
            except UnicodeDecodeError:
                tree[str(path.relative_to(root))] = "<binary>"
    return tree


def write_source_tarball(path: Path, top: str, files: Mapping[str, str]) -> Path:
    """Write ``<top>/<name>`` members; ``configure`` is made executable."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w:gz") as archive:
        for name, content in files.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(f"{top}/{name}")
            info.size = len(data)
            info.mode = 0o755 if name == "configure" else 0o644
            archive.addfile(info, io.BytesIO(data))
    return path


@pytest.fixture(autouse=True)
def require_build_tools() -> None:
    missing = [tool for tool in REQUIRED_TOOLS if shutil.which(tool) is None]
    if missing:
        pytest.skip(f"missing build tools: {', '.join(missing)}")


@pytest.fixture
def source_tarball():
    return write_source_tarball


@pytest.fixture
def snapshot():
    return snapshot_tree
