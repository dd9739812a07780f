"""Typed helpers for the persisted working-tree layout.

All state lives under a single root::

    <root>/archive/<archive name>            downloaded tarballs, untouched
    <root>/build/<name>-<version>/           unpacked and patched source
    <root>/build/<name>-<version>.configured configure hash marker
    <root>/build/<name>-<version>.installed  install sentinel

Relative patch paths are resolved against ``patch_root`` (the root itself
unless overridden).
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

ARCHIVE_DIRNAME = "archive"
BUILD_DIRNAME = "build"


@dataclass(frozen=True, slots=True)
class Layout:
    root: Path = Path(".")
    patch_root: Path | None = None

    @classmethod
    def at(cls, root: str | Path, *, patch_root: str | Path | None = None) -> Layout:
        return cls(
            root=Path(root),
            patch_root=Path(patch_root) if patch_root is not None else None,
        )

    @property
    def archive_dir(self) -> Path:
        return self.root / ARCHIVE_DIRNAME

    @property
    def build_root(self) -> Path:
        return self.root / BUILD_DIRNAME

    def archive_path(self, archive_name: str) -> Path:
        return self.archive_dir / archive_name

    def build_dir(self, name: str, version: str) -> Path:
        return self.build_root / f"{name}-{version}"

    def resolve_patch(self, patch: str | Path) -> Path:
        path = Path(patch)
        if not path.is_absolute():
            path = (self.patch_root or self.root) / path
        return path.absolute()


def sibling(path: Path, suffix: str) -> Path:
    """Return ``<path><suffix>``, e.g. ``build/foo-1.0.configured``."""
    return path.with_name(path.name + suffix)
