"""Traced filesystem operations.

Every mutation the pipeline makes to the working tree goes through one of
these methods so it shows up in the structured log (and on stderr in verbose
mode) as the equivalent shell command.
"""

from __future__ import annotations

import os
import shlex
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from srcbuild.observability import StructuredLogger


@dataclass(slots=True)
class FileOps:
    logger: StructuredLogger = field(default_factory=StructuredLogger)

    def makedirs(self, path: Path) -> Path:
        if not path.is_dir():
            self._trace("mkdir", "-p", str(path))
            path.mkdir(parents=True, exist_ok=True)
        return path

    def remove_tree(self, path: Path) -> None:
        """``rm -rf``: remove *path* whether it is a directory, a file or absent."""
        if not path.exists() and not path.is_symlink():
            return
        self._trace("rm", "-rf", str(path))
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()

    def remove_file(self, path: Path) -> bool:
        if not path.exists():
            return False
        self._trace("rm", "-f", str(path))
        path.unlink()
        return True

    def move(self, src: Path, dest: Path) -> Path:
        self._trace("mv", str(src), str(dest))
        os.replace(src, dest)
        return dest

    def copy(self, src: Path, dest: Path) -> Path:
        target = dest / src.name if dest.is_dir() else dest
        if target.exists() and target.samefile(src):
            return target
        self._trace("cp", str(src), str(target))
        shutil.copy2(src, target)
        return target

    def link(self, src: Path, dest: Path) -> Path:
        """Hard-link *src* into *dest* (a directory or a file path).

        An existing target is replaced. Falls back to a copy when the two
        paths are on different filesystems or hard links are unsupported.
        """
        target = dest / src.name if dest.is_dir() else dest
        if target.exists():
            if target.samefile(src):
                return target
            target.unlink()
        self._trace("ln", str(src), str(target))
        try:
            os.link(src, target)
        except OSError:
            self._trace("cp", str(src), str(target))
            shutil.copy2(src, target)
        return target

    def chmod(self, path: Path, mode: int, *, recursive: bool = False) -> None:
        self._trace("chmod", *(["-R"] if recursive else []), f"{mode:04o}", str(path))
        for target in _walk(path, recursive=recursive):
            os.chmod(target, mode)

    def chown(
        self,
        path: Path,
        user: str | int | None,
        group: str | int | None = None,
        *,
        recursive: bool = False,
    ) -> None:
        owner = "".join(part for part in (_opt(user), _opt(group, ":")) if part)
        self._trace("chown", *(["-R"] if recursive else []), owner, str(path))
        for target in _walk(path, recursive=recursive):
            shutil.chown(target, user=user, group=group)

    def write_atomic(self, path: Path, data: bytes | str) -> Path:
        """Write *data* to a temporary sibling, then rename it over *path*."""
        temp_path = path.with_name(f".{path.name}.tmp")
        payload = data.encode("utf-8") if isinstance(data, str) else data
        temp_path.write_bytes(payload)
        os.replace(temp_path, path)
        return path

    def _trace(self, *argv: str) -> None:
        self.logger.log(
            operation="fsop",
            package=None,
            stage=None,
            message=shlex.join(argv),
            level="debug",
        )


def _walk(path: Path, *, recursive: bool) -> list[Path]:
    if not recursive or not path.is_dir():
        return [path]
    return [path, *sorted(path.rglob("*"))]


def _opt(value: str | int | None, prefix: str = "") -> str:
    return "" if value is None else f"{prefix}{value}"
