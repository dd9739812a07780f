"""Shared test fixtures."""

from __future__ import annotations

import io
import tarfile
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

import pytest

from srcbuild.errors import ToolInvocationError
from srcbuild.runner import ToolResult

EXECUTABLE_NAMES = frozenset({"configure"})


@dataclass(frozen=True, slots=True)
class Call:
    argv: tuple[str, ...]
    cwd: Path | None
    env: Mapping[str, str] | None
    stage: str | None


@dataclass(slots=True)
class RecordingRunner:
    """Stands in for real tools: records every call and fails on request."""

    calls: list[Call] = field(default_factory=list)
    failures: list[tuple[str, str | None, int]] = field(default_factory=list)
    query_returncode: int = 1

    def fail_when(self, stage: str, needle: str | None = None, *, code: int = 2) -> None:
        self.failures.append((stage, needle, code))

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        stage: str | None = None,
        check: bool = True,
    ) -> ToolResult:
        command = tuple(str(arg) for arg in argv)
        self.calls.append(Call(argv=command, cwd=cwd, env=env, stage=stage))
        returncode = self.query_returncode if stage == "make-query" else 0
        for fail_stage, needle, code in self.failures:
            haystack = " ".join(command) + f" {cwd}"
            if fail_stage == stage and (needle is None or needle in haystack):
                returncode = code
        output = f"{stage} output line\n" if returncode == 0 else f"{stage}: error: it broke\n"
        if check and returncode != 0:
            raise ToolInvocationError(
                f"Command {command[0]!r} returned {returncode}.",
                command=command,
                exit_code=returncode,
                output=output,
                stage=stage,
                build_dir=cwd,
            )
        return ToolResult(command=command, returncode=returncode, output=output)

    @property
    def stages(self) -> list[str | None]:
        return [call.stage for call in self.calls]

    def reset(self) -> None:
        self.calls.clear()
        self.failures.clear()


def write_tarball(path: Path, files: Mapping[str, str]) -> Path:
    """Write a gzip tarball holding *files* (``{member path: text}``)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w:gz") as archive:
        for name, content in files.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o755 if PurePosixPath(name).name in EXECUTABLE_NAMES else 0o644
            archive.addfile(info, io.BytesIO(data))
    return path


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def make_tarball() -> Callable[[Path, Mapping[str, str]], Path]:
    return write_tarball
