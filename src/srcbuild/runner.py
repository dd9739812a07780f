"""External tool execution."""

from __future__ import annotations

import shlex
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from srcbuild.errors import ToolInvocationError
from srcbuild.observability import StructuredLogger


@dataclass(frozen=True, slots=True)
class ToolResult:
    command: tuple[str, ...]
    returncode: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ToolRunner(Protocol):
    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        stage: str | None = None,
        check: bool = True,
    ) -> ToolResult:
        """Run *argv*; raise ``ToolInvocationError`` on failure when *check* is set."""


@dataclass(slots=True)
class SubprocessRunner:
    """Runs tools as child processes with stdout and stderr merged.

    ``env`` is passed through as the child's complete environment; ``None``
    inherits the current process environment.
    """

    logger: StructuredLogger = field(default_factory=StructuredLogger)

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
        self.logger.log(
            operation="run",
            package=None,
            stage=stage,
            message=shlex.join(command),
            level="debug",
            extra={"cwd": str(cwd)} if cwd is not None else None,
        )
        try:
            completed = subprocess.run(
                command,
                cwd=cwd,
                env=dict(env) if env is not None else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                check=False,
            )
        except OSError as exc:
            raise ToolInvocationError(
                f"Failed to start {command[0]}.",
                command=command,
                exit_code=127,
                output=str(exc),
                stage=stage,
                build_dir=cwd,
                hint="Ensure the tool is installed and on PATH.",
            ) from exc

        result = ToolResult(command=command, returncode=completed.returncode, output=completed.stdout)
        if check and not result.ok:
            raise ToolInvocationError(
                f"Command {command[0]!r} returned {result.returncode}.",
                command=command,
                exit_code=result.returncode,
                output=result.output,
                stage=stage,
                build_dir=cwd,
            )
        return result
