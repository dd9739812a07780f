"""Typed error model with stable, machine-readable error codes."""

from __future__ import annotations

import shlex
from collections.abc import Mapping, Sequence
from enum import StrEnum
from pathlib import Path

OUTPUT_TAIL_LINES = 20


class ErrorCode(StrEnum):
    """Stable error identifiers used across API surfaces."""

    PARSE = "E_PARSE"
    VALIDATION = "E_VALIDATION"
    FETCH = "E_FETCH"
    INTEGRITY = "E_INTEGRITY"
    TOOL = "E_TOOL"
    PATCH = "E_PATCH"
    MANIFEST = "E_MANIFEST"
    FORMULA = "E_FORMULA"
    POLICY = "E_POLICY"


class SrcBuildError(Exception):
    """Base error class that carries code, optional hint, and context."""

    code: str
    hint: str | None
    context: Mapping[str, str]

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code.value
        self.hint = hint
        self.context = dict(context or {})

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        if self.context:
            for k, v in self.context.items():
                if v:
                    parts.append(f"  {k}: {v}")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": self.code,
            "message": str(self),
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class ParseError(SrcBuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.PARSE, hint=hint, context=context)


class ValidationError(SrcBuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.VALIDATION, hint=hint, context=context)


class FetchError(SrcBuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.FETCH, hint=hint, context=context)


class IntegrityError(SrcBuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.INTEGRITY, hint=hint, context=context)


class ToolInvocationError(SrcBuildError):
    """An external tool exited non-zero.

    Carries the failing command, its exit code and the captured (combined)
    output. ``str()`` shows the tail of the output followed by the command,
    which is usually all that is needed to see why a configure or make died.
    """

    def __init__(
        self,
        message: str,
        *,
        command: Sequence[str],
        exit_code: int,
        output: str = "",
        stage: str | None = None,
        build_dir: Path | None = None,
        hint: str | None = None,
        code: ErrorCode = ErrorCode.TOOL,
    ) -> None:
        context = {
            "stage": stage or "",
            "build_dir": str(build_dir) if build_dir is not None else "",
            "command": shlex.join(command),
            "exit_code": str(exit_code),
        }
        super().__init__(message, code=code, hint=hint, context=context)
        self.command = tuple(command)
        self.exit_code = exit_code
        self.output = output
        self.stage = stage
        self.build_dir = build_dir

    def output_tail(self, lines: int = OUTPUT_TAIL_LINES) -> str:
        return "\n".join(self.output.splitlines()[-lines:]).strip()

    def __str__(self) -> str:
        tail = self.output_tail()
        summary = super().__str__()
        if not tail:
            return summary
        return f"{tail}\n{summary}"


class PatchError(ToolInvocationError):
    def __init__(
        self,
        message: str,
        *,
        command: Sequence[str],
        exit_code: int,
        output: str = "",
        build_dir: Path | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(
            message,
            command=command,
            exit_code=exit_code,
            output=output,
            stage="patch",
            build_dir=build_dir,
            hint=hint,
            code=ErrorCode.PATCH,
        )


class ManifestError(SrcBuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.MANIFEST, hint=hint, context=context)


class FormulaError(SrcBuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.FORMULA, hint=hint, context=context)


class PolicyError(SrcBuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.POLICY, hint=hint, context=context)


__all__ = [
    "ErrorCode",
    "FetchError",
    "FormulaError",
    "IntegrityError",
    "ManifestError",
    "ParseError",
    "PatchError",
    "PolicyError",
    "SrcBuildError",
    "ToolInvocationError",
    "ValidationError",
]
