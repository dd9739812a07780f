"""Accumulated environment overlay for tool invocations."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

# Prefix-relative subpaths exposed to later packages, keyed by variable.
PREFIX_SEARCH_PATHS: tuple[tuple[str, str], ...] = (
    ("PATH", "bin"),
    ("PKG_CONFIG_PATH", "lib/pkgconfig"),
    ("LIBRARY_PATH", "lib"),
    ("CPATH", "include"),
)


@dataclass(frozen=True, slots=True)
class BuildEnvironment:
    """Path-list prepends layered over a base environment.

    Nothing here touches ``os.environ``; :meth:`apply` produces the complete
    mapping handed to each subprocess.
    """

    prepends: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    @classmethod
    def for_prefix(cls, prefix: str | Path) -> BuildEnvironment:
        root = Path(prefix).absolute()
        env = cls()
        for key, subpath in PREFIX_SEARCH_PATHS:
            env = env.prepend(key, root / subpath)
        return env

    def prepend(self, key: str, value: str | Path) -> BuildEnvironment:
        """Return a new overlay with *value* ahead of everything already queued for *key*."""
        merged = dict(self.prepends)
        merged[key] = (str(value), *merged.get(key, ()))
        return BuildEnvironment(prepends=merged)

    def apply(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        environ = dict(os.environ if base is None else base)
        for key, values in self.prepends.items():
            existing = environ.get(key, "")
            parts = [*values, existing] if existing else list(values)
            environ[key] = os.pathsep.join(parts)
        return environ
