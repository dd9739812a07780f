"""Recursive source fetch for a package and its required dependencies."""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from srcbuild.errors import FormulaError
from srcbuild.fetch import download
from srcbuild.fsops import FileOps
from srcbuild.models import archive_name_from_url
from srcbuild.observability import StructuredLogger
from srcbuild.policy import Policy

NON_REQUIRED_TAGS = frozenset({"optional", "recommended"})


class Dependency(Protocol):
    name: str

    @property
    def required(self) -> bool: ...

    def to_formula(self) -> Formula: ...


class Formula(Protocol):
    name: str

    def fetch(self) -> Path:
        """Return the path of the locally cached source archive."""

    def deps(self) -> Iterable[Dependency]: ...


class Formulary(Protocol):
    def find(self, name: str) -> Formula: ...


def fetch_sources(
    formulary: Formulary,
    names: Sequence[str],
    dest: str | Path,
    *,
    logger: StructuredLogger | None = None,
) -> list[Path]:
    """Copy the source archive of every named package and its required deps into *dest*.

    Dependencies are walked depth first. Each formula is visited once, so a
    dependency cycle terminates and a diamond dependency is copied once.
    """
    log = logger or StructuredLogger()
    fileops = FileOps(logger=log)
    dest_dir = fileops.makedirs(Path(dest))
    visited: set[str] = set()
    copied: list[Path] = []
    for name in names:
        _fetch_source_and_deps(
            formulary.find(name),
            dest_dir,
            visited=visited,
            copied=copied,
            fileops=fileops,
            logger=log,
        )
    return copied


def _fetch_source_and_deps(
    formula: Formula,
    dest: Path,
    *,
    visited: set[str],
    copied: list[Path],
    fileops: FileOps,
    logger: StructuredLogger,
) -> None:
    if formula.name in visited:
        return
    visited.add(formula.name)
    logger.log(
        operation="source",
        package=formula.name,
        stage="fetch",
        message=f"Fetching source for {formula.name}",
    )
    copied.append(fileops.copy(formula.fetch(), dest))
    for dep in formula.deps():
        if not dep.required:
            logger.log(
                operation="source",
                package=dep.name,
                stage="skip",
                message=f"Skipping non-required dependency {dep.name} of {formula.name}",
                level="debug",
            )
            continue
        _fetch_source_and_deps(
            dep.to_formula(),
            dest,
            visited=visited,
            copied=copied,
            fileops=fileops,
            logger=logger,
        )


# ── JSON index formulary ────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class IndexDependency:
    name: str
    tags: tuple[str, ...]
    formulary: IndexFormulary = field(repr=False, compare=False)

    @property
    def required(self) -> bool:
        return not NON_REQUIRED_TAGS.intersection(self.tags)

    def to_formula(self) -> IndexFormula:
        return self.formulary.find(self.name)


@dataclass(frozen=True, slots=True)
class IndexFormula:
    name: str
    url: str
    formulary: IndexFormulary = field(repr=False, compare=False)
    version: str | None = None
    sha256: str | None = None
    dependencies: tuple[tuple[str, tuple[str, ...]], ...] = ()

    @property
    def archive_name(self) -> str:
        return archive_name_from_url(self.url)

    def fetch(self) -> Path:
        return download(
            self.url,
            self.formulary.cache_dir / self.archive_name,
            sha256=self.sha256,
            policy=self.formulary.policy,
            logger=self.formulary.logger,
        )

    def deps(self) -> list[IndexDependency]:
        return [
            IndexDependency(name=name, tags=tags, formulary=self.formulary)
            for name, tags in self.dependencies
        ]


@dataclass(slots=True)
class IndexFormulary:
    """Formulae read from JSON index files.

    Each index looks like::

        {"formulae": {"gnutls": {"url": "...", "sha256": "...",
                                 "dependencies": [{"name": "nettle"},
                                                  {"name": "p11-kit", "tags": ["optional"]}]}}}

    Indices are searched in the order given; the first one that defines a
    name wins.
    """

    entries: Sequence[dict[str, dict[str, Any]]]
    cache_dir: Path
    policy: Policy = field(default_factory=Policy)
    logger: StructuredLogger = field(default_factory=StructuredLogger)

    @classmethod
    def from_files(
        cls,
        paths: Sequence[str | Path],
        *,
        cache_dir: str | Path,
        policy: Policy | None = None,
        logger: StructuredLogger | None = None,
    ) -> IndexFormulary:
        return cls(
            entries=[_read_index(Path(path)) for path in paths],
            cache_dir=Path(cache_dir),
            policy=policy or Policy(),
            logger=logger or StructuredLogger(),
        )

    def find(self, name: str) -> IndexFormula:
        for index in self.entries:
            if name in index:
                return self._formula(name, index[name])
        raise FormulaError(
            f"No formula named {name!r}.",
            hint="Check the package name or add an index that defines it.",
            context={"formula": name},
        )

    def _formula(self, name: str, entry: dict[str, Any]) -> IndexFormula:
        url = entry.get("url")
        if not isinstance(url, str) or not url:
            raise FormulaError(f"Formula {name!r} has no source url.", context={"formula": name})
        return IndexFormula(
            name=name,
            url=url,
            formulary=self,
            version=_optional_str(entry, "version", name),
            sha256=_optional_str(entry, "sha256", name),
            dependencies=tuple(_parse_dependency(item, name) for item in entry.get("dependencies", [])),
        )


def _read_index(path: Path) -> dict[str, dict[str, Any]]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise FormulaError("Formula index does not exist.", context={"path": str(path)}) from exc
    except json.JSONDecodeError as exc:
        raise FormulaError(
            "Invalid formula index JSON.",
            hint=str(exc),
            context={"path": str(path)},
        ) from exc
    formulae = payload.get("formulae") if isinstance(payload, dict) else None
    if not isinstance(formulae, dict) or not all(isinstance(v, dict) for v in formulae.values()):
        raise FormulaError("Invalid formula index `formulae` value.", context={"path": str(path)})
    return formulae


def _parse_dependency(item: Any, owner: str) -> tuple[str, tuple[str, ...]]:
    if isinstance(item, str):
        return item, ()
    if not isinstance(item, dict) or not isinstance(item.get("name"), str):
        raise FormulaError(f"Invalid dependency entry in formula {owner!r}.")
    tags = item.get("tags", [])
    if not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags):
        raise FormulaError(f"Invalid dependency tags in formula {owner!r}.")
    return item["name"], tuple(tags)


def _optional_str(entry: dict[str, Any], key: str, owner: str) -> str | None:
    value = entry.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise FormulaError(f"Invalid `{key}` value in formula {owner!r}.")
    return value
