"""Declarative package specs for the build pipeline."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from urllib.parse import urlsplit

from srcbuild.errors import ParseError

ARCHIVE_NAME_PATTERN = re.compile(r"^([\w-]+)-(\d[\w.-]+)(\.tar\.(\w+))$")


def archive_name_from_url(url: str) -> str:
    """Return the basename of *url*, ignoring any query string or fragment."""
    name = PurePosixPath(urlsplit(url).path).name
    return name or PurePosixPath(url).name


def parse_archive_name(archive_name: str) -> tuple[str, str]:
    """Split ``<name>-<version>.tar.<ext>`` into ``(name, version)``."""
    match = ARCHIVE_NAME_PATTERN.match(archive_name)
    if match is None:
        raise ParseError(
            f"Couldn't parse archive name {archive_name!r}.",
            hint="Expected <name>-<version>.tar.<ext>; set name and version explicitly.",
            context={"archive": archive_name},
        )
    return match.group(1), match.group(2)


@dataclass(frozen=True, slots=True)
class PackageSpec:
    """One buildable dependency.

    ``name`` and ``version`` default to what the archive name says. Both are
    always set once the spec is constructed.
    """

    source: str
    name: str | None = None
    version: str | None = None
    extra_configure_args: tuple[str, ...] = ()
    extra_make_args: tuple[str, ...] = ()
    extra_install_args: tuple[str, ...] = ()
    builddep: bool = False
    patches: tuple[str, ...] = ()
    sha256: str | None = None

    def __post_init__(self) -> None:
        if not self.name or not self.version:
            name, version = parse_archive_name(self.archive_name)
            object.__setattr__(self, "name", name)
            object.__setattr__(self, "version", version)
        for attr in ("extra_configure_args", "extra_make_args", "extra_install_args", "patches"):
            object.__setattr__(self, attr, tuple(getattr(self, attr)))

    @property
    def archive_name(self) -> str:
        return archive_name_from_url(self.source)

    @property
    def ident(self) -> str:
        return f"{self.name}-{self.version}"
