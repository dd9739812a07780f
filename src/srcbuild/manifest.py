"""Dependency manifest parser and serializer.

A manifest is the ordered list of package specs to build::

    {
      "version": 1,
      "packages": [
        {"source": "https://example.org/gmp-6.2.1.tar.bz2"},
        {"source": "https://example.org/pkg-config-0.29.tar.gz", "builddep": true,
         "extra_configure_args": ["--with-internal-glib"]}
      ]
    }
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from srcbuild.errors import ManifestError
from srcbuild.models import PackageSpec

MANIFEST_VERSION = 1

_LIST_FIELDS = ("extra_configure_args", "extra_make_args", "extra_install_args", "patches")
_OPTIONAL_STR_FIELDS = ("name", "version", "sha256")


def serialize_manifest(specs: list[PackageSpec]) -> str:
    packages: list[dict[str, Any]] = []
    for spec in specs:
        entry: dict[str, Any] = {"source": spec.source, "name": spec.name, "version": spec.version}
        for key in _LIST_FIELDS:
            values = getattr(spec, key)
            if values:
                entry[key] = list(values)
        if spec.builddep:
            entry["builddep"] = True
        if spec.sha256:
            entry["sha256"] = spec.sha256
        packages.append(entry)
    payload = {"version": MANIFEST_VERSION, "packages": packages}
    return json.dumps(payload, indent=2, sort_keys=True) + "\n"


def parse_manifest(raw: str) -> list[PackageSpec]:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ManifestError("Invalid manifest JSON.", hint=str(exc)) from exc

    if not isinstance(payload, dict):
        raise ManifestError("Invalid manifest payload type.")
    version = payload.get("version", MANIFEST_VERSION)
    if version != MANIFEST_VERSION:
        raise ManifestError(
            "Unsupported manifest version.",
            context={"version": str(version), "supported": str(MANIFEST_VERSION)},
        )
    packages = payload.get("packages")
    if not isinstance(packages, list):
        raise ManifestError("Invalid manifest `packages` value.")
    return [_parse_package(item, index) for index, item in enumerate(packages)]


def read_manifest(path: str | Path) -> list[PackageSpec]:
    manifest_path = Path(path)
    try:
        raw = manifest_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ManifestError(
            "Manifest does not exist.",
            context={"path": str(manifest_path)},
        ) from exc
    return parse_manifest(raw)


def write_manifest(specs: list[PackageSpec], path: str | Path) -> Path:
    manifest_path = Path(path)
    manifest_path.parent.mkdir(parents=True, exist_ok=True)
    manifest_path.write_text(serialize_manifest(specs), encoding="utf-8")
    return manifest_path


def _parse_package(item: Any, index: int) -> PackageSpec:
    if not isinstance(item, dict):
        raise ManifestError(f"Invalid package entry at index {index}.")
    unknown = sorted(set(item) - {"source", "builddep", *_LIST_FIELDS, *_OPTIONAL_STR_FIELDS})
    if unknown:
        raise ManifestError(
            f"Unknown keys in package entry at index {index}.",
            context={"keys": ", ".join(unknown)},
        )
    source = item.get("source")
    if not isinstance(source, str) or not source:
        raise ManifestError(f"Invalid `source` value at index {index}.")
    builddep = item.get("builddep", False)
    if not isinstance(builddep, bool):
        raise ManifestError(f"Invalid `builddep` value at index {index}.")
    return PackageSpec(
        source=source,
        name=_optional_str(item, "name", index),
        version=_optional_str(item, "version", index),
        extra_configure_args=_str_list(item, "extra_configure_args", index),
        extra_make_args=_str_list(item, "extra_make_args", index),
        extra_install_args=_str_list(item, "extra_install_args", index),
        builddep=builddep,
        patches=_str_list(item, "patches", index),
        sha256=_optional_str(item, "sha256", index),
    )


def _optional_str(payload: dict[str, Any], key: str, index: int) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value:
        raise ManifestError(f"Invalid `{key}` value at index {index}.")
    return value


def _str_list(payload: dict[str, Any], key: str, index: int) -> tuple[str, ...]:
    value = payload.get(key, [])
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ManifestError(f"Invalid `{key}` value at index {index}.")
    return tuple(value)
