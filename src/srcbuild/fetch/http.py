"""Download of source archives into the local archive cache."""

from __future__ import annotations

import hashlib
import os
from http.client import HTTPException
from pathlib import Path
from urllib.error import URLError
from urllib.request import urlopen

from srcbuild.errors import FetchError, IntegrityError
from srcbuild.layout import sibling
from srcbuild.observability import StructuredLogger
from srcbuild.policy import Policy, ensure_integrity_pin, ensure_network_allowed

DOWNLOADING_SUFFIX = ".downloading"
CHUNK_SIZE = 1 << 16


def download(
    url: str,
    dest: str | Path,
    *,
    sha256: str | None = None,
    policy: Policy | None = None,
    logger: StructuredLogger | None = None,
) -> Path:
    """Fetch *url* to *dest* unless *dest* already exists.

    The payload is streamed to ``<dest>.downloading`` and renamed into place,
    so *dest* is either absent or complete. An existing *dest* is trusted as
    is, unless *sha256* pins its content.
    """
    dest_path = Path(dest)
    if dest_path.exists():
        if sha256:
            _assert_hash_matches(dest_path, expected_sha256=sha256, url=url)
        return dest_path

    if policy is not None:
        ensure_integrity_pin(policy=policy, sha256=sha256, url=url)
        ensure_network_allowed(policy=policy, operation="fetch")
    if logger is not None:
        logger.log(
            operation="fetch",
            package=None,
            stage="fetch",
            message=f"Downloading {url}",
            extra={"dest": str(dest_path)},
        )

    dest_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = sibling(dest_path, DOWNLOADING_SUFFIX)
    digest = hashlib.sha256()
    try:
        with urlopen(url) as response, temp_path.open("wb") as handle:  # noqa: S310
            while chunk := response.read(CHUNK_SIZE):
                digest.update(chunk)
                handle.write(chunk)
    except (URLError, HTTPException, OSError, ValueError) as exc:
        temp_path.unlink(missing_ok=True)
        raise FetchError(
            "Download failed.",
            hint="Check the source URL and network access.",
            context={"operation": "fetch", "url": url, "reason": str(exc)},
        ) from exc

    actual_sha256 = digest.hexdigest()
    if sha256 and actual_sha256 != sha256:
        temp_path.unlink(missing_ok=True)
        raise IntegrityError(
            "Fetched content hash mismatch.",
            hint="Update the pinned sha256 or point the source at a trusted archive.",
            context={"operation": "fetch", "url": url, "expected": sha256, "actual": actual_sha256},
        )

    os.replace(temp_path, dest_path)
    return dest_path


def _assert_hash_matches(path: Path, *, expected_sha256: str, url: str) -> None:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        while chunk := handle.read(CHUNK_SIZE):
            digest.update(chunk)
    actual_sha256 = digest.hexdigest()
    if actual_sha256 != expected_sha256:
        raise IntegrityError(
            "Cached archive hash mismatch.",
            hint="Delete the cached archive and refetch from a trusted source.",
            context={
                "operation": "fetch",
                "url": url,
                "path": str(path),
                "expected": expected_sha256,
                "actual": actual_sha256,
            },
        )
