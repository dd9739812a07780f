"""Policy configuration and enforcement helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from srcbuild.errors import PolicyError, ValidationError

NetworkMode = Literal["online", "offline"]
StalenessStrategy = Literal["marker", "make-query"]

DEFAULT_MAKE_JOBS = 4


@dataclass(frozen=True, slots=True)
class Policy:
    network_mode: NetworkMode = "online"
    require_integrity: bool = False
    # "make-query" asks `make -q` whether anything is stale; kept for old trees only.
    staleness: StalenessStrategy = "marker"
    make_jobs: int = DEFAULT_MAKE_JOBS

    def __post_init__(self) -> None:
        if self.make_jobs < 1:
            raise ValidationError(
                "make_jobs must be a positive integer.",
                context={"make_jobs": str(self.make_jobs)},
            )
        if self.staleness not in ("marker", "make-query"):
            raise ValidationError(f"Unsupported staleness strategy: {self.staleness}")


def ensure_network_allowed(*, policy: Policy, operation: str) -> None:
    if policy.network_mode == "offline":
        raise PolicyError(
            "Network operations are disabled by policy.",
            hint="Switch policy.network_mode to 'online' or pre-populate the archive cache.",
            context={"operation": operation},
        )


def ensure_integrity_pin(*, policy: Policy, sha256: str | None, url: str) -> None:
    if policy.require_integrity and not sha256:
        raise ValidationError(
            "A sha256 pin is required by policy.",
            hint="Add a sha256 value for this source or relax policy.require_integrity.",
            context={"operation": "fetch", "url": url},
        )
