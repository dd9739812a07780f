"""Public package entrypoint for srcbuild."""

from .build import Build, BuildResult
from .dependencies import BuildDependencies
from .env import BuildEnvironment
from .errors import (
    ErrorCode,
    FetchError,
    FormulaError,
    IntegrityError,
    ManifestError,
    ParseError,
    PatchError,
    PolicyError,
    SrcBuildError,
    ToolInvocationError,
    ValidationError,
)
from .layout import Layout
from .manifest import parse_manifest, read_manifest
from .models import PackageSpec
from .observability import StructuredLogger
from .policy import Policy
from .sources import IndexFormulary, fetch_sources

__all__ = [
    "Build",
    "BuildDependencies",
    "BuildEnvironment",
    "BuildResult",
    "ErrorCode",
    "FetchError",
    "FormulaError",
    "IndexFormulary",
    "IntegrityError",
    "Layout",
    "ManifestError",
    "PackageSpec",
    "ParseError",
    "PatchError",
    "Policy",
    "PolicyError",
    "SrcBuildError",
    "StructuredLogger",
    "ToolInvocationError",
    "ValidationError",
    "fetch_sources",
    "parse_manifest",
    "read_manifest",
]
