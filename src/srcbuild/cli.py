"""``srcbuild`` command line."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from pathlib import Path

from srcbuild.dependencies import BuildDependencies
from srcbuild.errors import SrcBuildError
from srcbuild.layout import Layout
from srcbuild.manifest import read_manifest
from srcbuild.observability import StructuredLogger
from srcbuild.policy import DEFAULT_MAKE_JOBS, Policy
from srcbuild.sources import IndexFormulary, fetch_sources


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="srcbuild",
        description="Build source-tarball dependencies into a shared prefix.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="trace every step on stderr")
    parser.add_argument("--log-file", type=Path, help="write structured logs as JSON lines")
    parser.add_argument("--offline", action="store_true", help="never touch the network")
    subparsers = parser.add_subparsers(dest="command", required=True)

    ensure = subparsers.add_parser("ensure", help="fetch and build every manifest package")
    _add_dependency_args(ensure)
    ensure.add_argument("-j", "--jobs", type=int, default=DEFAULT_MAKE_JOBS)
    ensure.add_argument(
        "--staleness",
        choices=("marker", "make-query"),
        default="marker",
        help="how to decide whether make needs to run",
    )
    ensure.add_argument("--require-integrity", action="store_true")

    clean = subparsers.add_parser("clean", help="remove the prefix and all build directories")
    _add_dependency_args(clean)

    export = subparsers.add_parser("export-sources", help="link shipped source archives into DIR")
    _add_dependency_args(export)
    export.add_argument("dir", type=Path)

    source = subparsers.add_parser(
        "source",
        help="copy the sources of packages and their required dependencies into DEST",
    )
    source.add_argument("--index", type=Path, action="append", required=True)
    source.add_argument("--cache", type=Path, default=Path("archive"))
    source.add_argument("names", nargs="+", metavar="NAME")
    source.add_argument("dest", type=Path)
    return parser


def _add_dependency_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--manifest", type=Path, required=True)
    parser.add_argument("--prefix", type=Path, required=True)
    parser.add_argument("--root", type=Path, default=Path("."), help="archive/ and build/ location")
    parser.add_argument("--patch-root", type=Path, help="base for relative patch paths")


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logger = StructuredLogger(stream=sys.stderr if args.verbose else None)
    try:
        _dispatch(args, logger)
    except SrcBuildError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        if args.log_file is not None:
            logger.to_json_lines(args.log_file)
    return 0


def _dispatch(args: argparse.Namespace, logger: StructuredLogger) -> None:
    network_mode = "offline" if args.offline else "online"
    if args.command == "source":
        formulary = IndexFormulary.from_files(
            args.index,
            cache_dir=args.cache,
            policy=Policy(network_mode=network_mode),
            logger=logger,
        )
        fetch_sources(formulary, args.names, args.dest, logger=logger)
        return

    policy = Policy(
        network_mode=network_mode,
        require_integrity=getattr(args, "require_integrity", False),
        staleness=getattr(args, "staleness", "marker"),
        make_jobs=getattr(args, "jobs", DEFAULT_MAKE_JOBS),
    )
    deps = BuildDependencies.from_specs(
        read_manifest(args.manifest),
        prefix=args.prefix,
        layout=Layout.at(args.root, patch_root=args.patch_root),
        policy=policy,
        logger=logger,
    )
    if args.command == "ensure":
        deps.ensure()
    elif args.command == "clean":
        deps.clean()
    elif args.command == "export-sources":
        deps.export_sources(args.dir)


if __name__ == "__main__":
    raise SystemExit(main())
