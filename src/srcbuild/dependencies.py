"""Ordered dependency list built into one shared prefix."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from srcbuild.build import Build, BuildResult
from srcbuild.env import BuildEnvironment
from srcbuild.errors import ValidationError
from srcbuild.fsops import FileOps
from srcbuild.layout import Layout
from srcbuild.models import PackageSpec
from srcbuild.observability import StructuredLogger
from srcbuild.policy import Policy
from srcbuild.runner import SubprocessRunner, ToolRunner


@dataclass(slots=True)
class BuildDependencies:
    """Builds ``specs`` in list order into ``prefix``.

    Order matters: every package configures against the headers, libraries,
    pkg-config files and binaries already installed by the ones before it.
    """

    specs: tuple[PackageSpec, ...]
    prefix: Path
    layout: Layout = field(default_factory=Layout)
    policy: Policy = field(default_factory=Policy)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    runner: ToolRunner | None = None
    builds: tuple[Build, ...] = field(init=False)
    fileops: FileOps = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.specs = tuple(self.specs)
        self.prefix = Path(self.prefix).absolute()
        runner = self.runner if self.runner is not None else SubprocessRunner(logger=self.logger)
        self.builds = tuple(
            Build(spec=spec, layout=self.layout, policy=self.policy, logger=self.logger, runner=runner)
            for spec in self.specs
        )
        self.fileops = FileOps(logger=self.logger)

    @classmethod
    def from_specs(
        cls,
        specs: Iterable[PackageSpec],
        *,
        prefix: str | Path,
        layout: Layout | None = None,
        policy: Policy | None = None,
        logger: StructuredLogger | None = None,
        runner: ToolRunner | None = None,
    ) -> BuildDependencies:
        return cls(
            specs=tuple(specs),
            prefix=Path(prefix),
            layout=layout or Layout(),
            policy=policy or Policy(),
            logger=logger or StructuredLogger(),
            runner=runner,
        )

    def environment(self) -> BuildEnvironment:
        return BuildEnvironment.for_prefix(self.prefix)

    def ensure(self) -> list[BuildResult]:
        """Fetch and build every package in order; the first failure aborts the rest."""
        env = self.environment()
        results: list[BuildResult] = []
        for build in self.builds:
            build.fetch()
            results.append(build.build(self.prefix, env))
        self.logger.log(
            operation="ensure",
            package=None,
            stage=None,
            message=f"{len(results)} dependencies up to date in {self.prefix}",
            extra={"rebuilt": [result.package for result in results if not result.up_to_date]},
        )
        return results

    def clean(self) -> None:
        self.fileops.remove_tree(self.prefix)
        for build in self.builds:
            build.clean()

    def export_sources(self, dest: str | Path) -> list[Path]:
        """Link every shipped (non build-only) archive into *dest*."""
        dest_dir = self.fileops.makedirs(Path(dest))
        exported: list[Path] = []
        for build in self.builds:
            if build.builddep:
                continue
            if not build.archive_path.exists():
                raise ValidationError(
                    "Source archive is missing.",
                    hint="Run ensure (or fetch the package) before exporting sources.",
                    context={"package": build.ident, "archive": str(build.archive_path)},
                )
            exported.append(self.fileops.link(build.archive_path, dest_dir))
        return exported
