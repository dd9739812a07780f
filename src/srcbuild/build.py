"""Single-package build pipeline: fetch, unpack+patch, configure, make, install.

Each stage leaves a marker next to the build directory once it has fully
succeeded, and is skipped on later runs while that marker is still valid:

* ``<build_dir>`` itself: unpacked and patched source. Staged in
  ``<build_dir>.unpatched`` and renamed into place after the last patch.
* ``<build_dir>.configured``: SHA-256 of the archive bytes plus the exact
  configure command line. A mismatch reruns configure.
* ``<build_dir>.installed``: empty sentinel written after ``make install``.
  Removed before any reconfigure, so it never outlives the configuration it
  was built from.
"""

from __future__ import annotations

import hashlib
import shutil
import tarfile
import tempfile
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from srcbuild.env import BuildEnvironment
from srcbuild.errors import PatchError, ToolInvocationError, ValidationError
from srcbuild.fetch import download
from srcbuild.fsops import FileOps
from srcbuild.layout import Layout, sibling
from srcbuild.models import PackageSpec
from srcbuild.observability import StructuredLogger
from srcbuild.policy import Policy
from srcbuild.runner import SubprocessRunner, ToolRunner

CONFIGURED_SUFFIX = ".configured"
INSTALLED_SUFFIX = ".installed"
UNPATCHED_SUFFIX = ".unpatched"
CONFIGURE_SCRIPT = "configure"
HASH_CHUNK_SIZE = 1 << 16


@dataclass(frozen=True, slots=True)
class BuildResult:
    package: str
    stages: tuple[str, ...] = ()

    @property
    def up_to_date(self) -> bool:
        return not self.stages


@dataclass(slots=True)
class Build:
    spec: PackageSpec
    layout: Layout = field(default_factory=Layout)
    policy: Policy = field(default_factory=Policy)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    runner: ToolRunner | None = None
    tools: ToolRunner = field(init=False, repr=False)
    fileops: FileOps = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.tools = self.runner if self.runner is not None else SubprocessRunner(logger=self.logger)
        self.fileops = FileOps(logger=self.logger)

    @property
    def name(self) -> str:
        return str(self.spec.name)

    @property
    def version(self) -> str:
        return str(self.spec.version)

    @property
    def ident(self) -> str:
        return self.spec.ident

    @property
    def builddep(self) -> bool:
        return self.spec.builddep

    @property
    def build_dir(self) -> Path:
        return self.layout.build_dir(self.name, self.version)

    @property
    def archive_path(self) -> Path:
        return self.layout.archive_path(self.spec.archive_name)

    @property
    def unpatched_dir(self) -> Path:
        return sibling(self.build_dir, UNPATCHED_SUFFIX)

    @property
    def configured_marker(self) -> Path:
        return sibling(self.build_dir, CONFIGURED_SUFFIX)

    @property
    def installed_marker(self) -> Path:
        return sibling(self.build_dir, INSTALLED_SUFFIX)

    # ── stages ──────────────────────────────────────────────────────

    def fetch(self) -> Path:
        """Download the source archive unless it is already cached."""
        return download(
            self.spec.source,
            self.archive_path,
            sha256=self.spec.sha256,
            policy=self.policy,
            logger=self.logger,
        )

    def build(self, prefix: str | Path, env: BuildEnvironment | None = None) -> BuildResult:
        self._log("build", f"Building {self.ident}")
        stages: list[str] = []
        if self.prep_build_dir():
            stages.append("unpack")
        if self.configure(prefix, env):
            stages.append("configure")
        if self.needs_make(env):
            self.make(env)
            self.install(env)
            stages.extend(("make", "install"))
        if not stages:
            self._log("build", f"{self.ident} is up to date")
        return BuildResult(package=self.ident, stages=tuple(stages))

    def prep_build_dir(self) -> bool:
        """Unpack and patch the source unless the build directory already exists."""
        self.fileops.makedirs(self.layout.build_root)
        if self.build_dir.exists():
            return False
        self._log("unpack", f"Unpacking {self.archive_path.name}")
        self.fileops.remove_tree(self.unpatched_dir)
        self.unpack(self.unpatched_dir)
        for patch in self.spec.patches:
            self.apply_patch(self.layout.resolve_patch(patch))
        # A fresh tree has never been configured or installed from; markers go
        # before the rename so a crash in between cannot pair them with it.
        self._remove_markers()
        self.fileops.move(self.unpatched_dir, self.build_dir)
        return True

    def unpack(self, dest: Path) -> Path:
        """Extract the archive to *dest*, dropping a lone top-level directory."""
        if not self.archive_path.exists():
            raise ValidationError(
                "Source archive is missing.",
                hint="Call fetch() before building.",
                context={"package": self.ident, "archive": str(self.archive_path)},
            )
        self.fileops.makedirs(dest.parent)
        unpack_root = Path(tempfile.mkdtemp(prefix=f".{self.ident}-", dir=dest.parent))
        try:
            try:
                with tarfile.open(self.archive_path, "r:*") as archive:
                    archive.extractall(unpack_root, filter="data")
            except (tarfile.TarError, OSError) as exc:
                raise ToolInvocationError(
                    f"Failed to unpack {self.archive_path.name}.",
                    command=("tar", "xf", str(self.archive_path), "-C", str(unpack_root)),
                    exit_code=1,
                    output=str(exc),
                    stage="unpack",
                    build_dir=dest,
                    hint="The cached archive may be truncated; delete it and fetch again.",
                ) from exc
            self.fileops.remove_tree(dest)
            toplevel = list(unpack_root.iterdir())
            if len(toplevel) == 1 and toplevel[0].is_dir() and not toplevel[0].is_symlink():
                self.fileops.move(toplevel[0], dest)
            else:
                self.fileops.move(unpack_root, dest)
        finally:
            if unpack_root.exists():
                shutil.rmtree(unpack_root, ignore_errors=True)
        return dest

    def apply_patch(self, patch: Path) -> None:
        self._log("patch", f"Applying {patch.name}")
        command = ["patch", "-p0", "-d", str(self.unpatched_dir), "-i", str(patch)]
        try:
            self.tools.run(command, stage="patch")
        except ToolInvocationError as exc:
            raise PatchError(
                f"Patch {patch.name} failed for {self.ident}.",
                command=exc.command,
                exit_code=exc.exit_code,
                output=exc.output,
                build_dir=self.unpatched_dir,
                hint="The build directory was not created; fix the patch and rebuild.",
            ) from exc

    def configure_command(self, prefix: str | Path) -> list[str]:
        return [
            f"./{CONFIGURE_SCRIPT}",
            f"--prefix={Path(prefix).absolute()}",
            *self.spec.extra_configure_args,
        ]

    def configuration_hash(self, command: Sequence[str]) -> str:
        digest = hashlib.sha256()
        with self.archive_path.open("rb") as handle:
            while chunk := handle.read(HASH_CHUNK_SIZE):
                digest.update(chunk)
        digest.update(" ".join(command).encode("utf-8"))
        return digest.hexdigest()

    def is_configured(self, conf_hash: str) -> bool:
        marker = self.configured_marker
        return marker.exists() and marker.read_text(encoding="utf-8") == conf_hash

    def configure(self, prefix: str | Path, env: BuildEnvironment | None = None) -> bool:
        """Run configure unless the recorded hash still matches. Returns True if it ran."""
        if not (self.build_dir / CONFIGURE_SCRIPT).exists():
            self._log("configure", f"{self.ident} has no configure script", level="debug")
            return False
        command = self.configure_command(prefix)
        conf_hash = self.configuration_hash(command)
        if self.is_configured(conf_hash):
            return False
        self._log("configure", f"Configuring {self.ident}")
        self.fileops.remove_file(self.installed_marker)
        self._run("configure", command, cwd=self.build_dir, env=env)
        self.fileops.write_atomic(self.configured_marker, conf_hash)
        return True

    def needs_make(self, env: BuildEnvironment | None = None) -> bool:
        if self.policy.staleness == "make-query":
            result = self.tools.run(
                ["make", "-C", str(self.build_dir), "-q", *self.spec.extra_make_args],
                env=_environ(env),
                stage="make-query",
                check=False,
            )
            return not result.ok
        return not self.installed_marker.exists()

    def make(self, env: BuildEnvironment | None = None) -> None:
        self._log("make", f"Making {self.ident}")
        self._run(
            "make",
            [
                "make",
                "-C",
                str(self.build_dir),
                "-j",
                str(self.policy.make_jobs),
                *self.spec.extra_make_args,
            ],
            env=env,
        )

    def install(self, env: BuildEnvironment | None = None) -> None:
        self._log("install", f"Installing {self.ident}")
        self._run(
            "install",
            ["make", "-C", str(self.build_dir), "install", *self.spec.extra_install_args],
            env=env,
        )
        self.fileops.write_atomic(self.installed_marker, b"")

    def clean(self) -> None:
        if self.build_dir.exists():
            self._log("clean", f"Removing {self.build_dir}")
            self.fileops.remove_tree(self.build_dir)
        self._remove_markers()

    # ── helpers ─────────────────────────────────────────────────────

    def _remove_markers(self) -> None:
        self.fileops.remove_file(self.configured_marker)
        self.fileops.remove_file(self.installed_marker)

    def _run(
        self,
        stage: str,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: BuildEnvironment | None = None,
    ) -> None:
        try:
            self.tools.run(command, cwd=cwd, env=_environ(env), stage=stage)
        except ToolInvocationError as exc:
            raise ToolInvocationError(
                f"{stage} failed for {self.ident}.",
                command=exc.command,
                exit_code=exc.exit_code,
                output=exc.output,
                stage=stage,
                build_dir=self.build_dir,
            ) from exc

    def _log(self, stage: str, message: str, *, level: str = "info") -> None:
        self.logger.log(
            operation="stage",
            package=self.ident,
            stage=stage,
            message=message,
            level=level,
        )


def _environ(env: BuildEnvironment | None) -> dict[str, str] | None:
    return env.apply() if env is not None else None
