import os
from pathlib import Path

import pytest

from srcbuild.env import BuildEnvironment


def test_for_prefix_prepends_standard_search_paths(tmp_path: Path) -> None:
    env = BuildEnvironment.for_prefix(tmp_path / "prefix")

    applied = env.apply(base={"PATH": "/usr/bin:/bin", "HOME": "/home/builder"})

    prefix = tmp_path / "prefix"
    assert applied["PATH"] == os.pathsep.join([str(prefix / "bin"), "/usr/bin:/bin"])
    assert applied["PKG_CONFIG_PATH"] == str(prefix / "lib" / "pkgconfig")
    assert applied["LIBRARY_PATH"] == str(prefix / "lib")
    assert applied["CPATH"] == str(prefix / "include")
    assert applied["HOME"] == "/home/builder"


def test_prepend_stacks_newest_first() -> None:
    env = BuildEnvironment().prepend("PATH", "/opt/a/bin").prepend("PATH", "/opt/b/bin")

    assert env.apply(base={"PATH": "/usr/bin"})["PATH"] == os.pathsep.join(
        ["/opt/b/bin", "/opt/a/bin", "/usr/bin"]
    )


def test_empty_base_value_adds_no_trailing_separator() -> None:
    env = BuildEnvironment().prepend("CPATH", "/opt/include")

    assert env.apply(base={"CPATH": ""})["CPATH"] == "/opt/include"


def test_prepend_returns_new_overlay() -> None:
    base = BuildEnvironment()
    extended = base.prepend("PATH", "/opt/bin")

    assert base.prepends == {}
    assert extended.prepends == {"PATH": ("/opt/bin",)}


def test_apply_reads_but_never_mutates_process_environment(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("PATH", "/usr/bin")
    env = BuildEnvironment().prepend("PATH", "/opt/bin")

    applied = env.apply()

    assert applied["PATH"] == os.pathsep.join(["/opt/bin", "/usr/bin"])
    assert os.environ["PATH"] == "/usr/bin"
