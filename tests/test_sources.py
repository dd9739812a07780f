import json
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from srcbuild.errors import FormulaError
from srcbuild.sources import IndexFormulary, fetch_sources


@dataclass
class FakeDependency:
    name: str
    graph: "FakeFormulary"
    required: bool = True

    def to_formula(self) -> "FakeFormula":
        return self.graph.find(self.name)


@dataclass
class FakeFormula:
    name: str
    graph: "FakeFormulary"

    def fetch(self) -> Path:
        self.graph.fetched.append(self.name)
        return self.graph.cache / f"{self.name}-1.0.tar.gz"

    def deps(self) -> list[FakeDependency]:
        return [
            FakeDependency(name=dep, graph=self.graph, required=required)
            for dep, required in self.graph.edges.get(self.name, [])
        ]


@dataclass
class FakeFormulary:
    cache: Path
    edges: dict[str, list[tuple[str, bool]]]
    fetched: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.cache.mkdir(parents=True, exist_ok=True)
        names = set(self.edges) | {dep for deps in self.edges.values() for dep, _ in deps}
        for name in names:
            (self.cache / f"{name}-1.0.tar.gz").write_text(f"{name} source\n", encoding="utf-8")

    def find(self, name: str) -> FakeFormula:
        return FakeFormula(name=name, graph=self)


def _names(dest: Path) -> list[str]:
    return sorted(path.name for path in dest.iterdir())


def test_fetches_required_dependencies_and_skips_optional(tmp_path: Path) -> None:
    formulary = FakeFormulary(
        cache=tmp_path / "cache",
        edges={
            "A": [("B", True), ("C", True)],
            "C": [("D", True), ("E", False)],
        },
    )

    copied = fetch_sources(formulary, ["A"], tmp_path / "dest")

    assert _names(tmp_path / "dest") == [
        "A-1.0.tar.gz",
        "B-1.0.tar.gz",
        "C-1.0.tar.gz",
        "D-1.0.tar.gz",
    ]
    assert "E" not in formulary.fetched
    assert [path.name for path in copied] == [
        "A-1.0.tar.gz",
        "B-1.0.tar.gz",
        "C-1.0.tar.gz",
        "D-1.0.tar.gz",
    ]


def test_copies_are_independent_of_the_cache(tmp_path: Path) -> None:
    formulary = FakeFormulary(cache=tmp_path / "cache", edges={"A": []})

    fetch_sources(formulary, ["A"], tmp_path / "dest")

    copied = tmp_path / "dest" / "A-1.0.tar.gz"
    assert copied.read_text(encoding="utf-8") == "A source\n"
    assert not copied.samefile(tmp_path / "cache" / "A-1.0.tar.gz")


def test_diamond_dependency_is_fetched_once(tmp_path: Path) -> None:
    formulary = FakeFormulary(
        cache=tmp_path / "cache",
        edges={"A": [("B", True), ("C", True)], "B": [("D", True)], "C": [("D", True)]},
    )

    fetch_sources(formulary, ["A"], tmp_path / "dest")

    assert formulary.fetched == ["A", "B", "D", "C"]


def test_dependency_cycle_terminates(tmp_path: Path) -> None:
    formulary = FakeFormulary(
        cache=tmp_path / "cache",
        edges={"A": [("B", True)], "B": [("A", True)]},
    )

    fetch_sources(formulary, ["A"], tmp_path / "dest")

    assert formulary.fetched == ["A", "B"]


def test_multiple_roots_share_visited_packages(tmp_path: Path) -> None:
    formulary = FakeFormulary(
        cache=tmp_path / "cache",
        edges={"A": [("C", True)], "B": [("C", True)]},
    )

    fetch_sources(formulary, ["A", "B"], tmp_path / "dest")

    assert formulary.fetched == ["A", "C", "B"]
    assert _names(tmp_path / "dest") == ["A-1.0.tar.gz", "B-1.0.tar.gz", "C-1.0.tar.gz"]


def test_index_formulary_fetches_from_urls(tmp_path: Path) -> None:
    upstream = tmp_path / "upstream"
    upstream.mkdir()
    for name in ("gnutls-3.6.15", "nettle-3.7.2", "p11-kit-0.23.22"):
        (upstream / f"{name}.tar.xz").write_bytes(name.encode("utf-8"))
    index = _write_index(
        tmp_path / "core.json",
        {
            "gnutls": {
                "url": (upstream / "gnutls-3.6.15.tar.xz").as_uri(),
                "dependencies": [{"name": "nettle"}, {"name": "p11-kit", "tags": ["optional"]}],
            },
            "nettle": {"url": (upstream / "nettle-3.7.2.tar.xz").as_uri()},
            "p11-kit": {"url": (upstream / "p11-kit-0.23.22.tar.xz").as_uri()},
        },
    )
    formulary = IndexFormulary.from_files([index], cache_dir=tmp_path / "cache")

    fetch_sources(formulary, ["gnutls"], tmp_path / "dest")

    assert _names(tmp_path / "dest") == ["gnutls-3.6.15.tar.xz", "nettle-3.7.2.tar.xz"]
    assert _names(tmp_path / "cache") == ["gnutls-3.6.15.tar.xz", "nettle-3.7.2.tar.xz"]


def test_index_formulary_prefers_earlier_index(tmp_path: Path) -> None:
    tap = _write_index(tmp_path / "tap.json", {"gmp": {"url": "https://tap.example/gmp-7.0.tar.xz"}})
    core = _write_index(
        tmp_path / "core.json",
        {
            "gmp": {"url": "https://core.example/gmp-6.2.1.tar.xz"},
            "jansson": {"url": "https://core.example/jansson-2.13.1.tar.bz2"},
        },
    )
    formulary = IndexFormulary.from_files([tap, core], cache_dir=tmp_path / "cache")

    assert formulary.find("gmp").url == "https://tap.example/gmp-7.0.tar.xz"
    assert formulary.find("jansson").archive_name == "jansson-2.13.1.tar.bz2"


def test_index_dependency_tags_decide_requiredness(tmp_path: Path) -> None:
    index = _write_index(
        tmp_path / "core.json",
        {
            "emacs": {
                "url": "https://example.org/emacs-29.1.tar.xz",
                "dependencies": [
                    "gnutls",
                    {"name": "pkg-config", "tags": ["build"]},
                    {"name": "librsvg", "tags": ["recommended"]},
                    {"name": "imagemagick", "tags": ["optional"]},
                ],
            }
        },
    )
    formulary = IndexFormulary.from_files([index], cache_dir=tmp_path / "cache")

    deps = formulary.find("emacs").deps()

    assert [(dep.name, dep.required) for dep in deps] == [
        ("gnutls", True),
        ("pkg-config", True),
        ("librsvg", False),
        ("imagemagick", False),
    ]


def test_unknown_formula_raises(tmp_path: Path) -> None:
    index = _write_index(tmp_path / "core.json", {})
    formulary = IndexFormulary.from_files([index], cache_dir=tmp_path / "cache")

    with pytest.raises(FormulaError) as excinfo:
        fetch_sources(formulary, ["nope"], tmp_path / "dest")

    assert excinfo.value.code == "E_FORMULA"


@pytest.mark.parametrize(
    "payload",
    [
        "not json",
        json.dumps([]),
        json.dumps({"formulae": {"gmp": "https://example.org/gmp-6.2.1.tar.xz"}}),
    ],
)
def test_invalid_index_raises(tmp_path: Path, payload: str) -> None:
    path = tmp_path / "bad.json"
    path.write_text(payload, encoding="utf-8")

    with pytest.raises(FormulaError):
        IndexFormulary.from_files([path], cache_dir=tmp_path / "cache")


def _write_index(path: Path, formulae: dict[str, object]) -> Path:
    path.write_text(json.dumps({"formulae": formulae}), encoding="utf-8")
    return path
