"""
Tests for normalising lockfiles into a DependencyGraph.
"""

import json
from pathlib import Path

import pytest

from lockfile_search.graph import normalize_npm, normalize_pnpm, normalize_yarn
from lockfile_search.models import DependencyGraph, EdgeKind
from lockfile_search.parsers import package_json, package_lock, pnpm_lock, yarn_lock

FIXTURES = Path(__file__).parent / "fixtures"


def npm_graph(name: str) -> DependencyGraph:
    project = FIXTURES / name
    return normalize_npm(
        package_lock.parse(project / "package-lock.json"),
        package_json.parse(project / "package.json"),
    )


def pnpm_graph(name: str) -> DependencyGraph:
    return normalize_pnpm(pnpm_lock.parse(FIXTURES / name / "pnpm-lock.yaml"))


def yarn_graph(name: str) -> DependencyGraph:
    project = FIXTURES / name
    return normalize_yarn(
        yarn_lock.parse(project / "yarn.lock"),
        package_json.parse(project / "package.json"),
    )


def summary(graph: DependencyGraph) -> set:
    return {(o.importer, o.name, o.version, o.path, o.dev) for o in graph.occurrences}


def test_npm_hoisted_and_nested_copies():
    graph = npm_graph("npm-hoisted")

    assert summary(graph) == {
        (".", "a", "1.0.0", (), False),
        (".", "b", "2.0.0", (), False),
        (".", "c", "1.0.0", (), False),
        (".", "b", "3.0.0", ("c",), False),
        (".", "d", "1.2.0", (), True),
        (".", "e", "1.0.1", (), True),
    }
    assert [o.name for o in graph.root_occurrences()] == ["a", "c", "d"]


def test_npm_requirements_resolve_upward():
    graph = npm_graph("npm-hoisted")

    a_edges = graph.children((".", "a", ()))
    assert [(e.name, e.target) for e in a_edges] == [("b", (".", "b", ()))]
    c_edges = {e.name: e for e in graph.children((".", "c", ()))}
    assert c_edges["b"].target == (".", "b", ("c",))
    assert c_edges["fsevents"].kind is EdgeKind.OPTIONAL
    assert c_edges["fsevents"].target is None
    root_edges = {e.name: e.kind for e in graph.children(None)}
    assert root_edges == {"a": EdgeKind.RUNTIME, "c": EdgeKind.RUNTIME, "d": EdgeKind.DEV}


def test_npm_legacy_tree_with_manifest_and_alias():
    graph = npm_graph("npm-legacy")

    assert summary(graph) == {
        (".", "a", "1.0.0", (), False),
        (".", "b", "2.0.0", (), False),
        (".", "c", "1.0.0", (), True),
        (".", "b", "3.0.0", ("c",), True),
        (".", "@nolyfill/object-keys", "1.0.44", (), False),
    }
    alias_edge = next(e for e in graph.children(None) if e.name == "object-keys")
    assert alias_edge.target == (".", "object-keys", ())
    assert graph.get(alias_edge.target).alias == "object-keys"


def test_npm_legacy_tree_without_manifest_uses_top_level_entries(tmp_path):
    lockfile = package_lock.parse(FIXTURES / "npm-legacy" / "package-lock.json")

    graph = normalize_npm(lockfile, package_json.parse(tmp_path / "package.json"))

    root_kinds = {e.name: e.kind for e in graph.children(None)}
    assert root_kinds == {
        "a": EdgeKind.RUNTIME,
        "b": EdgeKind.RUNTIME,
        "c": EdgeKind.DEV,
        "object-keys": EdgeKind.RUNTIME,
    }
    assert graph.get((".", "c", ())).dev


def test_npm_workspace_links():
    graph = npm_graph("npm-workspace")

    assert summary(graph) == {
        (".", "chalk", "4.1.2", (), True),
        (".", "jest-lite", "1.0.0", (), True),
        (".", "ui", "0.1.0", (), False),
        (".", "chalk", "5.3.0", ("ui",), False),
    }
    ui_root = next(e for e in graph.children(None) if e.name == "ui")
    assert ui_root.constraint == "link:packages/ui"
    ui_edges = {e.name: e for e in graph.children((".", "ui", ()))}
    assert ui_edges["chalk"].target == (".", "chalk", ("ui",))
    assert ui_edges["react"].kind is EdgeKind.PEER
    assert ui_edges["react"].target is None


def test_pnpm_store_entry_is_placed_once_at_its_shortest_path():
    graph = pnpm_graph("pnpm-hoisted")

    assert summary(graph) == {
        (".", "a", "1.0.0", (), False),
        (".", "b", "2.0.0", ("a",), False),
        (".", "c", "1.0.0", (), False),
        (".", "b", "3.0.0", ("c",), False),
        (".", "d", "1.2.0", (), True),
    }
    [shared] = graph.children((".", "d", ()))
    assert shared.target == (".", "b", ("a",))
    assert not shared.cycle


def test_pnpm_peer_cycle_terminates():
    graph = pnpm_graph("pnpm-cycle")

    assert summary(graph) == {
        (".", "a", "1.0.0", (), False),
        (".", "b", "1.0.0", ("a",), False),
    }
    back = graph.children((".", "b", ("a",)))
    assert len(back) == 1
    assert back[0].kind is EdgeKind.PEER
    assert back[0].target == (".", "a", ())
    assert back[0].cycle


def test_pnpm_workspace_importers():
    graph = pnpm_graph("pnpm-workspace")
    occurrences = summary(graph)

    assert (".", "ui", "link:packages/ui", (), False) in occurrences
    assert (".", "typescript", "5.4.5", (), True) in occurrences
    assert (".", "react-dom", "18.2.0", ("ui",), False) in occurrences
    assert (".", "react", "18.2.0", ("ui", "react-dom"), False) in occurrences
    # Aliases are reported under the real package name.
    assert (".", "string-width", "4.2.3", ("ui",), False) in occurrences
    # The dev-declared react is also the peer react-dom resolves to.
    assert ("packages/ui", "react", "18.2.0", (), False) in occurrences
    assert graph.get(("packages/ui", "react", ("react-dom",))) is None
    # Linked projects only contribute their production dependencies.
    assert not any(o[1] == "react" and o[3] == ("ui",) for o in occurrences)


def test_pnpm_unresolved_peers_are_kept():
    graph = pnpm_graph("pnpm-workspace")

    unresolved = graph.unresolved()
    assert {(e.importer, e.name, e.parent) for e in unresolved} == {
        (".", "popper", (".", "tooltip", ("ui", "string-width-cjs"))),
        ("packages/ui", "popper", ("packages/ui", "tooltip", ("string-width-cjs",))),
    }
    assert all(e.kind is EdgeKind.PEER for e in unresolved)


def test_pnpm_legacy_peer_suffix():
    graph = pnpm_graph("pnpm-legacy")

    assert summary(graph) == {
        (".", "a", "1.0.0", (), False),
        (".", "@scope/b", "2.0.0", ("a",), False),
    }
    assert [e.name for e in graph.unresolved()] == ["react"]


def test_yarn_classic_with_manifest():
    graph = yarn_graph("yarn-classic")

    assert summary(graph) == {
        (".", "a", "1.0.0", (), False),
        (".", "b", "2.1.0", ("a",), False),
        (".", "@scope/d", "1.0.0", (), False),
        (".", "c", "1.0.0", (), True),
        (".", "b", "3.0.0", ("c",), True),
    }
    [missing] = graph.unresolved()
    assert (missing.name, missing.kind) == ("fsevents", EdgeKind.OPTIONAL)


def test_yarn_berry_root_workspace():
    graph = normalize_yarn(yarn_lock.parse(FIXTURES / "yarn-berry" / "yarn.lock"))

    assert summary(graph) == {
        (".", "a", "1.0.0", (), False),
        (".", "b", "2.1.0", ("a",), False),
        (".", "fsevents", "2.3.3", (), False),
        (".", "string-width", "4.2.3", (), False),
    }
    root_kinds = {e.name: e.kind for e in graph.children(None)}
    assert root_kinds["fsevents"] is EdgeKind.OPTIONAL
    assert {e.name for e in graph.unresolved()} == {"react", "node-gyp"}


def test_yarn_without_manifest_or_workspace_uses_unreferenced_entries():
    lockfile = yarn_lock.parse(FIXTURES / "yarn-classic" / "yarn.lock")

    graph = normalize_yarn(lockfile)

    assert [o.name for o in graph.root_occurrences()] == ["@scope/d", "a", "c"]


def test_graph_rejects_dangling_edges():
    graph = npm_graph("npm-hoisted")

    with pytest.raises(ValueError):
        DependencyGraph(roots=graph.roots, occurrences=graph.occurrences[:1], edges=graph.edges)


def test_yarn_cycle_terminates():
    text = """\
a@^1.0.0:
  version "1.0.0"
  dependencies:
    b "^1.0.0"

b@^1.0.0:
  version "1.0.0"
  dependencies:
    a "^1.0.0"
"""

    graph = normalize_yarn(yarn_lock.parse_text(text), [("a", "^1.0.0", EdgeKind.RUNTIME)])

    assert summary(graph) == {
        (".", "a", "1.0.0", (), False),
        (".", "b", "1.0.0", ("a",), False),
    }
    [back] = graph.children((".", "b", ("a",)))
    assert back.target == (".", "a", ())
    assert back.cycle


def test_npm_alias_beside_real_package():
    text = json.dumps(
        {
            "lockfileVersion": 3,
            "packages": {
                "": {"dependencies": {"a": "npm:b@^1.0.0", "b": "^2.0.0"}},
                "node_modules/a": {"name": "b", "version": "1.0.0"},
                "node_modules/b": {"version": "2.0.0"},
            },
        }
    )

    graph = normalize_npm(package_lock.parse_text(text))

    assert {(o.name, o.version, o.alias) for o in graph.occurrences} == {
        ("b", "1.0.0", "a"),
        ("b", "2.0.0", None),
    }
    assert {e.name: e.target for e in graph.children(None)} == {
        "a": (".", "a", ()),
        "b": (".", "b", ()),
    }


def layered_lockfile(layers: int) -> str:
    """Two packages per layer, each depending on both packages of the next layer."""
    lines = ["lockfileVersion: '9.0'", "importers:", "  .:", "    dependencies:"]
    for leg in "ab":
        lines += [f"      l0{leg}:", "        specifier: ^1.0.0", "        version: 1.0.0"]
    lines.append("packages:")
    for layer in range(layers):
        for leg in "ab":
            lines += [f"  l{layer}{leg}@1.0.0:", "    resolution: {integrity: sha512-x}"]
    lines.append("snapshots:")
    for layer in range(layers):
        for leg in "ab":
            if layer + 1 == layers:
                lines.append(f"  l{layer}{leg}@1.0.0: {{}}")
            else:
                lines += [
                    f"  l{layer}{leg}@1.0.0:",
                    "    dependencies:",
                    f"      l{layer + 1}a: 1.0.0",
                    f"      l{layer + 1}b: 1.0.0",
                ]
    return "\n".join(lines) + "\n"


def test_shared_subtrees_are_expanded_once():
    graph = normalize_pnpm(pnpm_lock.parse_text(layered_lockfile(40)))

    assert len(graph) == 80
    assert len(graph.edges) == 2 + 39 * 2 * 2
    leaf = [o for o in graph.occurrences if o.name == "l39a"]
    assert len(leaf) == 1
    assert leaf[0].depth == 39
