"""Normalise format-specific lockfile trees into a DependencyGraph.

npm records the physical install tree, so every location becomes one
occurrence and requirements are resolved with Node's upward lookup. pnpm and
yarn record a flat, deduplicated index (one store copy per locked entry), so
the tree is rebuilt breadth-first from each importer: every entry becomes one
occurrence at the shortest path that reaches it, and later requirements on the
same entry, or on a (name, version) already among the ancestors, become edges
to the existing occurrence.
"""

from __future__ import annotations

import logging
import posixpath
from collections import deque
from collections.abc import Callable, Hashable, Iterable
from dataclasses import dataclass, replace

from .models import (
    ROOT_IMPORTER,
    DependencyEdge,
    DependencyGraph,
    EdgeKind,
    OccurrenceKey,
    PackageOccurrence,
)
from .parsers.package_lock import NpmEntry, NpmLockfile, name_from_location, parent_location
from .parsers.pnpm_lock import PnpmImporter, PnpmLockfile, PnpmPackage
from .parsers.yarn_lock import YarnEntry, YarnLockfile, selector_name

logger = logging.getLogger(__name__)

Manifest = list[tuple[str, str, EdgeKind]]

# Earlier kinds win when a name is declared in more than one section.
_KIND_PRIORITY = (EdgeKind.RUNTIME, EdgeKind.OPTIONAL, EdgeKind.PEER, EdgeKind.DEV)


@dataclass(frozen=True)
class Requirement:
    """A declared requirement plus the format-native node it resolved to, if any."""

    name: str
    constraint: str
    kind: EdgeKind
    node: Hashable | None = None


def _dedupe(requirements: Iterable[Requirement]) -> list[Requirement]:
    chosen: dict[str, Requirement] = {}
    for requirement in requirements:
        current = chosen.get(requirement.name)
        if current is None or _KIND_PRIORITY.index(requirement.kind) < _KIND_PRIORITY.index(
            current.kind
        ):
            chosen[requirement.name] = requirement
    return list(chosen.values())


def _is_ancestor_or_self(candidate: OccurrenceKey, of: OccurrenceKey) -> bool:
    _, name, path = candidate
    _, of_name, of_path = of
    chain = of_path + (of_name,)
    full = path + (name,)
    return chain[: len(full)] == full


class GraphBuilder:
    """Accumulates occurrences and edges, then freezes them into a DependencyGraph."""

    def __init__(self) -> None:
        self._occurrences: dict[OccurrenceKey, PackageOccurrence] = {}
        self._edges: list[DependencyEdge] = []
        self._deferred: list[int] = []

    def get(self, key: OccurrenceKey) -> PackageOccurrence | None:
        return self._occurrences.get(key)

    def add_occurrence(
        self,
        importer: str,
        name: str,
        version: str,
        path: tuple[str, ...],
        installed_as: str | None = None,
    ) -> OccurrenceKey:
        """Record ``name@version`` installed as ``installed_as`` (defaults to ``name``)."""
        alias = installed_as if installed_as and installed_as != name else None
        occurrence = PackageOccurrence(
            name=name, version=version, path=path, importer=importer, alias=alias
        )
        if occurrence.key in self._occurrences:
            raise ValueError(f"Occurrence {occurrence.key} added twice")
        self._occurrences[occurrence.key] = occurrence
        return occurrence.key

    def add_edge(
        self,
        importer: str,
        parent: OccurrenceKey | None,
        requirement: Requirement,
        target: OccurrenceKey | None,
        defer: bool = False,
    ) -> None:
        cycle = target is not None and parent is not None and _is_ancestor_or_self(target, parent)
        self._edges.append(
            DependencyEdge(
                parent=parent,
                name=requirement.name,
                constraint=requirement.constraint,
                kind=requirement.kind,
                target=target,
                cycle=cycle,
                importer=importer,
            )
        )
        if target is None:
            if defer:
                self._deferred.append(len(self._edges) - 1)
            elif requirement.kind is not EdgeKind.OPTIONAL:
                logger.debug(
                    "Unresolved %s requirement %s@%s",
                    requirement.kind.value,
                    requirement.name,
                    requirement.constraint,
                )

    def resolve_upward(
        self, importer: str, name: str, parent: OccurrenceKey | None
    ) -> OccurrenceKey | None:
        """Find ``name`` among the parent's children, then at each ancestor level."""
        base = () if parent is None else parent[2] + (parent[1],)
        for depth in range(len(base), -1, -1):
            key = (importer, name, base[:depth])
            if key in self._occurrences:
                return key
        return None

    def _resolve_deferred(self) -> None:
        for index in self._deferred:
            edge = self._edges[index]
            target = self.resolve_upward(edge.importer, edge.name, edge.parent)
            if target is None:
                logger.debug("Peer %s of %s is not installed", edge.name, edge.parent)
                continue
            cycle = edge.parent is not None and _is_ancestor_or_self(target, edge.parent)
            self._edges[index] = replace(edge, target=target, cycle=cycle)

    def _dev_only(self) -> set[OccurrenceKey]:
        """Occurrences reachable from the project only through dev edges."""
        adjacency: dict[OccurrenceKey | None, list[tuple[EdgeKind, OccurrenceKey]]] = {}
        for edge in self._edges:
            if edge.target is not None:
                adjacency.setdefault(edge.parent, []).append((edge.kind, edge.target))

        def reach(include_dev: bool) -> set[OccurrenceKey]:
            seen: set[OccurrenceKey] = set()
            queue: deque[OccurrenceKey | None] = deque([None])
            while queue:
                current = queue.popleft()
                for kind, target in adjacency.get(current, ()):
                    if kind is EdgeKind.DEV and not include_dev:
                        continue
                    if target not in seen:
                        seen.add(target)
                        queue.append(target)
            return seen

        return reach(include_dev=True) - reach(include_dev=False)

    def build(self) -> DependencyGraph:
        self._resolve_deferred()
        dev_only = self._dev_only()
        occurrences = tuple(
            replace(occurrence, dev=True) if key in dev_only else occurrence
            for key, occurrence in self._occurrences.items()
        )
        roots: dict[OccurrenceKey, None] = {}
        for edge in self._edges:
            if edge.parent is None and edge.target is not None:
                roots.setdefault(edge.target)
        return DependencyGraph(
            roots=tuple(roots), occurrences=occurrences, edges=tuple(self._edges)
        )


class LogicalWalker:
    """Rebuild one importer's tree from a flat package index.

    ``describe`` maps a node to its (name, version) and ``requirements`` lists
    the node's own declared requirements with their resolved nodes. Each node
    is expanded once, so the walk is linear in nodes plus requirements.
    """

    def __init__(
        self,
        builder: GraphBuilder,
        importer: str,
        describe: Callable[[Hashable], tuple[str, str]],
        requirements: Callable[[Hashable], list[Requirement]],
    ) -> None:
        self.builder = builder
        self.importer = importer
        self.describe = describe
        self.requirements = requirements
        self._placed: dict[Hashable, OccurrenceKey] = {}

    def walk(self, roots: Iterable[Requirement]) -> None:
        pending: deque[tuple[OccurrenceKey, Hashable]] = deque()
        for requirement in _dedupe(roots):
            self._follow(None, requirement, pending)
        while pending:
            key, node = pending.popleft()
            for child in _dedupe(self.requirements(node)):
                self._follow(key, child, pending)

    def _ancestor(
        self, parent: OccurrenceKey | None, name: str, version: str
    ) -> OccurrenceKey | None:
        """Return the parent or ancestor occurrence of ``name@version``, if any."""
        current = parent
        while current is not None:
            occurrence = self.builder.get(current)
            if occurrence is not None and (occurrence.name, occurrence.version) == (name, version):
                return current
            importer, _, path = current
            current = (importer, path[-1], path[:-1]) if path else None
        return None

    def _follow(
        self,
        parent: OccurrenceKey | None,
        requirement: Requirement,
        pending: deque[tuple[OccurrenceKey, Hashable]],
    ) -> None:
        node = requirement.node
        if node is None:
            self.builder.add_edge(
                self.importer, parent, requirement, None, defer=requirement.kind is EdgeKind.PEER
            )
            return

        placed = self._placed.get(node)
        if placed is not None:
            self.builder.add_edge(self.importer, parent, requirement, placed)
            return

        name, version = self.describe(node)
        ancestor = self._ancestor(parent, name, version)
        if ancestor is not None:
            self.builder.add_edge(self.importer, parent, requirement, ancestor)
            return

        # Keyed by the requested name, so an alias never collides with the real name.
        path = () if parent is None else parent[2] + (parent[1],)
        key = self.builder.add_occurrence(
            self.importer, name, version, path, installed_as=requirement.name
        )
        self._placed[node] = key
        self.builder.add_edge(self.importer, parent, requirement, key)
        pending.append((key, node))


# ---- npm -----------------------------------------------------------------------------


def normalize_npm(lockfile: NpmLockfile, manifest: Manifest | None = None) -> DependencyGraph:
    builder = GraphBuilder()
    packages = lockfile.packages

    def target_location(location: str) -> str:
        entry = packages[location]
        if entry.link and entry.resolved is not None and entry.resolved in packages:
            return entry.resolved
        return location

    children: dict[str, list[str]] = {}
    for location, entry in packages.items():
        parent = parent_location(location)
        if entry.installed and parent is not None:
            children.setdefault(parent, []).append(location)

    keys: dict[str, OccurrenceKey] = {}
    order: list[str] = []

    def visit(location: str, path: tuple[str, ...], active: set[str]) -> None:
        for child in sorted(children.get(target_location(location), ())):
            entry = packages[child]
            resolved = target_location(child)
            version = entry.version or packages[resolved].version or f"link:{entry.resolved}"
            # Directory names are unique per node_modules, aliased or not.
            directory = name_from_location(child)
            keys[child] = builder.add_occurrence(
                ROOT_IMPORTER, entry.name, version, path, installed_as=directory
            )
            order.append(child)
            if resolved not in active:
                visit(child, path + (directory,), active | {resolved})

    visit("", (), {""})

    def find_installed(start: str, name: str) -> OccurrenceKey | None:
        current: str | None = start
        while current is not None:
            prefix = f"{current}/" if current else ""
            key = keys.get(f"{prefix}node_modules/{name}")
            if key is not None:
                return key
            current = parent_location(current)
        return None

    def declared(entry: NpmEntry) -> list[Requirement]:
        sections = [
            (entry.dependencies, EdgeKind.RUNTIME),
            (entry.optional_dependencies, EdgeKind.OPTIONAL),
            (entry.peer_dependencies, EdgeKind.PEER),
        ]
        if not entry.installed:
            sections.append((entry.dev_dependencies, EdgeKind.DEV))
        return _dedupe(
            Requirement(name, constraint, kind)
            for deps, kind in sections
            for name, constraint in deps.items()
        )

    for requirement in _npm_roots(lockfile, manifest):
        builder.add_edge(ROOT_IMPORTER, None, requirement, find_installed("", requirement.name))

    for location in order:
        resolved = target_location(location)
        for requirement in declared(packages[resolved]):
            target = find_installed(resolved, requirement.name)
            builder.add_edge(ROOT_IMPORTER, keys[location], requirement, target)

    graph = builder.build()
    logger.debug("Normalised npm tree: %d occurrences, %d edges", len(graph), len(graph.edges))
    return graph


def _npm_roots(lockfile: NpmLockfile, manifest: Manifest | None) -> list[Requirement]:
    packages = lockfile.packages
    if not lockfile.legacy:
        root = packages[""]
        requirements = [
            Requirement(name, constraint, kind)
            for deps, kind in (
                (root.dependencies, EdgeKind.RUNTIME),
                (root.optional_dependencies, EdgeKind.OPTIONAL),
                (root.peer_dependencies, EdgeKind.PEER),
                (root.dev_dependencies, EdgeKind.DEV),
            )
            for name, constraint in deps.items()
        ]
        # Workspaces are linked into the top-level node_modules without being declared.
        for location, entry in packages.items():
            if entry.link and entry.resolved and parent_location(location) == "":
                target = packages.get(entry.resolved)
                if target is not None and not target.installed:
                    requirements.append(
                        Requirement(
                            name_from_location(location),
                            f"link:{entry.resolved}",
                            EdgeKind.RUNTIME,
                        )
                    )
        return _dedupe(requirements)

    if manifest is not None:
        return _dedupe(Requirement(name, constraint, kind) for name, constraint, kind in manifest)

    return [
        Requirement(
            name_from_location(location),
            entry.version or "",
            EdgeKind.DEV if entry.dev else EdgeKind.RUNTIME,
        )
        for location, entry in packages.items()
        if location and parent_location(location) == ""
    ]


# ---- pnpm ----------------------------------------------------------------------------


@dataclass(frozen=True)
class _ImporterLink:
    importer: str


def normalize_pnpm(lockfile: PnpmLockfile, manifest: Manifest | None = None) -> DependencyGraph:
    """Rebuild each importer's tree; ``manifest`` is unused since importers declare kinds."""
    builder = GraphBuilder()
    importers = lockfile.importers

    def link_target(importer_id: str, link: str) -> str:
        target = posixpath.normpath(posixpath.join(importer_id, link))
        return ROOT_IMPORTER if target in ("", ".") else target

    def importer_requirements(importer: PnpmImporter, include_dev: bool) -> list[Requirement]:
        requirements: list[Requirement] = []
        for dep in importer.dependencies:
            if dep.kind is EdgeKind.DEV and not include_dev:
                continue
            node: Hashable | None
            if dep.link is not None:
                target = link_target(importer.id, dep.link)
                node = _ImporterLink(target) if target in importers else None
            else:
                package = lockfile.resolve(dep.name, dep.ref)
                node = package.key if package is not None else None
            requirements.append(Requirement(dep.name, dep.specifier, dep.kind, node))
        return requirements

    def describe(node: Hashable) -> tuple[str, str]:
        if isinstance(node, _ImporterLink):
            # Linked workspace projects are named by the dependency that links them.
            return linked_names[node.importer], f"link:{node.importer}"
        package = lockfile.packages[node]  # type: ignore[index]
        return package.name, package.version

    def requirements(node: Hashable) -> list[Requirement]:
        if isinstance(node, _ImporterLink):
            return importer_requirements(importers[node.importer], include_dev=False)
        return _pnpm_package_requirements(lockfile, lockfile.packages[node])  # type: ignore[index]

    linked_names: dict[str, str] = {}
    for importer in importers.values():
        for dep in importer.dependencies:
            if dep.link is not None:
                linked_names.setdefault(link_target(importer.id, dep.link), dep.name)

    for importer_id in sorted(importers, key=lambda i: (i != ROOT_IMPORTER, i)):
        walker = LogicalWalker(builder, importer_id, describe, requirements)
        walker.walk(importer_requirements(importers[importer_id], include_dev=True))

    graph = builder.build()
    logger.debug(
        "Normalised pnpm lockfile: %d importers, %d occurrences, %d edges",
        len(importers),
        len(graph),
        len(graph.edges),
    )
    return graph


def _pnpm_package_requirements(lockfile: PnpmLockfile, package: PnpmPackage) -> list[Requirement]:
    requirements: list[Requirement] = []
    for name, ref in package.dependencies.items():
        resolved = lockfile.resolve(name, ref)
        if name in package.peer_dependencies:
            requirement = Requirement(name, package.peer_dependencies[name], EdgeKind.PEER)
        else:
            requirement = Requirement(name, ref, EdgeKind.RUNTIME)
        requirements.append(
            replace(requirement, node=resolved.key if resolved is not None else None)
        )
    for name, ref in package.optional_dependencies.items():
        resolved = lockfile.resolve(name, ref)
        node = resolved.key if resolved is not None else None
        requirements.append(Requirement(name, ref, EdgeKind.OPTIONAL, node))
    for name, constraint in package.peer_dependencies.items():
        if name not in package.dependencies and name not in package.optional_dependencies:
            requirements.append(Requirement(name, constraint, EdgeKind.PEER))
    return requirements


# ---- yarn ----------------------------------------------------------------------------


def normalize_yarn(lockfile: YarnLockfile, manifest: Manifest | None = None) -> DependencyGraph:
    builder = GraphBuilder()
    by_id = {id(entry): entry for entry in lockfile.unique_entries()}

    def node_of(name: str, constraint: str) -> int | None:
        entry = lockfile.lookup(name, constraint)
        return id(entry) if entry is not None else None

    def describe(node: Hashable) -> tuple[str, str]:
        entry = by_id[node]  # type: ignore[index]
        return entry.name, entry.version

    def requirements(node: Hashable) -> list[Requirement]:
        return _yarn_entry_requirements(by_id[node], node_of)  # type: ignore[index]

    walker = LogicalWalker(builder, ROOT_IMPORTER, describe, requirements)
    walker.walk(_yarn_roots(lockfile, manifest, node_of))

    graph = builder.build()
    logger.debug(
        "Normalised yarn lockfile: %d occurrences, %d edges", len(graph), len(graph.edges)
    )
    return graph


def _yarn_entry_requirements(
    entry: YarnEntry, node_of: Callable[[str, str], int | None]
) -> list[Requirement]:
    requirements: list[Requirement] = []
    for name, constraint in entry.dependencies.items():
        kind = EdgeKind.OPTIONAL if entry.is_optional(name) else EdgeKind.RUNTIME
        requirements.append(Requirement(name, constraint, kind, node_of(name, constraint)))
    for name, constraint in entry.optional_dependencies.items():
        requirements.append(
            Requirement(name, constraint, EdgeKind.OPTIONAL, node_of(name, constraint))
        )
    for name, constraint in entry.peer_dependencies.items():
        # Peers are never locked; they resolve against what the parent installs.
        requirements.append(Requirement(name, constraint, EdgeKind.PEER))
    return requirements


def _yarn_roots(
    lockfile: YarnLockfile,
    manifest: Manifest | None,
    node_of: Callable[[str, str], int | None],
) -> list[Requirement]:
    if manifest is not None:
        return [
            Requirement(
                name,
                constraint,
                kind,
                None if kind is EdgeKind.PEER else node_of(name, constraint),
            )
            for name, constraint, kind in manifest
        ]

    workspace = lockfile.root_workspace()
    if workspace is not None:
        return _yarn_entry_requirements(workspace, node_of)

    # Without a manifest, anything no other entry depends on was declared by the project.
    referenced: set[int] = set()
    for entry in lockfile.unique_entries():
        for requirement in _yarn_entry_requirements(entry, node_of):
            if requirement.node is not None and requirement.node != id(entry):
                referenced.add(requirement.node)  # type: ignore[arg-type]
    unreferenced = [entry for entry in lockfile.unique_entries() if id(entry) not in referenced]
    unreferenced.sort(key=lambda entry: (entry.name, entry.version))
    return [
        Requirement(
            selector_name(entry.selectors[0]),
            entry.selectors[0][len(selector_name(entry.selectors[0])) + 1 :],
            EdgeKind.RUNTIME,
            id(entry),
        )
        for entry in unreferenced
    ]
