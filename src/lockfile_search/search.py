"""Answer "where does package P occur" queries against a DependencyGraph."""

from __future__ import annotations

from collections.abc import Iterable

from .models import DependencyEdge, DependencyGraph, PackageOccurrence, SearchResult


def find_occurrences(graph: DependencyGraph, targets: Iterable[str]) -> SearchResult:
    """Return every occurrence of each target name in one pass over the graph.

    Every target gets a key, so an empty tuple means "searched but absent".
    Unresolved edges declaring a target are reported alongside, since a
    requirement the lockfile never installed is itself worth knowing about.
    """
    names = sorted(set(targets))
    matches: dict[str, list[PackageOccurrence]] = {name: [] for name in names}
    unresolved: dict[str, list[DependencyEdge]] = {name: [] for name in names}

    for occurrence in graph.occurrences:
        bucket = matches.get(occurrence.name)
        if bucket is not None:
            bucket.append(occurrence)

    for edge in graph.edges:
        if edge.target is None and edge.name in unresolved:
            unresolved[edge.name].append(edge)

    return SearchResult(
        matches={
            name: tuple(sorted(found, key=PackageOccurrence.sort_key))
            for name, found in matches.items()
        },
        unresolved={name: tuple(edges) for name, edges in unresolved.items()},
    )
