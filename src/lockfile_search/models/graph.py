"""Normalised dependency graph shared by all lockfile formats."""

from __future__ import annotations

from dataclasses import dataclass, field

from .edge import DependencyEdge
from .occurrence import OccurrenceKey, PackageOccurrence


@dataclass(frozen=True)
class DependencyGraph:
    """Immutable unification of occurrences and edges for one project.

    ``occurrences`` keeps the normaliser's visiting order and ``roots`` lists
    the occurrences targeted by the project's own declared dependencies.
    """

    roots: tuple[OccurrenceKey, ...]
    occurrences: tuple[PackageOccurrence, ...]
    edges: tuple[DependencyEdge, ...]
    _index: dict[OccurrenceKey, PackageOccurrence] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        index: dict[OccurrenceKey, PackageOccurrence] = {}
        for occurrence in self.occurrences:
            if occurrence.key in index:
                importer, name, path = occurrence.key
                raise ValueError(
                    f"Duplicate occurrence of {name} at {'/'.join(path) or '<root>'}"
                    f" in importer {importer}"
                )
            index[occurrence.key] = occurrence
        for edge in self.edges:
            for key in (edge.parent, edge.target):
                if key is not None and key not in index:
                    raise ValueError(f"Edge {edge.name} references unknown occurrence {key}")
        for key in self.roots:
            if key not in index:
                raise ValueError(f"Root {key} is not an occurrence of this graph")
        object.__setattr__(self, "_index", index)

    def __len__(self) -> int:
        return len(self.occurrences)

    def get(self, key: OccurrenceKey) -> PackageOccurrence | None:
        return self._index.get(key)

    def root_occurrences(self) -> list[PackageOccurrence]:
        return [self._index[key] for key in self.roots]

    def children(self, key: OccurrenceKey | None) -> list[DependencyEdge]:
        """Return edges declared by ``key`` (``None`` for the project itself)."""
        return [edge for edge in self.edges if edge.parent == key]

    def unresolved(self) -> list[DependencyEdge]:
        return [edge for edge in self.edges if edge.target is None]

    def to_dict(self) -> dict[str, object]:
        return {
            "roots": [self._index[key].to_dict() for key in self.roots],
            "occurrences": [occurrence.to_dict() for occurrence in self.occurrences],
            "edges": [edge.to_dict() for edge in self.edges],
        }
