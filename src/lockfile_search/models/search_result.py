"""Search result model."""

from __future__ import annotations

from dataclasses import dataclass
from collections.abc import Iterator, Mapping

from ..parsers.semver import version_key
from .edge import DependencyEdge
from .occurrence import PackageOccurrence


@dataclass(frozen=True)
class SearchResult(Mapping[str, tuple[PackageOccurrence, ...]]):
    """Occurrences found for each queried package name.

    Every queried name is present as a key; an empty tuple means the name was
    searched for but is not installed anywhere in the tree.
    """

    matches: dict[str, tuple[PackageOccurrence, ...]]
    unresolved: dict[str, tuple[DependencyEdge, ...]]

    def __getitem__(self, name: str) -> tuple[PackageOccurrence, ...]:
        return self.matches[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self.matches)

    def __len__(self) -> int:
        return len(self.matches)

    def versions(self, name: str) -> list[str]:
        """Return the distinct installed versions of ``name``, lowest first."""
        return sorted({occurrence.version for occurrence in self.matches[name]}, key=version_key)

    def has_duplicates(self, name: str) -> bool:
        return len(self.versions(name)) > 1

    @property
    def found(self) -> list[str]:
        return [name for name, occurrences in self.matches.items() if occurrences]

    @property
    def missing(self) -> list[str]:
        return [name for name, occurrences in self.matches.items() if not occurrences]

    def to_dict(self) -> dict[str, object]:
        return {
            "packages": {
                name: {
                    "versions": self.versions(name),
                    "occurrences": [occurrence.to_dict() for occurrence in occurrences],
                    "unresolved": [edge.to_dict() for edge in self.unresolved.get(name, ())],
                }
                for name, occurrences in self.matches.items()
            },
            "totals": {
                "packages": len(self.found),
                "occurrences": sum(len(occurrences) for occurrences in self.matches.values()),
                "missing": len(self.missing),
            },
        }
