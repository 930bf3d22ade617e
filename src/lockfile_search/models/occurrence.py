"""Package occurrence model."""

from __future__ import annotations

from dataclasses import dataclass

OccurrenceKey = tuple[str, str, tuple[str, ...]]

ROOT_IMPORTER = "."


@dataclass(frozen=True)
class PackageOccurrence:
    """One materialised instance of a package at a position in the tree.

    ``name`` is the real package name. ``alias`` is the name the package is
    installed under when that differs (``string-width-cjs`` for an
    ``npm:string-width@4`` install); ``path`` lists the installed names of the
    ancestors, so the key stays unique when an alias sits beside the real name.
    """

    name: str
    version: str
    path: tuple[str, ...] = ()
    dev: bool = False
    importer: str = ROOT_IMPORTER
    alias: str | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Occurrence name must be non-empty")
        if not self.version:
            raise ValueError(f"Occurrence {self.name} must have a version")
        if any(not ancestor for ancestor in self.path):
            raise ValueError("Path entries must be non-empty package names")
        if self.alias == self.name:
            raise ValueError(f"Alias of {self.name} must differ from its name")

    @property
    def installed_name(self) -> str:
        return self.alias or self.name

    @property
    def key(self) -> OccurrenceKey:
        return (self.importer, self.installed_name, self.path)

    @property
    def depth(self) -> int:
        return len(self.path)

    def sort_key(self) -> tuple[int, tuple[str, ...], str, str, str]:
        """Shallowest first, then ancestor names lexicographically."""
        return (len(self.path), self.path, self.importer, self.version, self.alias or "")

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "version": self.version,
            "path": list(self.path),
            "dev": self.dev,
            "importer": self.importer,
            "alias": self.alias,
        }
