"""Dependency edge model."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .occurrence import OccurrenceKey


class EdgeKind(str, Enum):
    RUNTIME = "runtime"
    DEV = "dev"
    PEER = "peer"
    OPTIONAL = "optional"


@dataclass(frozen=True)
class DependencyEdge:
    """A declared requirement from a parent occurrence (or the project itself).

    ``parent`` is ``None`` for requirements declared by the project manifest or
    importer. ``target`` is ``None`` when the lockfile declares the requirement
    but never installed it.
    """

    parent: OccurrenceKey | None
    name: str
    constraint: str
    kind: EdgeKind
    target: OccurrenceKey | None = None
    cycle: bool = False
    importer: str = "."

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Edge child name must be non-empty")
        if self.cycle and self.target is None:
            raise ValueError("A cycle-closing edge must point at an existing occurrence")

    @property
    def resolved(self) -> bool:
        return self.target is not None

    def to_dict(self) -> dict[str, object]:
        def _key(key: OccurrenceKey | None) -> dict[str, object] | None:
            if key is None:
                return None
            importer, name, path = key
            return {"importer": importer, "name": name, "path": list(path)}

        return {
            "parent": _key(self.parent),
            "name": self.name,
            "constraint": self.constraint,
            "kind": self.kind.value,
            "target": _key(self.target),
            "cycle": self.cycle,
            "importer": self.importer,
        }
