"""Data models for the normalised dependency graph and search results."""

from __future__ import annotations

from .edge import DependencyEdge, EdgeKind
from .graph import DependencyGraph
from .occurrence import ROOT_IMPORTER, OccurrenceKey, PackageOccurrence
from .search_result import SearchResult

__all__ = [
    "DependencyEdge",
    "DependencyGraph",
    "EdgeKind",
    "OccurrenceKey",
    "PackageOccurrence",
    "ROOT_IMPORTER",
    "SearchResult",
]
