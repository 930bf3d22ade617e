"""Core search entrypoints.

``search`` is the single entry point used by the override tooling: it picks
the reader/normaliser pair for the package manager, builds the dependency
graph from the project's lockfile and reports where the requested packages
occur. This module performs no writes and no network access.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from .errors import NotFoundError, UnsupportedManagerError
from .graph import Manifest, normalize_npm, normalize_pnpm, normalize_yarn
from .models import DependencyGraph, SearchResult
from .parsers import package_json
from .parsers.package_lock import LOCKFILE_NAME as NPM_LOCKFILE
from .parsers.package_lock import parse as parse_package_lock
from .parsers.pnpm_lock import LOCKFILE_NAME as PNPM_LOCKFILE
from .parsers.pnpm_lock import parse as parse_pnpm_lock
from .parsers.yarn_lock import LOCKFILE_NAME as YARN_LOCKFILE
from .parsers.yarn_lock import parse as parse_yarn_lock
from .search import find_occurrences

logger = logging.getLogger(__name__)

MANIFEST_NAME = "package.json"


class PackageManager(str, Enum):
    NPM = "npm"
    PNPM = "pnpm"
    YARN = "yarn"


ReadFunction = Callable[[Path], Any]
NormalizeFunction = Callable[[Any, Manifest | None], DependencyGraph]
Stamp = tuple[int | None, ...]


@dataclass(slots=True, frozen=True)
class LockfileHandler:
    """Handler binding a package manager to its lockfile reader and normaliser."""

    manager: PackageManager
    lockfile_name: str
    read: ReadFunction
    normalize: NormalizeFunction
    uses_manifest: bool


# Registry of supported package managers, keyed by kind.
LOCKFILE_HANDLERS: dict[PackageManager, LockfileHandler] = {
    PackageManager.NPM: LockfileHandler(
        manager=PackageManager.NPM,
        lockfile_name=NPM_LOCKFILE,
        read=parse_package_lock,
        normalize=normalize_npm,
        uses_manifest=True,
    ),
    PackageManager.PNPM: LockfileHandler(
        manager=PackageManager.PNPM,
        lockfile_name=PNPM_LOCKFILE,
        read=parse_pnpm_lock,
        normalize=normalize_pnpm,
        uses_manifest=False,
    ),
    PackageManager.YARN: LockfileHandler(
        manager=PackageManager.YARN,
        lockfile_name=YARN_LOCKFILE,
        read=parse_yarn_lock,
        normalize=normalize_yarn,
        uses_manifest=True,
    ),
}


def get_known_managers() -> list[str]:
    """Return a sorted list of all supported package manager kinds."""
    return sorted(manager.value for manager in LOCKFILE_HANDLERS)


def get_lockfile_handler(kind: PackageManager | str) -> LockfileHandler:
    """Return the handler for ``kind``, or raise UnsupportedManagerError."""
    try:
        manager = PackageManager(kind)
    except ValueError:
        raise UnsupportedManagerError(kind, get_known_managers()) from None
    handler = LOCKFILE_HANDLERS.get(manager)
    if handler is None:  # pragma: no cover - every enum member is registered
        raise UnsupportedManagerError(kind, get_known_managers())
    return handler


def _stamp(path: Path) -> int | None:
    try:
        return path.stat().st_mtime_ns
    except FileNotFoundError:
        return None


class GraphCache:
    """Reuse graphs across queries until the lockfile (or manifest) changes.

    Entries are keyed by (kind, absolute project path) and stamped with the
    modification times of the files the graph was built from.
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[PackageManager, Path], tuple[Stamp, DependencyGraph]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def get(
        self, manager: PackageManager, project_dir: Path, stamp: Stamp
    ) -> DependencyGraph | None:
        with self._lock:
            cached = self._entries.get((manager, project_dir))
        if cached is None or cached[0] != stamp:
            return None
        return cached[1]

    def put(
        self,
        manager: PackageManager,
        project_dir: Path,
        stamp: Stamp,
        graph: DependencyGraph,
    ) -> None:
        with self._lock:
            self._entries[(manager, project_dir)] = (stamp, graph)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


def build_graph(
    kind: PackageManager | str,
    project_dir: Path | str,
    cache: GraphCache | None = None,
) -> DependencyGraph:
    """Read the project's lockfile and normalise it into a DependencyGraph.

    Raises:
        UnsupportedManagerError: If ``kind`` is not a supported package manager
            (raised before touching the filesystem).
        NotFoundError: If the lockfile is missing or unreadable.
        ParseError: If the lockfile or manifest is malformed.
    """
    handler = get_lockfile_handler(kind)
    root = Path(project_dir).resolve()
    lockfile_path = root / handler.lockfile_name
    manifest_path = root / MANIFEST_NAME

    stamp: Stamp = ()
    if cache is not None:
        stamp = (_stamp(lockfile_path),)
        if handler.uses_manifest:
            stamp += (_stamp(manifest_path),)
        if stamp[0] is None:
            raise NotFoundError(lockfile_path)
        cached = cache.get(handler.manager, root, stamp)
        if cached is not None:
            logger.debug("Reusing cached %s graph for %s", handler.manager.value, root)
            return cached

    intermediate = handler.read(lockfile_path)
    manifest = package_json.parse(manifest_path) if handler.uses_manifest else None
    graph = handler.normalize(intermediate, manifest)

    if cache is not None:
        cache.put(handler.manager, root, stamp, graph)
    return graph


def search(
    kind: PackageManager | str,
    project_dir: Path | str,
    targets: Iterable[str],
    cache: GraphCache | None = None,
) -> SearchResult:
    """Return where each of ``targets`` occurs in the project's dependency tree.

    Params:
        kind: package manager that produced the lockfile (npm, pnpm or yarn);
            never guessed from the files present
        project_dir: directory holding the lockfile
        targets: package names to look for
        cache: optional GraphCache to reuse graphs between queries

    Returns: SearchResult with one entry per target name, empty when absent.
    """
    targets = list(targets)
    handler = get_lockfile_handler(kind)
    logger.info(
        "Searching %s lockfile in %s for %d package(s)",
        handler.manager.value,
        project_dir,
        len(set(targets)),
    )
    graph = build_graph(handler.manager, project_dir, cache=cache)
    result = find_occurrences(graph, targets)
    logger.debug(
        "Found %d of %d package(s) across %d occurrence(s)",
        len(result.found),
        len(result),
        len(graph),
    )
    return result
