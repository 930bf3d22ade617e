"""lockfile-search core package.

Finds every installed occurrence of a set of packages across the dependency
tree recorded by an npm, pnpm or yarn lockfile, so override tooling can tell
whether a replacement is in effect or stale copies remain.
"""

from .core import GraphCache, PackageManager, build_graph, search
from .errors import LockfileError, NotFoundError, ParseError, UnsupportedManagerError

__all__ = [
    "GraphCache",
    "LockfileError",
    "NotFoundError",
    "PackageManager",
    "ParseError",
    "UnsupportedManagerError",
    "build_graph",
    "search",
]
