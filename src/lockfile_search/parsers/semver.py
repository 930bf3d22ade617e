"""Interpretation of exact versions recorded in lockfiles, built atop packaging.version.

Lockfiles only ever record resolved versions, so no range matching is done
here. npm-style versions that PEP 440 cannot express (``0.0.0-use.local``,
``link:packages/ui``) sort after every parseable version, lexicographically.
"""

from __future__ import annotations

from packaging.version import InvalidVersion, Version


def _parse_version(v: str) -> Version | None:
    try:
        return Version(v)
    except InvalidVersion:
        return None


def is_exact(version: str) -> bool:
    return _parse_version(version) is not None


def version_key(version: str) -> tuple[int, Version | str]:
    parsed = _parse_version(version)
    if parsed is None:
        return (1, version)
    return (0, parsed)


def strip_peer_suffix(version: str, legacy: bool = False) -> str:
    """Drop pnpm peer resolution suffixes.

    ``1.0.0(react@18.2.0)`` for lockfile v6+, ``1.0.0_react@18.2.0`` when
    ``legacy`` (lockfile v5).
    """
    markers = ("(", "_") if legacy else ("(",)
    for marker in markers:
        idx = version.find(marker)
        if idx > 0:
            version = version[:idx]
    return version
