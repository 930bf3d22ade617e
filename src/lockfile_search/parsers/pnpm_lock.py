"""Parse pnpm-lock.yaml into importers and a flat package index.

Handles lockfile v5 (``/name/1.0.0_peer`` keys), v6 (``/name@1.0.0(peer)``
keys, ``{specifier, version}`` importer entries) and v9 (``packages`` holds
metadata, ``snapshots`` holds the per-peer-set dependency lists).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from ..errors import ParseError
from ..models.edge import EdgeKind
from . import read_lockfile
from .semver import strip_peer_suffix

logger = logging.getLogger(__name__)

LOCKFILE_NAME = "pnpm-lock.yaml"
ROOT_IMPORTER = "."

_IMPORTER_SECTIONS: tuple[tuple[str, EdgeKind], ...] = (
    ("dependencies", EdgeKind.RUNTIME),
    ("optionalDependencies", EdgeKind.OPTIONAL),
    ("devDependencies", EdgeKind.DEV),
)


@dataclass(slots=True)
class PnpmDependency:
    """A direct dependency of an importer: declared specifier plus resolved reference."""

    name: str
    specifier: str
    ref: str
    kind: EdgeKind

    @property
    def link(self) -> str | None:
        if self.ref.startswith("link:"):
            return self.ref[len("link:") :]
        return None


@dataclass(slots=True)
class PnpmImporter:
    id: str
    dependencies: list[PnpmDependency] = field(default_factory=list)


@dataclass(slots=True)
class PnpmPackage:
    key: str
    name: str
    version: str
    dependencies: dict[str, str] = field(default_factory=dict)
    optional_dependencies: dict[str, str] = field(default_factory=dict)
    peer_dependencies: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class PnpmLockfile:
    lockfile_version: str
    importers: dict[str, PnpmImporter]
    packages: dict[str, PnpmPackage]

    @property
    def legacy(self) -> bool:
        return _is_legacy(self.lockfile_version)

    def resolve(self, name: str, ref: str) -> PnpmPackage | None:
        """Return the package a dependency reference points at, or None when absent."""
        if ref.startswith("link:"):
            return None
        for candidate in self._candidate_keys(name, ref):
            package = self.packages.get(candidate)
            if package is not None:
                return package
        return None

    def _candidate_keys(self, name: str, ref: str) -> list[str]:
        if self.legacy:
            if ref.startswith("/"):
                return [_legacy_key(ref)]
            return [f"{name}@{ref}"]
        bare = ref.lstrip("/")
        candidates = [f"{name}@{bare}"]
        # Aliases record the target's full key ("string-width@4.2.3").
        if _split_key(bare) is not None:
            candidates.append(bare)
        return candidates


def _is_legacy(lockfile_version: str) -> bool:
    try:
        return int(lockfile_version.split(".", 1)[0]) < 6
    except ValueError:
        return False


def _split_key(key: str) -> tuple[str, str] | None:
    """Split ``name@version(peers)`` (scoped names included) at the version separator."""
    start = 1 if key.startswith("@") else 0
    idx = key.find("@", start)
    if idx <= 0:
        return None
    name, version = key[:idx], key[idx + 1 :]
    if not version or "(" in name:
        return None
    return name, version


def _legacy_key(key: str) -> str:
    """Convert a v5 ``/@scope/name/1.0.0_peer`` key into ``@scope/name@1.0.0_peer``."""
    parts = key.lstrip("/").split("/")
    n = 2 if parts[0].startswith("@") else 1
    return "/".join(parts[:n]) + "@" + "/".join(parts[n:])


def _mapping(value: Any, source: str, path: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ParseError("Expected a mapping", source=source, path=path)
    return value


def _string_map(value: Any, source: str, path: str) -> dict[str, str]:
    return {str(k): str(v) for k, v in _mapping(value, source, path).items()}


def _read_importer(
    importer_id: str, section: dict[str, Any], source: str
) -> PnpmImporter:
    prefix = f"importers.{importer_id}"
    specifiers = _string_map(section.get("specifiers"), source, f"{prefix}.specifiers")
    importer = PnpmImporter(id=importer_id)
    for section_name, kind in _IMPORTER_SECTIONS:
        deps = _mapping(section.get(section_name), source, f"{prefix}.{section_name}")
        for name, value in deps.items():
            path = f"{prefix}.{section_name}.{name}"
            if isinstance(value, dict):
                ref = value.get("version")
                if ref is None:
                    raise ParseError("Dependency is missing 'version'", source=source, path=path)
                specifier = str(value.get("specifier", ref))
            else:
                ref = value
                specifier = specifiers.get(str(name), str(value))
            if ref is None or ref == "":
                raise ParseError("Dependency has an empty version", source=source, path=path)
            importer.dependencies.append(
                PnpmDependency(name=str(name), specifier=specifier, ref=str(ref), kind=kind)
            )
    return importer


def _read_package(
    key: str, meta: dict[str, Any], snapshot: dict[str, Any], legacy: bool, source: str
) -> PnpmPackage:
    split = _split_key(key)
    name = meta.get("name") or (split[0] if split else None)
    version = meta.get("version") or (split[1] if split else None)
    if not name or not version:
        raise ParseError(
            "Cannot determine package name and version", source=source, path=f"packages.{key}"
        )
    return PnpmPackage(
        key=key,
        name=str(name),
        version=strip_peer_suffix(str(version), legacy=legacy),
        dependencies=_string_map(snapshot.get("dependencies"), source, f"{key}.dependencies"),
        optional_dependencies=_string_map(
            snapshot.get("optionalDependencies"), source, f"{key}.optionalDependencies"
        ),
        peer_dependencies=_string_map(
            meta.get("peerDependencies") or snapshot.get("peerDependencies"),
            source,
            f"{key}.peerDependencies",
        ),
    )


def parse_text(text: str, source: str = LOCKFILE_NAME) -> PnpmLockfile:
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        raise ParseError(
            f"Invalid YAML: {getattr(exc, 'problem', None) or exc}",
            source=source,
            line=mark.line + 1 if mark is not None else None,
            column=mark.column + 1 if mark is not None else None,
            offset=mark.index if mark is not None else None,
        ) from exc

    if not isinstance(data, dict):
        raise ParseError("Lockfile must be a mapping", source=source)

    lockfile_version = str(data.get("lockfileVersion", ""))
    legacy = _is_legacy(lockfile_version)

    raw_importers = data.get("importers")
    if raw_importers is None:
        # Single-project lockfiles keep the root importer at the top level.
        raw_importers = {ROOT_IMPORTER: data}
    importers = {
        str(importer_id): _read_importer(
            str(importer_id), _mapping(section, source, f"importers.{importer_id}"), source
        )
        for importer_id, section in _mapping(raw_importers, source, "importers").items()
    }

    raw_packages = _mapping(data.get("packages"), source, "packages")
    snapshots = data.get("snapshots")
    packages: dict[str, PnpmPackage] = {}
    if snapshots is not None:
        for key, snapshot in _mapping(snapshots, source, "snapshots").items():
            key = str(key)
            base = key.split("(", 1)[0]
            meta = _mapping(raw_packages.get(base), source, f"packages.{base}")
            packages[key] = _read_package(
                key, meta, _mapping(snapshot, source, f"snapshots.{key}"), False, source
            )
    else:
        for raw_key, meta in raw_packages.items():
            key = _legacy_key(str(raw_key)) if legacy else str(raw_key).lstrip("/")
            meta = _mapping(meta, source, f"packages.{raw_key}")
            packages[key] = _read_package(key, meta, meta, legacy, source)

    logger.debug(
        "Read %d importers and %d packages from %s", len(importers), len(packages), source
    )
    return PnpmLockfile(lockfile_version=lockfile_version, importers=importers, packages=packages)


def parse(path: Path) -> PnpmLockfile:
    """Return importers and packages recorded in ``path``."""
    return parse_text(read_lockfile(path), source=str(path))
