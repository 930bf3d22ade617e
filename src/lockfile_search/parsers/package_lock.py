"""Parse npm package-lock.json into a location-keyed install tree.

Supports npm v1 ("dependencies" tree) and v2+ ("packages" map). The v2+ map
wins whenever present; a v1 tree is converted into the same
``node_modules/a/node_modules/b`` location keys so that downstream code only
ever sees one shape.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator

from ..errors import ParseError
from . import read_lockfile

logger = logging.getLogger(__name__)

LOCKFILE_NAME = "package-lock.json"

_SPECS: dict[str, Any] = {"type": "object", "additionalProperties": {"type": "string"}}

LOCKFILE_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "properties": {
        "lockfileVersion": {"type": "integer"},
        "packages": {
            "type": "object",
            "patternProperties": {
                # Installed copies; workspace sources and the root are matched below.
                "(^|/)node_modules/": {
                    "type": "object",
                    "properties": {
                        "version": {"type": "string"},
                        "resolved": {"type": "string"},
                        "link": {"type": "boolean"},
                        "dependencies": {"$ref": "#/$defs/specs"},
                        "optionalDependencies": {"$ref": "#/$defs/specs"},
                        "peerDependencies": {"$ref": "#/$defs/specs"},
                    },
                    "if": {"properties": {"link": {"const": True}}, "required": ["link"]},
                    "then": {"required": ["resolved"]},
                    "else": {"required": ["version"]},
                }
            },
            "additionalProperties": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "version": {"type": "string"},
                    "dependencies": {"$ref": "#/$defs/specs"},
                    "devDependencies": {"$ref": "#/$defs/specs"},
                    "optionalDependencies": {"$ref": "#/$defs/specs"},
                    "peerDependencies": {"$ref": "#/$defs/specs"},
                },
            },
        },
        "dependencies": {"$ref": "#/$defs/tree"},
    },
    "$defs": {
        "specs": _SPECS,
        "tree": {"type": "object", "additionalProperties": {"$ref": "#/$defs/treeEntry"}},
        "treeEntry": {
            "type": "object",
            "required": ["version"],
            "properties": {
                "version": {"type": "string"},
                "dev": {"type": "boolean"},
                "optional": {"type": "boolean"},
                "requires": {"$ref": "#/$defs/specs"},
                "dependencies": {"$ref": "#/$defs/tree"},
            },
        },
    },
}

_VALIDATOR = Draft202012Validator(LOCKFILE_SCHEMA)


@dataclass(slots=True)
class NpmEntry:
    """One location of the install tree ("" is the project itself)."""

    location: str
    name: str
    version: str | None = None
    dependencies: dict[str, str] = field(default_factory=dict)
    optional_dependencies: dict[str, str] = field(default_factory=dict)
    peer_dependencies: dict[str, str] = field(default_factory=dict)
    dev_dependencies: dict[str, str] = field(default_factory=dict)
    dev: bool = False
    link: bool = False
    resolved: str | None = None

    @property
    def installed(self) -> bool:
        """True for copies under node_modules, False for the root and workspace sources."""
        return is_installed_location(self.location)


@dataclass(slots=True)
class NpmLockfile:
    lockfile_version: int
    packages: dict[str, NpmEntry]
    legacy: bool = False

    @property
    def root(self) -> NpmEntry:
        return self.packages[""]


def is_installed_location(location: str) -> bool:
    return location.startswith("node_modules/") or "/node_modules/" in location


def parent_location(location: str) -> str | None:
    """Return the location whose node_modules directory holds ``location``.

    Workspace sources (``packages/ui``) resolve against the project root, as Node
    does when walking up from a directory outside any node_modules.
    """
    if location == "":
        return None
    idx = location.rfind("node_modules/")
    if idx <= 0:
        return ""
    return location[: idx - 1]


def name_from_location(location: str) -> str:
    idx = location.rfind("node_modules/")
    if idx == -1:
        return location.rsplit("/", 1)[-1]
    return location[idx + len("node_modules/") :]


def _pointer(parts: Any) -> str:
    escaped = [str(p).replace("~", "~0").replace("/", "~1") for p in parts]
    return "/" + "/".join(escaped)


def _validate(document: dict[str, Any], source: str) -> None:
    errors = sorted(
        _VALIDATOR.iter_errors(document), key=lambda e: [str(p) for p in e.absolute_path]
    )
    if errors:
        first = errors[0]
        raise ParseError(
            f"Invalid lockfile entry: {first.message}",
            source=source,
            path=_pointer(first.absolute_path),
        )


def _entry_from_packages(location: str, meta: dict[str, Any]) -> NpmEntry:
    # Aliased installs record the real package name; they are still required
    # under their directory name.
    name = meta.get("name") or name_from_location(location)
    return NpmEntry(
        location=location,
        name=name,
        version=meta.get("version"),
        dependencies=dict(meta.get("dependencies") or {}),
        optional_dependencies=dict(meta.get("optionalDependencies") or {}),
        peer_dependencies=dict(meta.get("peerDependencies") or {}),
        dev_dependencies=dict(meta.get("devDependencies") or {}),
        dev=bool(meta.get("dev", False)),
        link=bool(meta.get("link", False)),
        resolved=meta.get("resolved"),
    )


def _flatten_tree(
    tree: dict[str, Any], parent: str, packages: dict[str, NpmEntry]
) -> None:
    for name, meta in tree.items():
        prefix = f"{parent}/" if parent else ""
        location = f"{prefix}node_modules/{name}"
        real_name, version = name, meta["version"]
        if version.startswith("npm:") and "@" in version[5:]:
            real_name, version = version[4:].rsplit("@", 1)
        packages[location] = NpmEntry(
            location=location,
            name=real_name,
            version=version,
            dependencies=dict(meta.get("requires") or {}),
            dev=bool(meta.get("dev", False)),
        )
        nested = meta.get("dependencies")
        if nested:
            _flatten_tree(nested, location, packages)


def parse_text(text: str, source: str = LOCKFILE_NAME) -> NpmLockfile:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(
            f"Invalid JSON: {exc.msg}",
            source=source,
            line=exc.lineno,
            column=exc.colno,
            offset=exc.pos,
        ) from exc

    if not isinstance(data, dict):
        raise ParseError("Lockfile must be a JSON object", source=source, path="/")

    lockfile_version = data.get("lockfileVersion", 1)
    packages_map = data.get("packages")

    if isinstance(packages_map, dict):
        _validate({k: v for k, v in data.items() if k != "dependencies"}, source)
        packages = {
            location: _entry_from_packages(location, meta)
            for location, meta in sorted(packages_map.items())
        }
        if "" not in packages:
            packages[""] = NpmEntry(location="", name=str(data.get("name") or ""))
        logger.debug("Read %d package locations from %s", len(packages) - 1, source)
        return NpmLockfile(lockfile_version=lockfile_version, packages=packages)

    _validate(data, source)
    packages = {
        "": NpmEntry(location="", name=str(data.get("name") or ""), version=data.get("version"))
    }
    _flatten_tree(data.get("dependencies") or {}, "", packages)
    logger.debug("Read %d legacy dependency entries from %s", len(packages) - 1, source)
    return NpmLockfile(lockfile_version=lockfile_version, packages=packages, legacy=True)


def parse(path: Path) -> NpmLockfile:
    """Return the install tree recorded in ``path``."""
    return parse_text(read_lockfile(path), source=str(path))
