"""Parse yarn.lock (classic v1 and Berry) into a selector-indexed entry table."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..errors import ParseError
from . import read_lockfile

logger = logging.getLogger(__name__)

LOCKFILE_NAME = "yarn.lock"
METADATA_KEY = "__metadata"


@dataclass(slots=True)
class YarnEntry:
    """A resolved block, shared by every selector in its header."""

    selectors: tuple[str, ...]
    name: str
    version: str
    line: int
    resolution: str | None = None
    dependencies: dict[str, str] = field(default_factory=dict)
    optional_dependencies: dict[str, str] = field(default_factory=dict)
    peer_dependencies: dict[str, str] = field(default_factory=dict)
    dependencies_meta: dict[str, Any] = field(default_factory=dict)

    def is_optional(self, name: str) -> bool:
        if name in self.optional_dependencies:
            return True
        meta = self.dependencies_meta.get(name)
        return isinstance(meta, dict) and str(meta.get("optional", "")).lower() == "true"


@dataclass(slots=True)
class YarnLockfile:
    entries: dict[str, YarnEntry]
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def berry(self) -> bool:
        return bool(self.metadata)

    def lookup(self, name: str, constraint: str) -> YarnEntry | None:
        """Return the entry a ``name: constraint`` requirement resolves to."""
        entry = self.entries.get(f"{name}@{constraint}")
        if entry is None and ":" not in constraint:
            entry = self.entries.get(f"{name}@npm:{constraint}")
        return entry

    def unique_entries(self) -> list[YarnEntry]:
        seen: set[int] = set()
        unique: list[YarnEntry] = []
        for entry in self.entries.values():
            if id(entry) not in seen:
                seen.add(id(entry))
                unique.append(entry)
        return unique

    def root_workspace(self) -> YarnEntry | None:
        for selector, entry in self.entries.items():
            if selector.endswith("@workspace:."):
                return entry
        return None


def selector_name(selector: str) -> str:
    """Return the package name of ``name@range`` (``@scope/name@range`` included)."""
    start = 1 if selector.startswith("@") else 0
    idx = selector.find("@", start)
    if idx <= 0:
        return selector
    return selector[:idx]


def _real_name(selector: str) -> str:
    """Follow ``alias@npm:real@range`` to the real package name."""
    name = selector_name(selector)
    rest = selector[len(name) + 1 :]
    if rest.startswith("npm:"):
        target = rest[len("npm:") :]
        if selector_name(target) != target:
            return selector_name(target)
    return name


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1].replace('\\"', '"')
    return value


def _split_line(text: str, line: int, source: str) -> tuple[str, str | None]:
    """Split ``key value`` (v1) or ``key: value`` (Berry); value None opens a block."""
    if text.startswith('"'):
        end = text.find('"', 1)
        if end == -1:
            raise ParseError("Unterminated quoted key", source=source, line=line)
        key, rest = text[1:end], text[end + 1 :]
        if rest.startswith(":"):
            rest = rest[1:]
    else:
        parts = text.split(None, 1)
        key = parts[0]
        rest = parts[1] if len(parts) > 1 else ""
        if key.endswith(":"):
            key = key[:-1]
    if not key:
        raise ParseError("Empty key", source=source, line=line)
    rest = rest.strip()
    if not rest:
        return key, None
    return key, _unquote(rest)


def _parse_blocks(text: str, source: str) -> tuple[dict[str, Any], dict[str, int]]:
    """Build nested mappings from indentation; returns (blocks, header line numbers)."""
    root: dict[str, Any] = {}
    lines: dict[str, int] = {}
    # frames: [indent of the opening line, mapping, indent of its children]
    stack: list[list[Any]] = [[-1, root, 0]]

    for lineno, raw in enumerate(text.splitlines(), start=1):
        stripped = raw.strip()
        if not stripped or stripped.startswith("#"):
            continue
        indent = len(raw) - len(raw.lstrip(" "))
        if raw[indent] == "\t":
            raise ParseError("Tabs are not allowed for indentation", source=source, line=lineno)

        while stack[-1][0] >= indent:
            stack.pop()
        frame = stack[-1]
        if frame[2] is None:
            frame[2] = indent
        elif frame[2] != indent:
            raise ParseError(
                f"Unexpected indentation of {indent} spaces", source=source, line=lineno
            )
        mapping = frame[1]

        if indent == 0:
            if not stripped.endswith(":"):
                raise ParseError(
                    "Expected a block header ending in ':'", source=source, line=lineno
                )
            key, value = stripped[:-1], None
            lines[key] = lineno
        else:
            key, value = _split_line(stripped, lineno, source)

        if key in mapping:
            raise ParseError(f"Duplicate key {key!r}", source=source, line=lineno)
        if value is None:
            child: dict[str, Any] = {}
            mapping[key] = child
            stack.append([indent, child, None])
        else:
            mapping[key] = value

    return root, lines


def _string_map(block: dict[str, Any], key: str, source: str, line: int) -> dict[str, str]:
    value = block.get(key) or {}
    if not isinstance(value, dict) or any(isinstance(v, dict) for v in value.values()):
        raise ParseError(f"'{key}' must be a block of name/range pairs", source=source, line=line)
    return dict(value)


def parse_text(text: str, source: str = LOCKFILE_NAME) -> YarnLockfile:
    blocks, header_lines = _parse_blocks(text, source)
    metadata: dict[str, Any] = {}
    entries: dict[str, YarnEntry] = {}

    for header, block in blocks.items():
        line = header_lines[header]
        if not isinstance(block, dict):  # pragma: no cover - headers always open blocks
            raise ParseError("Expected a block", source=source, line=line)
        if header == METADATA_KEY:
            metadata = block
            continue

        selectors = tuple(
            part.strip().strip('"') for part in header.split(",") if part.strip().strip('"')
        )
        if not selectors:
            raise ParseError("Block header has no selectors", source=source, line=line)

        version = block.get("version")
        if not isinstance(version, str) or not version:
            raise ParseError(
                "Entry is missing 'version'", source=source, path=selectors[0], line=line
            )
        resolution = block.get("resolution")
        entry = YarnEntry(
            selectors=selectors,
            name=_real_name(resolution if isinstance(resolution, str) else selectors[0]),
            version=version,
            line=line,
            resolution=resolution if isinstance(resolution, str) else None,
            dependencies=_string_map(block, "dependencies", source, line),
            optional_dependencies=_string_map(block, "optionalDependencies", source, line),
            peer_dependencies=_string_map(block, "peerDependencies", source, line),
            dependencies_meta=dict(block.get("dependenciesMeta") or {}),
        )
        for selector in selectors:
            if selector in entries:
                raise ParseError(
                    f"Selector {selector!r} is declared twice", source=source, line=line
                )
            entries[selector] = entry

    logger.debug("Read %d yarn selectors from %s", len(entries), source)
    return YarnLockfile(entries=entries, metadata=metadata)


def parse(path: Path) -> YarnLockfile:
    """Return the entries recorded in ``path``, indexed by selector."""
    return parse_text(read_lockfile(path), source=str(path))
