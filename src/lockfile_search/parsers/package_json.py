"""Parse package.json and extract declared root dependencies across sections."""

from __future__ import annotations

import json
from pathlib import Path

from ..errors import ParseError
from ..models.edge import EdgeKind

# First section wins when a name is declared twice.
SECTIONS: tuple[tuple[str, EdgeKind], ...] = (
    ("dependencies", EdgeKind.RUNTIME),
    ("optionalDependencies", EdgeKind.OPTIONAL),
    ("peerDependencies", EdgeKind.PEER),
    ("devDependencies", EdgeKind.DEV),
)


def parse(path: Path) -> list[tuple[str, str, EdgeKind]] | None:
    """Return list of (package, version_expr, kind) from all dependency sections.

    Returns None when the project has no manifest.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise ParseError(f"Failed to read manifest: {exc}", source=str(path)) from exc

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(
            f"Invalid JSON in manifest: {exc.msg}",
            source=str(path),
            line=exc.lineno,
            column=exc.colno,
            offset=exc.pos,
        ) from exc

    if not isinstance(data, dict):
        raise ParseError("Manifest must be a JSON object", source=str(path))

    declared: list[tuple[str, str, EdgeKind]] = []
    seen: set[str] = set()
    for section, kind in SECTIONS:
        deps = data.get(section) or {}
        if not isinstance(deps, dict):
            raise ParseError(f"'{section}' must be an object", source=str(path), path=f"/{section}")
        for name, version in deps.items():
            if name in seen:
                continue
            seen.add(name)
            declared.append((name, str(version), kind))

    return declared
