"""Format readers for package manifests and the supported lockfile formats."""

from __future__ import annotations

from pathlib import Path

from ..errors import NotFoundError, ParseError


def read_lockfile(path: Path) -> str:
    """Return lockfile text, raising NotFoundError/ParseError instead of OS errors."""
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise NotFoundError(path) from exc
    except IsADirectoryError as exc:
        raise NotFoundError(path, "is a directory") from exc
    except UnicodeDecodeError as exc:
        raise ParseError(
            f"Lockfile is not valid UTF-8: {exc.reason}", source=str(path), offset=exc.start
        ) from exc
    except OSError as exc:
        raise NotFoundError(path, exc.strerror or str(exc)) from exc
