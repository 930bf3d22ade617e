"""Error taxonomy for lockfile searches.

All three errors are terminal for the current query; callers never get a
partially populated result.
"""

from __future__ import annotations


class LockfileError(RuntimeError):
    """Base error for failures while reading or interpreting a lockfile."""


class NotFoundError(LockfileError):
    """Raised when the lockfile for the requested manager is missing or unreadable."""

    def __init__(self, path: object, reason: str | None = None) -> None:
        self.path = str(path)
        message = f"Lockfile not found: {self.path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class ParseError(LockfileError):
    """Raised when lockfile content is malformed.

    ``path`` identifies the offending entry (a JSON pointer for npm, a key for
    pnpm, a selector for yarn) and ``line``/``column``/``offset`` carry the
    source location whenever the underlying parser reports one.
    """

    def __init__(
        self,
        message: str,
        *,
        source: str | None = None,
        path: str | None = None,
        line: int | None = None,
        column: int | None = None,
        offset: int | None = None,
    ) -> None:
        self.source = source
        self.path = path
        self.line = line
        self.column = column
        self.offset = offset
        super().__init__(self._format(message))

    def _format(self, message: str) -> str:
        where: list[str] = []
        if self.source:
            where.append(self.source)
        if self.line is not None:
            where.append(f"line {self.line}" + (f", column {self.column}" if self.column else ""))
        if self.path:
            where.append(f"at {self.path}")
        if not where:
            return message
        return f"{message} [{'; '.join(where)}]"


class UnsupportedManagerError(LockfileError, ValueError):
    """Raised when the package manager kind is not one of the supported values."""

    def __init__(self, value: object, known: list[str]) -> None:
        self.value = value
        super().__init__(
            f"Unsupported package manager {value!r}. Supported managers: {', '.join(known)}"
        )
