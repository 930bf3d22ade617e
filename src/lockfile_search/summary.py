"""Human-readable Markdown rendering of a SearchResult."""

from __future__ import annotations

from .models import SearchResult


def _format_path(path: list[str] | tuple[str, ...]) -> str:
    return " > ".join(path) if path else "(top level)"


def render_summary(result: SearchResult, title: str = "Lockfile search") -> str:
    """Return a Markdown string with totals and a table of occurrences."""
    found = result.found
    total = sum(len(occurrences) for occurrences in result.values())

    lines = []
    lines.append(f"# {title}")
    lines.append("")
    lines.append(
        f"Packages searched: {len(result)} | Found: {len(found)} | Occurrences: {total}"
    )
    lines.append("")
    lines.append("| Package | Version | Path | Importer | Dev |")
    lines.append("| --- | --- | --- | --- | --- |")

    for name, occurrences in result.items():
        if not occurrences:
            lines.append(f"| {name} | not installed | n/a | n/a | n/a |")
            continue
        for occurrence in occurrences:
            dev = "yes" if occurrence.dev else "no"
            version = occurrence.version
            if occurrence.alias:
                version = f"{version} (as {occurrence.alias})"
            lines.append(
                f"| {name} | {version} | {_format_path(occurrence.path)}"
                f" | {occurrence.importer} | {dev} |"
            )

    if not len(result):
        lines.append("| (no packages requested) | n/a | n/a | n/a | n/a |")

    duplicates = [name for name in found if result.has_duplicates(name)]
    if duplicates:
        lines.append("")
        lines.append("## Multiple versions installed")
        lines.append("")
        for name in duplicates:
            lines.append(f"- {name}: {', '.join(result.versions(name))}")

    unresolved = [(name, edge) for name, edges in result.unresolved.items() for edge in edges]
    if unresolved:
        lines.append("")
        lines.append("## Declared but not installed")
        lines.append("")
        for name, edge in unresolved:
            parent = "the project"
            if edge.parent is not None:
                parent = _format_path(edge.parent[2] + (edge.parent[1],))
            lines.append(f"- {name}@{edge.constraint} ({edge.kind.value}) required by {parent}")

    return "\n".join(lines) + "\n"
