#!/usr/bin/env python3
"""Local CLI entrypoint to search a project's lockfile for packages.

Usage:
  python scripts/search.py --manager pnpm --root . has-symbols object-keys [--format markdown]

This calls the same core search used by the override tooling.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from lockfile_search.core import get_known_managers, search
from lockfile_search.errors import LockfileError
from lockfile_search.summary import render_summary

EXIT_ERROR = 2
EXIT_DUPLICATES = 10


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("packages", nargs="+", help="Package names to look for")
    parser.add_argument(
        "--manager", required=True, help=f"One of: {', '.join(get_known_managers())}"
    )
    parser.add_argument("--root", type=Path, default=Path("."))
    parser.add_argument(
        "--format",
        choices=("json", "markdown"),
        default=os.getenv("LOCKFILE_SEARCH_FORMAT", "json").strip().lower() or "json",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOCKFILE_SEARCH_LOG_LEVEL", "WARNING").strip().upper() or "WARNING",
    )
    parser.add_argument(
        "--fail-on-duplicates",
        action="store_true",
        help="Exit with status 10 when a package is installed in more than one version",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(levelname)s %(name)s: %(message)s")

    try:
        result = search(args.manager, args.root, args.packages)
    except LockfileError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_ERROR

    if args.format == "markdown":
        print(render_summary(result), end="")
    else:
        print(json.dumps(result.to_dict(), indent=2))

    if args.fail_on_duplicates and any(result.has_duplicates(name) for name in result):
        return EXIT_DUPLICATES
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
