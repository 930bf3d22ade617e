"""Pytest configuration and fixtures for lockfile-search tests."""

import json
import textwrap
from pathlib import Path

import pytest

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES


@pytest.fixture
def write_project(tmp_path):
    """Write files into a temporary project directory and return its path.

    String contents are dedented; anything else is dumped as JSON.
    """

    def _write(files: dict) -> Path:
        for name, content in files.items():
            path = tmp_path / name
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, str):
                text = textwrap.dedent(content).lstrip("\n")
            else:
                text = json.dumps(content, indent=2)
            path.write_text(text, encoding="utf-8")
        return tmp_path

    return _write
