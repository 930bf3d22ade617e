"""
Tests for the npm package-lock.json reader.
"""

import json
from pathlib import Path

import pytest

from lockfile_search.errors import NotFoundError, ParseError
from lockfile_search.parsers.package_lock import (
    name_from_location,
    parent_location,
    parse,
    parse_text,
)

FIXTURES = Path(__file__).parent / "fixtures"


def test_packages_map_is_read_by_location():
    lockfile = parse(FIXTURES / "npm-hoisted" / "package-lock.json")

    assert not lockfile.legacy
    assert lockfile.lockfile_version == 3
    assert set(lockfile.packages) == {
        "",
        "node_modules/a",
        "node_modules/b",
        "node_modules/c",
        "node_modules/c/node_modules/b",
        "node_modules/d",
        "node_modules/e",
    }
    nested = lockfile.packages["node_modules/c/node_modules/b"]
    assert nested.name == "b"
    assert nested.version == "3.0.0"
    assert lockfile.packages["node_modules/c"].optional_dependencies == {"fsevents": "^2.3.2"}
    assert lockfile.root.dev_dependencies == {"d": "^1.0.0"}


def test_packages_map_takes_precedence_over_legacy_tree():
    lockfile = parse(FIXTURES / "npm-hoisted" / "package-lock.json")

    names = {entry.name for entry in lockfile.packages.values()}
    assert "this-legacy-section-is-ignored" not in names


def test_legacy_tree_is_flattened_into_locations():
    lockfile = parse(FIXTURES / "npm-legacy" / "package-lock.json")

    assert lockfile.legacy
    nested = lockfile.packages["node_modules/c/node_modules/b"]
    assert nested.version == "3.0.0"
    assert nested.dev is True
    assert lockfile.packages["node_modules/a"].dependencies == {"b": "^2.0.0"}


def test_legacy_alias_records_real_package_name():
    lockfile = parse(FIXTURES / "npm-legacy" / "package-lock.json")

    alias = lockfile.packages["node_modules/object-keys"]
    assert alias.name == "@nolyfill/object-keys"
    assert alias.version == "1.0.44"


def test_workspace_link_entries():
    lockfile = parse(FIXTURES / "npm-workspace" / "package-lock.json")

    link = lockfile.packages["node_modules/ui"]
    assert link.link is True
    assert link.resolved == "packages/ui"
    assert link.version is None
    assert not lockfile.packages["packages/ui"].installed
    assert lockfile.packages["packages/ui"].name == "ui"


def test_missing_version_in_nested_legacy_entry():
    text = json.dumps(
        {
            "lockfileVersion": 1,
            "dependencies": {
                "a": {"version": "1.0.0", "dependencies": {"b": {"requires": {}}}},
            },
        }
    )

    with pytest.raises(ParseError) as excinfo:
        parse_text(text)

    assert excinfo.value.path == "/dependencies/a/dependencies/b"
    assert "version" in str(excinfo.value)


def test_missing_version_in_packages_map():
    text = json.dumps(
        {
            "lockfileVersion": 3,
            "packages": {
                "": {"dependencies": {"b": "^1.0.0"}},
                "node_modules/b": {"resolved": "https://registry.npmjs.org/b/-/b-1.0.0.tgz"},
            },
        }
    )

    with pytest.raises(ParseError) as excinfo:
        parse_text(text)

    assert excinfo.value.path == "/packages/node_modules~1b"


def test_link_without_resolved_is_rejected():
    text = json.dumps({"lockfileVersion": 3, "packages": {"node_modules/ui": {"link": True}}})

    with pytest.raises(ParseError):
        parse_text(text)


def test_malformed_json_reports_location():
    with pytest.raises(ParseError) as excinfo:
        parse_text('{\n  "lockfileVersion": 3,\n  "packages": {\n')

    assert excinfo.value.line is not None
    assert excinfo.value.offset is not None


def test_non_object_document_is_rejected():
    with pytest.raises(ParseError):
        parse_text("[]")


def test_missing_lockfile(tmp_path):
    with pytest.raises(NotFoundError):
        parse(tmp_path / "package-lock.json")


def test_location_helpers():
    assert parent_location("") is None
    assert parent_location("node_modules/a") == ""
    assert parent_location("node_modules/a/node_modules/@s/b") == "node_modules/a"
    assert parent_location("packages/ui") == ""
    assert parent_location("packages/ui/node_modules/chalk") == "packages/ui"
    assert name_from_location("node_modules/a/node_modules/@s/b") == "@s/b"
    assert name_from_location("packages/ui") == "ui"
