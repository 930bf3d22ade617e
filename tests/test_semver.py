import pytest

from lockfile_search.parsers.semver import is_exact, strip_peer_suffix, version_key


@pytest.mark.parametrize(
    "version,expected",
    [("1.0.0", True), ("4.17.21", True), ("link:packages/ui", False), ("^1.0.0", False)],
)
def test_is_exact(version, expected):
    assert is_exact(version) is expected


def test_version_key_orders_numerically_and_unparseable_last():
    versions = ["link:packages/ui", "10.0.0", "2.0.0", "1.9.9"]

    assert sorted(versions, key=version_key) == ["1.9.9", "2.0.0", "10.0.0", "link:packages/ui"]


@pytest.mark.parametrize(
    "version,legacy,expected",
    [
        ("18.2.0(react@18.2.0)", False, "18.2.0"),
        ("2.0.0_react@17.0.2", True, "2.0.0"),
        ("2.0.0_react@17.0.2", False, "2.0.0_react@17.0.2"),
        ("1.0.0", True, "1.0.0"),
    ],
)
def test_strip_peer_suffix(version, legacy, expected):
    assert strip_peer_suffix(version, legacy=legacy) == expected
