import pytest

from vulnfeeds.store import FeedError
from vulnfeeds.versions import (
    ECOSYSTEM_GO,
    ECOSYSTEM_MAVEN,
    ECOSYSTEM_NPM,
    ECOSYSTEM_PACKAGIST,
    ECOSYSTEM_PYPI,
    ECOSYSTEM_RUBYGEMS,
    new_version_range,
)


def test_fixed_range_string():
    r = new_version_range("Kubernetes", "1.24.0")
    r.set_fixed("1.24.14")
    assert str(r) == ">=1.24.0, <1.24.14"


def test_last_affected_range_string():
    r = new_version_range("Kubernetes", "1.24.0")
    r.set_last_affected("1.24.14")
    assert str(r) == ">=1.24.0, <=1.24.14"


def test_zero_introduced_is_omitted():
    r = new_version_range(ECOSYSTEM_PYPI, "0")
    r.set_fixed("1.2.3")
    assert str(r) == "<1.2.3"


def test_single_version_range():
    r = new_version_range(ECOSYSTEM_NPM, "1.2.0")
    r.set_last_affected("1.2.0")
    assert str(r) == "=1.2.0"


def test_open_range_string():
    r = new_version_range(ECOSYSTEM_GO, "2.0.0")
    assert str(r) == ">=2.0.0"
    assert r.contains("3.1.0")
    assert not r.contains("1.9.9")


def test_set_fixed_after_last_affected_excludes_bound():
    r = new_version_range(ECOSYSTEM_GO, "1.0.0")
    r.set_last_affected("1.5.0")
    assert r.contains("1.5.0")
    r.set_fixed("1.5.0")
    assert not r.contains("1.5.0")


@pytest.mark.parametrize(
    "version, expected",
    [("1.24.0", True), ("1.24.5", True), ("1.24.14", False), ("1.23.9", False)],
)
def test_semver_contains(version, expected):
    r = new_version_range(ECOSYSTEM_GO, "1.24.0")
    r.set_fixed("1.24.14")
    assert r.contains(version) is expected


def test_semver_prerelease_is_before_release():
    r = new_version_range(ECOSYSTEM_GO, "0")
    r.set_fixed("1.0.0")
    assert r.contains("1.0.0-rc.1")


@pytest.mark.parametrize("version, expected", [("3.8.0", True), ("3.8.4", True), ("4.0.1", False)])
def test_pypi_contains(version, expected):
    r = new_version_range(ECOSYSTEM_PYPI, "0")
    r.set_last_affected("3.8.4")
    assert r.contains(version) is expected


def test_pypi_exact_version():
    r = new_version_range(ECOSYSTEM_PYPI, "4.0.1")
    r.set_last_affected("4.0.1")
    assert r.contains("4.0.1")
    assert not r.contains("4.0.2")


def test_rubygems_prerelease_is_before_release():
    r = new_version_range(ECOSYSTEM_RUBYGEMS, "0")
    r.set_fixed("1.2.0")
    assert r.contains("1.2.0.pre")
    assert not r.contains("1.2.0")
    assert not r.contains("1.2")


def test_maven_qualifiers():
    r = new_version_range(ECOSYSTEM_MAVEN, "0")
    r.set_fixed("1.0")
    assert r.contains("1.0-alpha1")
    assert r.contains("1.0-rc1")
    assert not r.contains("1.0.0")
    assert not r.contains("1.0-sp1")


def test_default_ecosystem_contains():
    r = new_version_range(ECOSYSTEM_PACKAGIST, "1.0")
    r.set_fixed("2.0")
    assert r.contains("1.5")
    assert not r.contains("2.0.0")


def test_unknown_ecosystem_uses_default_scheme():
    r = new_version_range("Unknown", "1.0")
    assert r.contains("1.0.1")
    assert not r.contains("0.9")


def test_invalid_version_raises():
    r = new_version_range(ECOSYSTEM_GO, "1.0.0")
    with pytest.raises(FeedError, match="failed to parse version"):
        r.contains("not-a-version")


def test_invalid_constraint_raises():
    r = new_version_range(ECOSYSTEM_GO, "abc")
    with pytest.raises(FeedError, match="failed to parse version constraint"):
        r.contains("1.0.0")


def test_invalid_pypi_version_raises():
    r = new_version_range(ECOSYSTEM_PYPI, "1.0")
    with pytest.raises(FeedError, match="failed to parse version"):
        r.contains("not a version!")