import json

import pytest

from vulnfeeds.glad import VulnSrc, supported_id
from vulnfeeds.store import FeedError, Store

DESC = (
    "A denial-of-service vulnerability exists in the WS-Security plugin functionality of "
    "Genivia gSOAP. A specially crafted SOAP request can lead to denial of service. An "
    "attacker can send an HTTP request to trigger this vulnerability."
)


def _dir(tmp_path):
    d = tmp_path / "vuln-list" / "glad" / "conan" / "gsoap"
    d.mkdir(parents=True)
    return d


def test_supported_id():
    assert supported_id("CVE-2020-13574.json")
    assert supported_id("GMS-2020-1.json")
    assert not supported_id("README.md")


def test_update_happy(tmp_path):
    d = _dir(tmp_path)
    (d / "CVE-2020-13574.json").write_text(json.dumps({
        "Identifier": "CVE-2020-13574",
        "PackageSlug": "conan/gsoap",
        "Title": "NULL Pointer Dereference",
        "Description": DESC,
        "AffectedRange": "=2.8.107",
        "FixedVersions": [],
        "Urls": ["https://nvd.nist.gov/vuln/detail/CVE-2020-13574"],
    }))
    (d / "ignored.json").write_text("not json")
    store = Store()
    VulnSrc(store).update(tmp_path)
    bucket = "conan::GitLab Advisory Database Community"
    assert store.get("data-source", bucket) == {
        "ID": "glad",
        "Name": "GitLab Advisory Database Community",
        "URL": "https://gitlab.com/gitlab-org/advisories-community",
    }
    assert store.get("advisory-detail", "CVE-2020-13574", bucket, "gsoap") == {
        "VulnerableVersions": ["=2.8.107"]
    }
    assert store.get("vulnerability-detail", "CVE-2020-13574", "glad") == {
        "ID": "CVE-2020-13574",
        "Title": "NULL Pointer Dereference",
        "Description": DESC,
        "References": ["https://nvd.nist.gov/vuln/detail/CVE-2020-13574"],
    }


def test_update_sad(tmp_path):
    (_dir(tmp_path) / "CVE-2020-1.json").write_text("{broken")
    with pytest.raises(FeedError, match="failed to decode GLAD"):
        VulnSrc(Store()).update(tmp_path)


def test_bad_slug(tmp_path):
    (_dir(tmp_path) / "CVE-2020-1.json").write_text(
        json.dumps({"Identifier": "CVE-2020-1", "PackageSlug": "noslash"})
    )
    with pytest.raises(FeedError, match="failed to parse package slug"):
        VulnSrc(Store()).update(tmp_path)