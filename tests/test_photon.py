import json

import pytest

from vulnfeeds.photon import VulnSrc
from vulnfeeds.store import Advisory, FeedError, Store


def _write(root, name, content):
    d = root / "vuln-list" / "photon" / "3.0"
    d.mkdir(parents=True, exist_ok=True)
    (d / name).write_text(content)


def test_update_happy(tmp_path):
    _write(tmp_path, "CVE-2019-0199.json", json.dumps({
        "os_version": "3.0", "cve_id": "CVE-2019-0199", "pkg": "apache-tomcat",
        "cve_score": 7.5, "aff_ver": "all versions before 8.5.40-1.ph3 are vulnerable",
        "res_ver": "8.5.40-1.ph3",
    }))
    store = Store()
    VulnSrc(store).update(tmp_path)
    assert store.get("data-source", "Photon OS 3.0") == {
        "ID": "photon", "Name": "Photon OS CVE metadata",
        "URL": "https://packages.vmware.com/photon/photon_cve_metadata/",
    }
    assert store.get("advisory-detail", "CVE-2019-0199", "Photon OS 3.0", "apache-tomcat") == {
        "FixedVersion": "8.5.40-1.ph3"
    }
    assert store.get("vulnerability-detail", "CVE-2019-0199", "photon") == {"CvssScoreV3": 7.5}
    assert store.get("vulnerability-id", "CVE-2019-0199") == {}


def test_update_bad_path(tmp_path):
    with pytest.raises(FileNotFoundError):
        VulnSrc(Store()).update(tmp_path / "badPath")


def test_update_sad(tmp_path):
    _write(tmp_path, "broken.json", "{broken")
    with pytest.raises(FeedError, match="failed to decode Photon JSON"):
        VulnSrc(Store()).update(tmp_path)


@pytest.fixture
def happy_store():
    store = Store()
    store.put_advisory_detail(
        "CVE-2019-3828", "ansible", ["Photon OS 1.0"], Advisory(fixed_version="2.7.6-2.ph3")
    )
    return store


def test_get_happy(happy_store):
    assert VulnSrc(happy_store).get("1.0", "ansible") == [
        Advisory(vulnerability_id="CVE-2019-3828", fixed_version="2.7.6-2.ph3")
    ]


def test_get_none(happy_store):
    assert VulnSrc(happy_store).get("2.0", "ansible") == []


def test_get_error():
    store = Store()
    store.put_advisory_detail("CVE-2019-3828", "ansible", ["Photon OS 1.0"], {"FixedVersion": 1})
    with pytest.raises(FeedError, match="failed to unmarshal advisory JSON"):
        VulnSrc(store).get("1.0", "ansible")