import json

import pytest

from vulnfeeds.nvd import VulnSrc, parse_item
from vulnfeeds.store import FeedError, Severity, Store

ITEM = {
    "cve": {
        "CVE_data_meta": {"ID": "CVE-2020-0001"},
        "problemtype": {"problemtype_data": [{"description": [{"lang": "en", "value": "CWE-269"}]}]},
        "references": {"reference_data": [
            {"url": "https://source.android.com/security/bulletin/2020-01-01"}
        ]},
        "description": {"description_data": [{"lang": "en", "value": "In getProcessRecordLocked"}]},
    },
    "impact": {
        "baseMetricV3": {"cvssV3": {
            "vectorString": "CVSS:3.1/AV:L/AC:L/PR:L/UI:N/S:U/C:H/I:H/A:H",
            "baseScore": 7.8, "baseSeverity": "HIGH",
        }},
        "baseMetricV2": {"cvssV2": {"vectorString": "AV:L/AC:L/Au:N/C:C/I:C/A:C", "baseScore": 7.2},
                         "severity": "HIGH"},
    },
    "publishedDate": "2001-01-01T01:01Z",
    "lastModifiedDate": "2020-01-01T01:01Z",
}


def test_parse_item():
    cve_id, detail = parse_item(ITEM)
    assert cve_id == "CVE-2020-0001"
    assert detail.severity is Severity.HIGH
    assert detail.cwe_ids == ["CWE-269"]


def test_update_happy(tmp_path):
    d = tmp_path / "vuln-list-nvd" / "feed" / "2020"
    d.mkdir(parents=True)
    (d / "CVE-2020-0001.json").write_text(json.dumps(ITEM))
    store = Store()
    VulnSrc(store).update(tmp_path)
    assert store.get("vulnerability-detail", "CVE-2020-0001", "nvd") == {
        "Description": "In getProcessRecordLocked",
        "CvssScore": 7.2,
        "CvssVector": "AV:L/AC:L/Au:N/C:C/I:C/A:C",
        "CvssScoreV3": 7.8,
        "CvssVectorV3": "CVSS:3.1/AV:L/AC:L/PR:L/UI:N/S:U/C:H/I:H/A:H",
        "Severity": int(Severity.HIGH),
        "SeverityV3": int(Severity.HIGH),
        "CweIDs": ["CWE-269"],
        "References": ["https://source.android.com/security/bulletin/2020-01-01"],
        "LastModifiedDate": "2020-01-01T01:01:00Z",
        "PublishedDate": "2001-01-01T01:01:00Z",
    }


def test_update_bad_path(tmp_path):
    with pytest.raises(FileNotFoundError):
        VulnSrc(Store()).update(tmp_path / "badPath")


def test_update_sad(tmp_path):
    d = tmp_path / "vuln-list-nvd" / "feed"
    d.mkdir(parents=True)
    (d / "bad.json").write_text("[broken")
    with pytest.raises(FeedError, match="failed to decode NVD JSON"):
        VulnSrc(Store()).update(tmp_path)