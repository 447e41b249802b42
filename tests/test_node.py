import json

import pytest

from vulnfeeds.node import (
    RawAdvisory,
    VulnSrc,
    convert_to_generic_advisory,
    parse_cvss_score,
)
from vulnfeeds.store import Advisory, FeedError, Store, VulnerabilityDetail

BUCKET = "npm::Node.js Ecosystem Security Working Group"
SOURCE_JSON = {
    "ID": "nodejs-security-wg",
    "Name": "Node.js Ecosystem Security Working Group",
    "URL": "https://github.com/nodejs/security-wg",
}

BASSMASTER_DESCRIPTION = (
    "A vulnerability exists in bassmaster <= 1.5.1 that allows for an attacker to provide "
    "arbitrary JavaScript that is then executed server side via eval."
)
BASSMASTER_REFERENCES = [
    "https://www.npmjs.org/package/bassmaster",
    "https://github.com/hapijs/bassmaster/commit/b751602d8cb7194ee62a61e085069679525138c4",
]


def bassmaster(cvss_score):
    return {
        "id": 1,
        "title": "Arbitrary JavaScript Execution",
        "module_name": "Bassmaster",
        "cves": ["CVE-2014-7205"],
        "vulnerable_versions": "<=1.5.1",
        "patched_versions": ">=1.5.2",
        "overview": BASSMASTER_DESCRIPTION,
        "recommendation": "Update to version 1.5.2 or later.",
        "references": BASSMASTER_REFERENCES,
        "cvss_score": cvss_score,
    }


def run(tmp_path, documents):
    vuln_dir = tmp_path / "nodejs-security-wg" / "vuln" / "npm"
    vuln_dir.mkdir(parents=True)
    for name, content in documents.items():
        text = content if isinstance(content, str) else json.dumps(content)
        (vuln_dir / name).write_text(text)
    store = Store()
    VulnSrc(store).update(tmp_path)
    return store


@pytest.mark.parametrize("score", [6.5, "6.5 (Medium)"])
def test_update_npm_package(tmp_path, score):
    store = run(tmp_path, {"1.json": bassmaster(score)})
    assert store.get("data-source", BUCKET) == SOURCE_JSON
    assert Advisory.from_json(
        store.get("advisory-detail", "CVE-2014-7205", BUCKET, "bassmaster")
    ) == Advisory(patched_versions=[">=1.5.2"], vulnerable_versions=["<=1.5.1"])
    assert VulnerabilityDetail.from_json(
        store.get("vulnerability-detail", "CVE-2014-7205", "nodejs-security-wg")
    ) == VulnerabilityDetail(
        id="CVE-2014-7205",
        title="Arbitrary JavaScript Execution",
        description=BASSMASTER_DESCRIPTION,
        references=BASSMASTER_REFERENCES,
        cvss_score=6.5,
    )
    assert store.get("vulnerability-id", "CVE-2014-7205") == {}


def test_update_skips_node_core(tmp_path):
    store = run(
        tmp_path,
        {"1.json": {"id": 1, "title": "core", "cves": ["CVE-2017-0001"], "cvss_score": "4.8 (Medium)"}},
    )
    assert store.get("data-source", BUCKET) == SOURCE_JSON
    assert not store.has_bucket("advisory-detail")
    assert not store.has_bucket("vulnerability-id")


def test_update_no_cvss_and_no_severity(tmp_path):
    description = (
        "The c-ares function ares_parse_naptr_reply(), which is used for parsing NAPTR\n"
        "responses, could be triggered to read memory outside of the given input buffer\n"
        "if the passed in DNS response packet was crafted in a particular way.\n\n"
    )
    store = run(
        tmp_path,
        {"0.json": {"id": 0, "module_name": "missingcvss-missingseverity-package", "overview": description}},
    )
    assert store.get(
        "advisory-detail", "NSWG-ECO-0", BUCKET, "missingcvss-missingseverity-package"
    ) == {}
    assert VulnerabilityDetail.from_json(
        store.get("vulnerability-detail", "NSWG-ECO-0", "nodejs-security-wg")
    ) == VulnerabilityDetail(id="NSWG-ECO-0", description=description, cvss_score=-1)
    assert store.get("vulnerability-id", "NSWG-ECO-0") == {}


def test_update_null_cvss(tmp_path):
    store = run(
        tmp_path,
        {
            "334.json": {
                "id": 334,
                "title": "Downloads resources over HTTP",
                "module_name": "hubl-server",
                "cves": [],
                "vulnerable_versions": "<=99.999.99999",
                "patched_versions": "<0.0.0",
                "overview": "The hubl-server module is a wrapper for the HubL Development Server.",
                "cvss_score": None,
            }
        },
    )
    assert Advisory.from_json(
        store.get("advisory-detail", "NSWG-ECO-334", BUCKET, "hubl-server")
    ) == Advisory(patched_versions=["<0.0.0"], vulnerable_versions=["<=99.999.99999"])
    detail = VulnerabilityDetail.from_json(
        store.get("vulnerability-detail", "NSWG-ECO-334", "nodejs-security-wg")
    )
    assert detail.cvss_score == -1
    assert detail.title == "Downloads resources over HTTP"
    assert store.get("vulnerability-id", "NSWG-ECO-334") == {}


def test_update_ignores_non_json_files(tmp_path):
    store = run(tmp_path, {"README.md": "not json at all", "1.json": bassmaster(6.5)})
    assert store.get("vulnerability-id", "CVE-2014-7205") == {}


def test_update_invalid_json_rolls_back(tmp_path):
    vuln_dir = tmp_path / "nodejs-security-wg" / "vuln"
    vuln_dir.mkdir(parents=True)
    (vuln_dir / "bad.json").write_text("{invalid")
    store = Store()
    with pytest.raises(FeedError, match="failed to update node vulnerabilities"):
        VulnSrc(store).update(tmp_path)
    assert not store.has_bucket("data-source")


def test_update_missing_directory(tmp_path):
    with pytest.raises(FeedError, match="No such file or directory"):
        VulnSrc(Store()).update(tmp_path)


@pytest.mark.parametrize(
    "value, expected",
    [(4.8, 4.8), (6, 6.0), ("4.8 (Medium)", 4.8), ("7.5", 7.5), (None, -1.0), (True, -1.0)],
)
def test_parse_cvss_score(value, expected):
    assert parse_cvss_score(value) == expected


def test_parse_cvss_score_rejects_bad_string():
    with pytest.raises(ValueError):
        parse_cvss_score("Medium")


def test_raw_advisory_missing_score_is_zero():
    raw = RawAdvisory.from_dict({"id": 3, "module_name": "pkg"})
    assert raw.cvss_score == 0.0
    assert raw.id == 3


def test_convert_to_generic_advisory_splits_ranges():
    raw = RawAdvisory(vulnerable_versions="<1.2.3 || >=2.0.0 <2.1.0", patched_versions="")
    assert convert_to_generic_advisory(raw) == Advisory(
        vulnerable_versions=["<1.2.3", ">=2.0.0 <2.1.0"], patched_versions=[]
    )