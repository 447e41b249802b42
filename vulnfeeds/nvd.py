"""National Vulnerability Database JSON feed."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from .store import FeedError, Severity, Store, VulnerabilityDetail, _lookup, new_severity, walk_files

log = logging.getLogger(__name__)

SOURCE_ID = "nvd"
VULN_LIST_DIR = "vuln-list-nvd"
FEED_DIR = "feed"

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


def _obj(data: dict, key: str) -> dict:
    value = _lookup(data, key)
    return value if isinstance(value, dict) else {}


def _list(data: dict, key: str) -> list:
    value = _lookup(data, key)
    return value if isinstance(value, list) else []


def _severity(name: str) -> Severity:
    try:
        return new_severity(name)
    except ValueError:
        return Severity.UNKNOWN


def _parse_time(text: str) -> datetime:
    try:
        return datetime.strptime(text, "%Y-%m-%dT%H:%MZ").replace(tzinfo=timezone.utc)
    except (ValueError, TypeError):
        return _ZERO_TIME


def parse_item(data: dict) -> tuple[str, VulnerabilityDetail]:
    """Turn one NVD item into its CVE ID and vulnerability detail."""
    cve = _obj(data, "cve")
    cve_id = str(_lookup(_obj(cve, "CVE_data_meta"), "ID", ""))
    impact = _obj(data, "impact")
    v2 = _obj(impact, "baseMetricV2")
    cvss2 = _obj(v2, "cvssV2")
    cvss3 = _obj(_obj(impact, "baseMetricV3"), "cvssV3")

    references = [
        str(_lookup(ref, "url", "")) for ref in _list(_obj(cve, "references"), "reference_data")
    ]
    description = next(
        (
            d_value
            for d in _list(_obj(cve, "description"), "description_data")
            if (d_value := _lookup(d, "value", ""))
        ),
        "",
    )
    cwe_ids = [
        desc_value
        for entry in _list(_obj(cve, "problemtype"), "problemtype_data")
        for desc in _list(entry, "description")
        if str(desc_value := _lookup(desc, "value", "")).startswith("CWE")
    ]

    detail = VulnerabilityDetail(
        cvss_score=float(_lookup(cvss2, "baseScore", 0.0) or 0.0),
        cvss_vector=str(_lookup(cvss2, "vectorString", "")),
        cvss_score_v3=float(_lookup(cvss3, "baseScore", 0.0) or 0.0),
        cvss_vector_v3=str(_lookup(cvss3, "vectorString", "")),
        severity=_severity(str(_lookup(v2, "severity", ""))),
        severity_v3=_severity(str(_lookup(cvss3, "baseSeverity", ""))),
        cwe_ids=cwe_ids,
        references=references,
        description=description,
        published_date=_parse_time(_lookup(data, "publishedDate", "")),
        last_modified_date=_parse_time(_lookup(data, "lastModifiedDate", "")),
    )
    return cve_id, detail


class VulnSrc:
    name = SOURCE_ID

    def __init__(self, store: Store) -> None:
        self.store = store

    def update(self, directory: str | Path) -> None:
        root = Path(directory) / VULN_LIST_DIR / FEED_DIR
        items = []
        for path in walk_files(root):
            try:
                items.append(parse_item(json.loads(path.read_text())))
            except (ValueError, TypeError) as exc:
                raise FeedError(f"failed to decode NVD JSON: {exc}") from exc
        log.info("NVD batch update")
        with self.store.batch_update() as tx:
            for cve_id, detail in items:
                tx.put_vulnerability_detail(cve_id, SOURCE_ID, detail)