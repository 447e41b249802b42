"""Node.js Ecosystem Security Working Group advisory feed."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .store import (
    Advisory,
    DataSource,
    FeedError,
    Store,
    VulnerabilityDetail,
    _lookup,
    bucket_name,
    walk_files,
)

log = logging.getLogger(__name__)

NODE_DIR = "nodejs-security-wg"

SOURCE = DataSource(
    id="nodejs-security-wg",
    name="Node.js Ecosystem Security Working Group",
    url="https://github.com/nodejs/security-wg",
)

BUCKET = bucket_name("npm", SOURCE.name)


def parse_cvss_score(value: Any) -> float:
    """Read a CVSS score given as a number, as "4.8 (Medium)", or as null (-1)."""
    if isinstance(value, bool):
        return -1.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return float(value.split(" ")[0])
    return -1.0


def _text(data: dict, key: str) -> str:
    value = _lookup(data, key, "")
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key}: expected a string, got {type(value).__name__}")
    return value


def _texts(data: dict, key: str) -> list[str]:
    value = _lookup(data, key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"field {key}: expected a list of strings")
    return list(value)


def _int(data: dict, key: str) -> int:
    value = _lookup(data, key, 0)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {key}: expected an integer, got {value!r}")
    return value


@dataclass
class RawAdvisory:
    id: int = 0
    title: str = ""
    module_name: str = ""
    cves: list[str] = field(default_factory=list)
    vulnerable_versions: str = ""
    patched_versions: str = ""
    overview: str = ""
    recommendation: str = ""
    references: list[str] = field(default_factory=list)
    cvss_score: float = 0.0

    @classmethod
    def from_dict(cls, data: dict) -> RawAdvisory:
        score = 0.0
        if isinstance(data, dict) and any(k.lower() == "cvss_score" for k in data):
            score = parse_cvss_score(_lookup(data, "cvss_score"))
        return cls(
            id=_int(data, "id"),
            title=_text(data, "title"),
            module_name=_text(data, "module_name"),
            cves=_texts(data, "cves"),
            vulnerable_versions=_text(data, "vulnerable_versions"),
            patched_versions=_text(data, "patched_versions"),
            overview=_text(data, "overview"),
            recommendation=_text(data, "recommendation"),
            references=_texts(data, "references"),
            cvss_score=score,
        )


def _split_ranges(ranges: str) -> list[str]:
    return [r.strip() for r in ranges.split("||")] if ranges else []


def convert_to_generic_advisory(advisory: RawAdvisory) -> Advisory:
    """Split the "||"-joined version ranges into the generic advisory lists."""
    return Advisory(
        vulnerable_versions=_split_ranges(advisory.vulnerable_versions),
        patched_versions=_split_ranges(advisory.patched_versions),
    )


class VulnSrc:
    name = SOURCE.id

    def __init__(self, store: Store) -> None:
        self.store = store

    def update(self, directory: str | Path) -> None:
        root = Path(directory) / NODE_DIR / "vuln"
        try:
            with self.store.batch_update() as tx:
                tx.put_data_source(BUCKET, SOURCE)
                for path in walk_files(root):
                    if not path.name.endswith(".json"):
                        continue
                    try:
                        raw = RawAdvisory.from_dict(json.loads(path.read_text()))
                    except (ValueError, TypeError) as exc:
                        raise FeedError(f"failed to decode {path}: {exc}") from exc
                    self._commit(tx, raw)
        except (OSError, FeedError) as exc:
            raise FeedError(f"failed to update node vulnerabilities: {exc}") from exc

    @staticmethod
    def _commit(tx: Store, raw: RawAdvisory) -> None:
        # Advisories for Node.js itself carry no module name.
        if not raw.module_name:
            return
        module_name = raw.module_name.lower()
        vuln_ids = raw.cves or [f"NSWG-ECO-{raw.id}"]
        advisory = convert_to_generic_advisory(raw)
        # A score of zero means "not scored".
        score = raw.cvss_score if raw.cvss_score > 0 else -1.0

        for vuln_id in vuln_ids:
            tx.put_advisory_detail(vuln_id, module_name, [BUCKET], advisory)
            tx.put_vulnerability_detail(
                vuln_id,
                SOURCE.id,
                VulnerabilityDetail(
                    id=vuln_id,
                    cvss_score=score,
                    references=raw.references,
                    title=raw.title,
                    description=raw.overview,
                ),
            )
            tx.put_vulnerability_id(vuln_id)