"""Red Hat security data API feed."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar

from .store import FeedError, Severity, Store, VulnerabilityDetail, _lookup, walk_files

log = logging.getLogger(__name__)

SOURCE_ID = "redhat"
VULN_LIST_DIR = "vuln-list-redhat"
API_DIR = "api"
RESOURCE_URL = "https://access.redhat.com/security/cve/{}"

T = TypeVar("T")


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
    if not isinstance(value, list) or not all(isinstance(v, str) or v is None for v in value):
        raise ValueError(f"field {key}: expected a list of strings")
    return [v or "" for v in value]


def _object(data: dict, key: str) -> dict:
    value = _lookup(data, key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"field {key}: expected an object, got {type(value).__name__}")
    return value


@dataclass
class _AffectedRelease:
    product_name: str = ""
    release_date: str = ""
    advisory: str = ""
    package: str = ""
    cpe: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> _AffectedRelease:
        return cls(
            product_name=_text(data, "product_name"),
            release_date=_text(data, "release_date"),
            advisory=_text(data, "advisory"),
            package=_text(data, "package"),
            cpe=_text(data, "cpe"),
        )


@dataclass
class _PackageState:
    product_name: str = ""
    fix_state: str = ""
    package_name: str = ""
    cpe: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> _PackageState:
        return cls(
            product_name=_text(data, "product_name"),
            fix_state=_text(data, "fix_state"),
            package_name=_text(data, "package_name"),
            cpe=_text(data, "cpe"),
        )


@dataclass
class RedhatCVE:
    name: str = ""
    threat_severity: str = ""
    public_date: str = ""
    bugzilla_description: str = ""
    bugzilla_id: str = ""
    bugzilla_url: str = ""
    cvss_base_score: str = ""
    cvss_scoring_vector: str = ""
    cvss_status: str = ""
    cvss3_base_score: str = ""
    cvss3_scoring_vector: str = ""
    cvss3_status: str = ""
    iava: str = ""
    cwe: str = ""
    statement: str = ""
    acknowledgement: str = ""
    mitigation: str = ""
    document_distribution: str = ""
    affected_release: list[_AffectedRelease] = field(default_factory=list)
    package_state: list[_PackageState] = field(default_factory=list)
    details: list[str] = field(default_factory=list)
    references: list[str] = field(default_factory=list)


def _one_or_many(value: Any, parse: Callable[[dict], T], what: str) -> list[T]:
    """Read a field that the feed writes either as one object or as a list of them."""
    if value is None:
        return []
    try:
        if isinstance(value, list):
            return [parse({} if item is None else item) for item in value]
        if isinstance(value, dict):
            return [parse(value)]
    except ValueError as exc:
        raise FeedError(f"unknown {what} type: {exc}") from exc
    raise FeedError(f"unknown {what} type")


def parse_cve(data: Any) -> RedhatCVE:
    """Build a RedhatCVE from one decoded API document."""
    if not isinstance(data, dict):
        raise FeedError(
            f"failed to decode RedHat JSON: expected a JSON object, got {type(data).__name__}"
        )
    try:
        bugzilla = _object(data, "bugzilla")
        cvss = _object(data, "cvss")
        cvss3 = _object(data, "cvss3")
        cve = RedhatCVE(
            name=_text(data, "name"),
            threat_severity=_text(data, "threat_severity"),
            public_date=_text(data, "public_date"),
            bugzilla_description=_text(bugzilla, "description"),
            bugzilla_id=_text(bugzilla, "id"),
            bugzilla_url=_text(bugzilla, "url"),
            cvss_base_score=_text(cvss, "cvss_base_score"),
            cvss_scoring_vector=_text(cvss, "cvss_scoring_vector"),
            cvss_status=_text(cvss, "status"),
            cvss3_base_score=_text(cvss3, "cvss3_base_score"),
            cvss3_scoring_vector=_text(cvss3, "cvss3_scoring_vector"),
            cvss3_status=_text(cvss3, "status"),
            iava=_text(data, "iava"),
            cwe=_text(data, "cwe"),
            statement=_text(data, "statement"),
            acknowledgement=_text(data, "acknowledgement"),
            mitigation=_text(data, "mitigation"),
            document_distribution=_text(data, "document_distribution"),
            details=_texts(data, "details"),
            references=_texts(data, "references"),
        )
    except ValueError as exc:
        raise FeedError(f"failed to decode RedHat JSON: {exc}") from exc

    cve.affected_release = _one_or_many(
        _lookup(data, "affected_release"), _AffectedRelease.from_dict, "affected_release"
    )
    cve.package_state = _one_or_many(
        _lookup(data, "package_state"), _PackageState.from_dict, "package_state"
    )
    return cve


def severity_from_threat(severity: str) -> Severity:
    return {
        "Low": Severity.LOW,
        "Moderate": Severity.MEDIUM,
        "Important": Severity.HIGH,
        "Critical": Severity.CRITICAL,
    }.get(severity.title(), Severity.UNKNOWN)


def _score(text: str) -> float:
    try:
        return float(text)
    except ValueError:
        return 0.0


def _detail(cve: RedhatCVE) -> VulnerabilityDetail:
    title = cve.bugzilla_description.strip().removeprefix(cve.name)
    return VulnerabilityDetail(
        cvss_score=_score(cve.cvss_base_score),
        cvss_vector=cve.cvss_scoring_vector,
        cvss_score_v3=_score(cve.cvss3_base_score),
        cvss_vector_v3=cve.cvss3_scoring_vector,
        severity=severity_from_threat(cve.threat_severity),
        references=[*cve.references, RESOURCE_URL.format(cve.name)],
        title=title.strip(),
        description="".join(cve.details).strip(),
    )


class VulnSrc:
    name = SOURCE_ID

    def __init__(self, store: Store) -> None:
        self.store = store

    def update(self, directory: str | Path) -> None:
        root = Path(directory) / VULN_LIST_DIR / API_DIR
        cves = []
        try:
            for path in walk_files(root):
                try:
                    data = json.loads(path.read_text())
                except ValueError as exc:
                    raise FeedError(f"failed to decode RedHat JSON: {exc}") from exc
                cves.append(parse_cve(data))
        except (OSError, FeedError) as exc:
            raise FeedError(f"error in Red Hat walk: {exc}") from exc

        log.info("Saving Red Hat DB")
        try:
            with self.store.batch_update() as tx:
                for cve in cves:
                    tx.put_vulnerability_detail(cve.name, SOURCE_ID, _detail(cve))
                    tx.put_vulnerability_id(cve.name)
        except FeedError as exc:
            raise FeedError(f"error in Red Hat save: failed batch update: {exc}") from exc