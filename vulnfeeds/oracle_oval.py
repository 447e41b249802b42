"""Oracle Linux OVAL definitions feed."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .store import (
    Advisory,
    DataSource,
    FeedError,
    Severity,
    Store,
    VulnerabilityDetail,
    _lookup,
    walk_files,
)

log = logging.getLogger(__name__)

PLATFORM_FORMAT = "Oracle Linux {}"
TARGET_PLATFORMS = (
    "Oracle Linux 5",
    "Oracle Linux 6",
    "Oracle Linux 7",
    "Oracle Linux 8",
    "Oracle Linux 9",
)
ORACLE_DIR = Path("oval") / "oracle"

SOURCE = DataSource(
    id="oracle-oval",
    name="Oracle Linux OVAL definitions",
    url="https://linux.oracle.com/security/oval/",
)

_OS_PREFIX = "Oracle Linux "
_OS_SUFFIX = " is installed"
_EARLIER_THAN = " is earlier than "
_EPOCH = re.compile(r"[+-]?\d+")


def _text(data: dict, key: str) -> str:
    value = _lookup(data, key, "")
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key}: expected a string, got {type(value).__name__}")
    return value


def _objects(data: dict, key: str) -> list[dict]:
    value = _lookup(data, key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"field {key}: expected a list, got {type(value).__name__}")
    items = []
    for item in value:
        if item is None:
            item = {}
        if not isinstance(item, dict):
            raise ValueError(f"field {key}: expected a list of objects")
        items.append(item)
    return items


def _strings(data: dict, key: str) -> list[str]:
    value = _lookup(data, key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) or v is None for v in value):
        raise ValueError(f"field {key}: expected a list of strings")
    return [v or "" for v in value]


@dataclass
class Criteria:
    operator: str = ""
    criterias: list[Criteria] = field(default_factory=list)
    criterions: list[str] = field(default_factory=list)  # criterion comments

    @classmethod
    def from_dict(cls, data: dict) -> Criteria:
        return cls(
            operator=_text(data, "Operator"),
            criterias=[cls.from_dict(c) for c in _objects(data, "Criterias")],
            criterions=[_text(c, "Comment") for c in _objects(data, "Criterions")],
        )


@dataclass
class OracleOVAL:
    title: str = ""
    description: str = ""
    platform: list[str] = field(default_factory=list)
    reference_uris: list[str] = field(default_factory=list)
    criteria: Criteria = field(default_factory=Criteria)
    severity: str = ""
    cve_ids: list[str] = field(default_factory=list)
    issued_date: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> OracleOVAL:
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        criteria = _lookup(data, "Criteria")
        issued = _lookup(data, "issued")
        if criteria is not None and not isinstance(criteria, dict):
            raise ValueError("field Criteria: expected an object")
        if issued is not None and not isinstance(issued, dict):
            raise ValueError("field issued: expected an object")
        return cls(
            title=_text(data, "Title"),
            description=_text(data, "Description"),
            platform=_strings(data, "Platform"),
            reference_uris=[_text(r, "URI") for r in _objects(data, "References")],
            criteria=Criteria.from_dict(criteria or {}),
            severity=_text(data, "Severity"),
            cve_ids=[_text(c, "ID") for c in _objects(data, "Cves")],
            issued_date=_text(issued or {}, "date"),
        )


@dataclass(frozen=True)
class AffectedPackage:
    name: str = ""
    fixed_version: str = ""
    os_version: str = ""

    @property
    def platform_name(self) -> str:
        return PLATFORM_FORMAT.format(self.os_version)


@dataclass
class PutInput:
    vuln_id: str  # CVE-ID or ELSA-ID
    vuln: VulnerabilityDetail
    advisories: dict[AffectedPackage, Advisory]
    oval: OracleOVAL  # kept for subclasses that store more than the defaults


def normalize_rpm_version(version: str) -> str:
    """Rewrite "epoch:version-release" in canonical form, dropping a zero epoch."""
    epoch = 0
    head, sep, rest = version.partition(":")
    if sep:
        epoch = int(head) if _EPOCH.fullmatch(head) else 0
        version = rest
    ver, sep, release = version.rpartition("-")
    if not sep:
        ver, release = version, ""
    text = f"{epoch}:" if epoch > 0 else ""
    text += ver
    if release:
        text += f"-{release}"
    return text


def walk_oracle(
    criteria: Criteria, os_version: str = "", packages: list[AffectedPackage] | None = None
) -> list[AffectedPackage]:
    """Collect the packages named by "X is earlier than V" criteria, depth first."""
    packages = list(packages or [])
    for comment in criteria.criterions:
        if comment.startswith(_OS_PREFIX) and comment.endswith(_OS_SUFFIX):
            os_version = comment.removeprefix(_OS_PREFIX).removesuffix(_OS_SUFFIX)
        parts = comment.split(_EARLIER_THAN)
        if len(parts) != 2:
            continue
        packages.append(
            AffectedPackage(
                name=parts[0],
                fixed_version=normalize_rpm_version(parts[1]),
                os_version=os_version,
            )
        )
    for child in criteria.criterias:
        packages = walk_oracle(child, os_version, packages)
    return packages


def references_from_contains(sources: list[str], matches: list[str]) -> list[str]:
    """Keep the sources that contain any of ``matches``, each once, in order."""
    found = [s for s in sources for m in matches if m in s]
    return list(dict.fromkeys(found))


def severity_from_threat(severity: str) -> Severity:
    return {
        "LOW": Severity.LOW,
        "MODERATE": Severity.MEDIUM,
        "IMPORTANT": Severity.HIGH,
        "CRITICAL": Severity.CRITICAL,
    }.get(severity, Severity.UNKNOWN)


class VulnSrc:
    """Oracle Linux feed; subclasses may override ``put`` and ``get``."""

    name = SOURCE.id

    def __init__(self, store: Store) -> None:
        self.store = store

    def update(self, directory: str | Path) -> None:
        ovals = self._parse(Path(directory) / "vuln-list" / ORACLE_DIR)
        log.info("Saving Oracle Linux OVAL")
        try:
            with self.store.batch_update():
                for oval in ovals:
                    self._commit(oval)
        except FeedError as exc:
            raise FeedError(f"error in Oracle Linux OVAL save: error in batch update: {exc}") from exc

    @staticmethod
    def _parse(root: Path) -> list[OracleOVAL]:
        ovals = []
        try:
            for path in walk_files(root):
                try:
                    ovals.append(OracleOVAL.from_dict(json.loads(path.read_text())))
                except (ValueError, TypeError) as exc:
                    raise FeedError(f"failed to decode Oracle Linux OVAL JSON: {exc}") from exc
        except (OSError, FeedError) as exc:
            raise FeedError(f"error in Oracle Linux OVAL walk: {exc}") from exc
        return ovals

    def _commit(self, oval: OracleOVAL) -> None:
        elsa_id = oval.title.split(":")[0]
        vuln_ids = oval.cve_ids or [elsa_id]

        advisories: dict[AffectedPackage, Advisory] = {}
        for pkg in walk_oracle(oval.criteria, "", []):
            if not pkg.name:
                continue
            platform = pkg.platform_name
            if platform not in TARGET_PLATFORMS:
                continue
            self.store.put_data_source(platform, SOURCE)
            advisories[pkg] = Advisory(fixed_version=pkg.fixed_version)

        for vuln_id in vuln_ids:
            vuln = VulnerabilityDetail(
                description=oval.description,
                references=references_from_contains(oval.reference_uris, [elsa_id, vuln_id]),
                title=oval.title,
                severity=severity_from_threat(oval.severity),
            )
            try:
                self.put(PutInput(vuln_id=vuln_id, vuln=vuln, advisories=advisories, oval=oval))
            except FeedError as exc:
                raise FeedError(f"db put error: {exc}") from exc

    def put(self, put_input: PutInput) -> None:
        self.store.put_vulnerability_detail(put_input.vuln_id, SOURCE.id, put_input.vuln)
        self.store.put_vulnerability_id(put_input.vuln_id)
        for pkg, advisory in put_input.advisories.items():
            self.store.put_advisory_detail(
                put_input.vuln_id, pkg.name, [pkg.platform_name], advisory
            )

    def get(self, release: str, pkg_name: str) -> list[Advisory]:
        try:
            return self.store.get_advisories(PLATFORM_FORMAT.format(release), pkg_name)
        except FeedError as exc:
            raise FeedError(f"failed to get Oracle Linux advisories: {exc}") from exc