"""Red Hat OVAL v2 feed: advisories keyed by package, matched to platforms by CPE."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, NamedTuple

from .redhat_oval_types import (
    CveEntry,
    Entry,
    RedHatAdvisory,
    RpmInfoTest,
    cpe_indices,
    parse_tests,
)
from .store import (
    Advisory,
    DataSource,
    FeedError,
    Severity,
    Status,
    Store,
    _lookup,
    walk_files,
)

log = logging.getLogger(__name__)

ROOT_BUCKET = "Red Hat"
OVAL_DIR = "oval"
CPE_DIR = "cpe"
VULN_LIST_DIR = "vuln-list-redhat"

SOURCE = DataSource(
    id="redhat-oval",
    name="Red Hat OVAL v2",
    url="https://www.redhat.com/security/data/oval/v2/",
)

_MODULE = re.compile(r"Module\s+(.*)\s+is enabled")


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


def _objects(data: dict, key: str) -> list[dict]:
    value = _lookup(data, key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"field {key}: expected a list, got {type(value).__name__}")
    items = [{} if item is None else item for item in value]
    if not all(isinstance(item, dict) for item in items):
        raise ValueError(f"field {key}: expected a list of objects")
    return items


@dataclass
class _Criterion:
    test_ref: str = ""
    comment: str = ""


@dataclass
class _Criteria:
    operator: str = ""
    criterias: list[_Criteria] = field(default_factory=list)
    criterions: list[_Criterion] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> _Criteria:
        return cls(
            operator=_text(data, "Operator"),
            criterias=[cls.from_dict(c) for c in _objects(data, "Criterias")],
            criterions=[
                _Criterion(test_ref=_text(c, "TestRef"), comment=_text(c, "Comment"))
                for c in _objects(data, "Criterions")
            ],
        )


@dataclass
class _Reference:
    source: str = ""
    ref_id: str = ""
    ref_url: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> _Reference:
        return cls(
            source=_text(data, "Source"),
            ref_id=_text(data, "RefID"),
            ref_url=_text(data, "RefURL"),
        )


@dataclass
class _OvalCVE:
    cve_id: str = ""
    impact: str = ""


@dataclass
class _Definition:
    id: str = ""
    class_: str = ""
    version: str = ""
    title: str = ""
    description: str = ""
    references: list[_Reference] = field(default_factory=list)
    cves: list[_OvalCVE] = field(default_factory=list)
    affected_cpe_list: list[str] = field(default_factory=list)
    resolution_state: str = ""
    criteria: _Criteria = field(default_factory=_Criteria)

    @classmethod
    def from_dict(cls, data: Any) -> _Definition:
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        metadata = _object(data, "Metadata")
        advisory = _object(metadata, "Advisory")
        resolution = _object(_object(advisory, "Affected"), "Resolution")
        return cls(
            id=_text(data, "ID"),
            class_=_text(data, "Class"),
            version=_text(data, "Version"),
            title=_text(metadata, "Title"),
            description=_text(metadata, "Description"),
            references=[_Reference.from_dict(r) for r in _objects(metadata, "References")],
            cves=[
                _OvalCVE(cve_id=_text(c, "CveID"), impact=_text(c, "Impact"))
                for c in _objects(advisory, "Cves")
            ],
            affected_cpe_list=_texts(advisory, "AffectedCpeList"),
            resolution_state=_text(resolution, "State"),
            criteria=_Criteria.from_dict(_object(data, "Criteria")),
        )


@dataclass
class _Package:
    name: str = ""
    fixed_version: str = ""
    arches: list[str] = field(default_factory=list)


class _Bucket(NamedTuple):
    pkg_name: str
    vuln_id: str


def _as_definition(value: Any) -> _Definition:
    return value if isinstance(value, _Definition) else _Definition.from_dict(value)


def _as_criteria(value: Any) -> _Criteria:
    return value if isinstance(value, _Criteria) else _Criteria.from_dict(value or {})


def _as_reference(value: Any) -> _Reference:
    return value if isinstance(value, _Reference) else _Reference.from_dict(value or {})


def _update_cpes(cpes: Iterable[str], unique: set[str]) -> None:
    for cpe in cpes:
        cpe = cpe.strip()
        if cpe:
            unique.add(cpe)


def vendor_id(references: Iterable[Any]) -> str:
    """The RHSA or RHBA identifier among ``references``, or ""."""
    for ref in map(_as_reference, references):
        if ref.source in ("RHSA", "RHBA"):
            return ref.ref_id
    return ""


def severity_from_impact(severity: str) -> Severity:
    return {
        "low": Severity.LOW,
        "moderate": Severity.MEDIUM,
        "important": Severity.HIGH,
        "critical": Severity.CRITICAL,
    }.get(severity.lower(), Severity.UNKNOWN)


def new_status(state: str) -> Status:
    return {
        "affected": Status.AFFECTED,
        "fix deferred": Status.AFFECTED,
        "under investigation": Status.UNDER_INVESTIGATION,
        "will not fix": Status.WILL_NOT_FIX,
        "out of support scope": Status.END_OF_LIFE,
    }.get(state.lower(), Status.UNKNOWN)


def walk_criterion(criteria: Any, tests: dict[str, RpmInfoTest]) -> tuple[str, list[_Package]]:
    """Return the module name and the packages checked by ``criteria``, depth first."""
    criteria = _as_criteria(criteria)
    module_name = ""
    packages: list[_Package] = []

    for criterion in criteria.criterions:
        match = _MODULE.search(criterion.comment)
        if match and match.group(1):
            module_name = match.group(1)
            continue
        test = tests.get(criterion.test_ref)
        if test is None:
            continue
        # Signature key checks are not package checks.
        if test.signature_key_id:
            continue
        # Affected arches are joined with "|", e.g. "aarch64|ppc64le|x86_64".
        arches = sorted(test.arch.split("|")) if test.arch else []
        packages.append(_Package(name=test.name, fixed_version=test.fixed_version, arches=arches))

    for child in criteria.criterias:
        child_module, child_packages = walk_criterion(child, tests)
        if child_module:
            module_name = child_module
        packages.extend(child_packages)
    return module_name, packages


def parse_definitions(
    advisories: Iterable[Any], tests: dict[str, RpmInfoTest], cpes: set[str]
) -> dict[_Bucket, Entry]:
    """Turn OVAL definitions into one entry per (package, vulnerability ID).

    CPE names the definitions mention are added to ``cpes``.
    """
    definitions: dict[_Bucket, Entry] = {}
    for advisory in map(_as_definition, advisories):
        if "unaffected" in advisory.id:
            continue

        module_name, packages = walk_criterion(advisory.criteria, tests)
        rhsa_id = vendor_id(advisory.references)
        cve_entries = sorted(
            (
                CveEntry(id=cve.cve_id, severity=severity_from_impact(cve.impact))
                for cve in advisory.cves
            ),
            key=lambda c: c.id,
        )
        for package in packages:
            pkg_name = package.name
            if module_name:
                # Modular namespace, e.g. nodejs:12::npm
                pkg_name = f"{module_name}::{pkg_name}"

            if rhsa_id:
                # Patched: the status is "fixed" by definition and is not stored.
                definitions[_Bucket(pkg_name, rhsa_id)] = Entry(
                    fixed_version=package.fixed_version,
                    cves=list(cve_entries),
                    arches=list(package.arches),
                    affected_cpe_list=list(advisory.affected_cpe_list),
                )
            else:
                for cve in cve_entries:
                    definitions[_Bucket(pkg_name, cve.id)] = Entry(
                        fixed_version=package.fixed_version,
                        cves=[CveEntry(severity=cve.severity)],
                        arches=list(package.arches),
                        status=new_status(advisory.resolution_state),
                        affected_cpe_list=list(advisory.affected_cpe_list),
                    )

        _update_cpes(advisory.affected_cpe_list, cpes)
    return definitions


def _parse_oval_stream(directory: Path, cpes: set[str]) -> dict[_Bucket, Entry]:
    log.info("    Parsing %s", directory)
    try:
        tests = parse_tests(directory)
    except FeedError as exc:
        raise FeedError(f"failed to parse ovalTests: {exc}") from exc

    definitions_dir = directory / "definitions"
    if not definitions_dir.exists():
        return {}

    advisories = []
    try:
        for path in sorted(walk_files(definitions_dir)):
            try:
                advisories.append(_Definition.from_dict(json.loads(path.read_text())))
            except (ValueError, TypeError) as exc:
                raise FeedError(f"failed to decode {path}: {exc}") from exc
    except (OSError, FeedError) as exc:
        raise FeedError(f"Red Hat OVAL walk error: {exc}") from exc

    return parse_definitions(advisories, tests, cpes)


def _read_mapping(path: Path, cpes: set[str]) -> dict[str, list[str]]:
    try:
        text = path.read_text()
    except OSError as exc:
        raise FeedError(f"file open error: {exc}") from exc
    try:
        data = json.loads(text)
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        mapping = {}
        for key, values in data.items():
            values = values or []
            if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
                raise ValueError(f"{key}: expected a list of strings")
            mapping[key] = values
    except ValueError as exc:
        raise FeedError(f"JSON parse error: {exc}") from exc
    for values in mapping.values():
        _update_cpes(values, cpes)
    return mapping


def _merge_advisories(
    advisories: dict[_Bucket, RedHatAdvisory], definitions: dict[_Bucket, Entry]
) -> None:
    for bucket, new in definitions.items():
        existing = advisories.get(bucket)
        if existing is None:
            advisories[bucket] = RedHatAdvisory(entries=[new])
            continue
        found = False
        for entry in existing.entries:
            if (
                entry.fixed_version == new.fixed_version
                and entry.status == new.status
                and entry.arches == new.arches
                and entry.cves == new.cves
            ):
                found = True
                entry.affected_cpe_list = list(
                    dict.fromkeys([*entry.affected_cpe_list, *new.affected_cpe_list])
                )
        if not found:
            existing.entries.append(new)


def _raw_parts(raw: Any) -> tuple[Any, Any]:
    if isinstance(raw, tuple):
        source, content = raw
    else:
        source, content = getattr(raw, "source", None), getattr(raw, "content", raw)
    if isinstance(content, (bytes, bytearray, str)):
        content = json.loads(content)
    return source, content


class VulnSrc:
    name = SOURCE.id

    def __init__(self, store: Store) -> None:
        self.store = store

    def update(self, directory: str | Path) -> None:
        base = Path(directory) / VULN_LIST_DIR
        cpes: set[str] = set()
        try:
            repo_to_cpe = _read_mapping(base / CPE_DIR / "repository-to-cpe.json", cpes)
        except FeedError as exc:
            raise FeedError(
                f"unable to store the mapping between repositories and CPE names: {exc}"
            ) from exc
        try:
            nvr_to_cpe = _read_mapping(base / CPE_DIR / "nvr-to-cpe.json", cpes)
        except FeedError as exc:
            raise FeedError(f"unable to store the mapping between NVR and CPE names: {exc}") from exc

        root = base / OVAL_DIR
        try:
            versions = sorted(root.iterdir())
        except OSError as exc:
            raise FeedError(f"unable to list directory entries ({root}): {exc}") from exc

        advisories: dict[_Bucket, RedHatAdvisory] = {}
        for version_dir in versions:
            try:
                streams = sorted(version_dir.iterdir())
            except OSError as exc:
                raise FeedError(
                    f"unable to get a list of directory entries ({version_dir}): {exc}"
                ) from exc
            for stream in streams:
                if not stream.is_dir():
                    continue
                try:
                    definitions = _parse_oval_stream(stream, cpes)
                except FeedError as exc:
                    raise FeedError(f"failed to parse OVAL stream: {exc}") from exc
                _merge_advisories(advisories, definitions)

        try:
            self._save(repo_to_cpe, nvr_to_cpe, advisories, cpes)
        except FeedError as exc:
            raise FeedError(f"save error: batch update error: {exc}") from exc

    def _save(
        self,
        repo_to_cpe: dict[str, list[str]],
        nvr_to_cpe: dict[str, list[str]],
        advisories: dict[_Bucket, RedHatAdvisory],
        cpes: set[str],
    ) -> None:
        cpe_list = sorted(cpes)
        with self.store.batch_update() as tx:
            tx.put_data_source(ROOT_BUCKET, SOURCE)
            for repo, names in repo_to_cpe.items():
                tx.put_redhat_repositories(repo, cpe_indices(cpe_list, names))
            for nvr, names in nvr_to_cpe.items():
                tx.put_redhat_nvrs(nvr, cpe_indices(cpe_list, names))
            for bucket, advisory in advisories.items():
                for entry in advisory.entries:
                    entry.affected_cpe_indices = cpe_indices(cpe_list, entry.affected_cpe_list)
                tx.put_advisory_detail(bucket.vuln_id, bucket.pkg_name, [ROOT_BUCKET], advisory)
                tx.put_vulnerability_id(bucket.vuln_id)
            # CPE names by index, for debugging.
            for index, cpe in enumerate(cpe_list):
                tx.put_redhat_cpes(index, cpe)

    def _cpe_indices(self, repositories: Iterable[str], nvrs: Iterable[str]) -> set[int]:
        indices: set[int] = set()
        try:
            for repo in repositories:
                indices.update(self.store.redhat_repo_to_cpes(repo) or [])
            for nvr in nvrs:
                indices.update(self.store.redhat_nvr_to_cpes(nvr) or [])
        except FeedError as exc:
            raise FeedError(f"unable to convert repositories to CPEs: {exc}") from exc
        return indices

    def get(
        self, pkg_name: str, repositories: Iterable[str] | None, nvrs: Iterable[str] | None
    ) -> list[Advisory]:
        """Advisories for ``pkg_name`` on the platforms of the repositories or NVRs."""
        try:
            indices = self._cpe_indices(repositories or (), nvrs or ())
        except FeedError as exc:
            raise FeedError(f"CPE convert error: {exc}") from exc

        try:
            raw_advisories = self.store.for_each_advisory([ROOT_BUCKET], pkg_name)
        except FeedError as exc:
            raise FeedError(f"unable to iterate advisories: {exc}") from exc

        results: list[Advisory] = []
        for vuln_id, raw in (raw_advisories or {}).items():
            try:
                source, content = _raw_parts(raw)
                advisory = RedHatAdvisory.from_json(content)
            except (ValueError, TypeError) as exc:
                raise FeedError(f"failed to unmarshal advisory JSON: {exc}") from exc

            for entry in advisory.entries:
                if not indices.intersection(entry.affected_cpe_indices):
                    continue
                for cve in entry.cves:
                    if vuln_id.startswith("CVE-"):
                        ids = {"vulnerability_id": vuln_id}
                    else:
                        ids = {"vulnerability_id": cve.id, "vendor_ids": [vuln_id]}
                    results.append(
                        Advisory(
                            severity=cve.severity,
                            fixed_version=entry.fixed_version,
                            arches=entry.arches,
                            status=entry.status,
                            data_source=source,
                            **ids,
                        )
                    )
        return results