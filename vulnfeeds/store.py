"""Bucketed key/value store for vulnerability data and the records kept in it."""

from __future__ import annotations

import copy
import enum
import json
import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

DATA_SOURCE_BUCKET = "data-source"
ADVISORY_DETAIL_BUCKET = "advisory-detail"
VULNERABILITY_DETAIL_BUCKET = "vulnerability-detail"
VULNERABILITY_ID_BUCKET = "vulnerability-id"
REDHAT_CPE_BUCKET = "Red Hat CPE"


class FeedError(Exception):
    """Raised when a vulnerability feed cannot be read, decoded or stored."""


class Severity(enum.IntEnum):
    UNKNOWN = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4


class Status(enum.IntEnum):
    UNKNOWN = 0
    NOT_AFFECTED = 1
    AFFECTED = 2
    FIXED = 3
    UNDER_INVESTIGATION = 4
    WILL_NOT_FIX = 5
    FIX_DEFERRED = 6
    END_OF_LIFE = 7


def new_severity(name: str) -> Severity:
    """Return the severity called ``name`` (e.g. "HIGH"); raise ValueError if unknown."""
    try:
        return Severity[name]
    except KeyError:
        raise ValueError(f"unknown severity: {name}") from None


def bucket_name(ecosystem: str, data_source_name: str) -> str:
    """Name of the bucket holding one ecosystem's advisories from one data source."""
    return f"{ecosystem}::{data_source_name}"


def walk_files(root: str | os.PathLike) -> Iterator[Path]:
    """Yield every regular file below ``root`` in sorted order."""
    root = Path(root)
    if not root.is_dir():
        raise FileNotFoundError(2, "No such file or directory", str(root))
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for name in sorted(filenames):
            yield Path(dirpath) / name


def _lookup(data: Any, key: str, default: Any = None) -> Any:
    """Look up ``key`` in a decoded JSON object, ignoring case like the feed producers do."""
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    if key in data:
        return data[key]
    lowered = key.lower()
    for k, v in data.items():
        if k.lower() == lowered:
            return v
    return default


def _format_time(value: datetime) -> str:
    return (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
        f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}Z"
    )


def _typed(data: dict, key: str, kind: type, default: Any) -> Any:
    value = data.get(key, default)
    if value is None:
        return default
    if kind is float and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    if not isinstance(value, kind) or isinstance(value, bool) and kind is not bool:
        raise ValueError(f"field {key}: expected {kind.__name__}, got {type(value).__name__}")
    return value


def _str_list(data: dict, key: str) -> list[str]:
    values = _typed(data, key, list, [])
    if not all(isinstance(v, str) for v in values):
        raise ValueError(f"field {key}: expected a list of strings")
    return list(values)


@dataclass
class DataSource:
    id: str = ""
    name: str = ""
    url: str = ""

    def to_json(self) -> dict:
        return {"ID": self.id, "Name": self.name, "URL": self.url}

    @classmethod
    def from_json(cls, data: dict) -> DataSource:
        return cls(
            id=_typed(data, "ID", str, ""),
            name=_typed(data, "Name", str, ""),
            url=_typed(data, "URL", str, ""),
        )


@dataclass
class Advisory:
    vulnerability_id: str = ""
    vendor_ids: list[str] = field(default_factory=list)
    arches: list[str] = field(default_factory=list)
    severity: Severity = Severity.UNKNOWN
    fixed_version: str = ""
    affected_version: str = ""
    vulnerable_versions: list[str] = field(default_factory=list)
    patched_versions: list[str] = field(default_factory=list)
    status: Status = Status.UNKNOWN
    data_source: DataSource | None = None

    def to_json(self) -> dict:
        items = {
            "VulnerabilityID": self.vulnerability_id,
            "VendorIDs": self.vendor_ids,
            "Arches": self.arches,
            "Severity": int(self.severity),
            "FixedVersion": self.fixed_version,
            "AffectedVersion": self.affected_version,
            "VulnerableVersions": self.vulnerable_versions,
            "PatchedVersions": self.patched_versions,
            "Status": int(self.status),
            "DataSource": self.data_source.to_json() if self.data_source else None,
        }
        return {k: v for k, v in items.items() if v}

    @classmethod
    def from_json(cls, data: dict) -> Advisory:
        if not isinstance(data, dict):
            raise ValueError("advisory must be a JSON object")
        source = data.get("DataSource")
        return cls(
            vulnerability_id=_typed(data, "VulnerabilityID", str, ""),
            vendor_ids=_str_list(data, "VendorIDs"),
            arches=_str_list(data, "Arches"),
            severity=Severity(_typed(data, "Severity", int, 0)),
            fixed_version=_typed(data, "FixedVersion", str, ""),
            affected_version=_typed(data, "AffectedVersion", str, ""),
            vulnerable_versions=_str_list(data, "VulnerableVersions"),
            patched_versions=_str_list(data, "PatchedVersions"),
            status=Status(_typed(data, "Status", int, 0)),
            data_source=DataSource.from_json(source) if isinstance(source, dict) else None,
        )


@dataclass
class VulnerabilityDetail:
    id: str = ""
    cvss_score: float = 0.0
    cvss_vector: str = ""
    cvss_score_v3: float = 0.0
    cvss_vector_v3: str = ""
    severity: Severity = Severity.UNKNOWN
    severity_v3: Severity = Severity.UNKNOWN
    cwe_ids: list[str] = field(default_factory=list)
    references: list[str] = field(default_factory=list)
    title: str = ""
    description: str = ""
    published_date: datetime | None = None
    last_modified_date: datetime | None = None

    def to_json(self) -> dict:
        items = {
            "ID": self.id,
            "CvssScore": self.cvss_score,
            "CvssVector": self.cvss_vector,
            "CvssScoreV3": self.cvss_score_v3,
            "CvssVectorV3": self.cvss_vector_v3,
            "Severity": int(self.severity),
            "SeverityV3": int(self.severity_v3),
            "CweIDs": self.cwe_ids,
            "References": self.references,
            "Title": self.title,
            "Description": self.description,
            "PublishedDate": _format_time(self.published_date) if self.published_date else None,
            "LastModifiedDate": (
                _format_time(self.last_modified_date) if self.last_modified_date else None
            ),
        }
        return {k: v for k, v in items.items() if v}

    @classmethod
    def from_json(cls, data: dict) -> VulnerabilityDetail:
        def when(key: str) -> datetime | None:
            text = _typed(data, key, str, "")
            if not text:
                return None
            return datetime.strptime(text, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc)

        return cls(
            id=_typed(data, "ID", str, ""),
            cvss_score=_typed(data, "CvssScore", float, 0.0),
            cvss_vector=_typed(data, "CvssVector", str, ""),
            cvss_score_v3=_typed(data, "CvssScoreV3", float, 0.0),
            cvss_vector_v3=_typed(data, "CvssVectorV3", str, ""),
            severity=Severity(_typed(data, "Severity", int, 0)),
            severity_v3=Severity(_typed(data, "SeverityV3", int, 0)),
            cwe_ids=_str_list(data, "CweIDs"),
            references=_str_list(data, "References"),
            title=_typed(data, "Title", str, ""),
            description=_typed(data, "Description", str, ""),
            published_date=when("PublishedDate"),
            last_modified_date=when("LastModifiedDate"),
        )


def _encode(value: Any) -> str:
    if hasattr(value, "to_json"):
        value = value.to_json()
    return json.dumps(value)


class Store:
    """In-memory tree of named buckets whose leaves hold JSON documents."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    @contextmanager
    def batch_update(self) -> Iterator[Store]:
        """Group writes; if the block raises, every write made in it is undone."""
        snapshot = copy.deepcopy(self._data)
        try:
            yield self
        except BaseException:
            self._data = snapshot
            raise

    def _put(self, path: list[str], value: Any) -> None:
        node = self._data
        for name in path[:-1]:
            child = node.setdefault(name, {})
            if not isinstance(child, dict):
                raise FeedError(f"{name} is a value, not a bucket")
            node = child
        if isinstance(node.get(path[-1]), dict):
            raise FeedError(f"{path[-1]} is a bucket, not a value")
        node[path[-1]] = _encode(value)

    def _node(self, path: tuple[str, ...]) -> Any:
        node: Any = self._data
        for name in path:
            if not isinstance(node, dict) or name not in node:
                return None
            node = node[name]
        return node

    def put_data_source(self, bucket: str, source: DataSource) -> None:
        self._put([DATA_SOURCE_BUCKET, bucket], source)

    def put_advisory_detail(
        self, vuln_id: str, pkg_name: str, nested_buckets: list[str], advisory: Any
    ) -> None:
        self._put([ADVISORY_DETAIL_BUCKET, vuln_id, *nested_buckets, pkg_name], advisory)

    def put_vulnerability_detail(
        self, vuln_id: str, source_id: str, detail: VulnerabilityDetail
    ) -> None:
        self._put([VULNERABILITY_DETAIL_BUCKET, vuln_id, source_id], detail)

    def put_vulnerability_id(self, vuln_id: str) -> None:
        self._put([VULNERABILITY_ID_BUCKET, vuln_id], {})

    def for_each_advisory(
        self, sources: list[str], pkg_name: str
    ) -> dict[str, tuple[str, DataSource | None]]:
        """Map each vulnerability ID to the raw advisory JSON and its data source."""
        result: dict[str, tuple[str, DataSource | None]] = {}
        details = self._node((ADVISORY_DETAIL_BUCKET,)) or {}
        source_raw = self._node((DATA_SOURCE_BUCKET, sources[0])) if sources else None
        data_source = None
        if isinstance(source_raw, str):
            data_source = DataSource.from_json(json.loads(source_raw))
        for vuln_id in sorted(details):
            leaf = self._node((ADVISORY_DETAIL_BUCKET, vuln_id, *sources, pkg_name))
            if isinstance(leaf, str):
                result[vuln_id] = (leaf, data_source)
        return result

    def get_advisories(self, bucket: str, pkg_name: str) -> list[Advisory]:
        advisories = []
        for vuln_id, (content, _) in self.for_each_advisory([bucket], pkg_name).items():
            try:
                advisory = Advisory.from_json(json.loads(content))
            except (ValueError, TypeError) as exc:
                raise FeedError(f"failed to unmarshal advisory JSON: {exc}") from exc
            advisory.vulnerability_id = vuln_id
            advisories.append(advisory)
        return advisories

    def put_redhat_repositories(self, repository: str, cpe_indices: list[int]) -> None:
        self._put([REDHAT_CPE_BUCKET, "repository", repository], list(cpe_indices))

    def put_redhat_nvrs(self, nvr: str, cpe_indices: list[int]) -> None:
        self._put([REDHAT_CPE_BUCKET, "nvr", nvr], list(cpe_indices))

    def put_redhat_cpes(self, index: int, cpe: str) -> None:
        self._put([REDHAT_CPE_BUCKET, "cpe", str(index)], cpe)

    def _indices(self, kind: str, key: str) -> list[int]:
        raw = self._node((REDHAT_CPE_BUCKET, kind, key))
        if not isinstance(raw, str):
            return []
        try:
            return [int(i) for i in json.loads(raw)]
        except (ValueError, TypeError) as exc:
            raise FeedError(f"JSON unmarshal error: {exc}") from exc

    def redhat_repo_to_cpes(self, repository: str) -> list[int]:
        return self._indices("repository", repository)

    def redhat_nvr_to_cpes(self, nvr: str) -> list[int]:
        return self._indices("nvr", nvr)

    def get(self, *args: str) -> Any:
        """Decoded value at the given bucket path, or None when there is none."""
        node = self._node(args)
        return json.loads(node) if isinstance(node, str) else None

    def has_bucket(self, *args: str) -> bool:
        return isinstance(self._node(args), dict)