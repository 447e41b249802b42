"""Red Hat OVAL v2 records: stored advisory entries, CPE indices and rpminfo tests."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .store import FeedError, Severity, Status, _lookup


def _string(data: dict, key: str) -> str:
    value = _lookup(data, key, "")
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key}: expected a string, got {type(value).__name__}")
    return value


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


def _int(data: dict, key: str) -> int:
    value = data.get(key, 0)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {key}: expected an integer, got {value!r}")
    return value


def _list(data: dict, key: str, kind: type) -> list:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(
        isinstance(v, kind) and not isinstance(v, bool) for v in value
    ):
        raise ValueError(f"field {key}: expected a list of {kind.__name__}")
    return list(value)


@dataclass
class CveEntry:
    id: str = ""
    # Severity may differ between platforms for the same CVE.
    severity: Severity = Severity.UNKNOWN

    def to_json(self) -> dict:
        data: dict[str, Any] = {}
        if self.id:
            data["ID"] = self.id
        if self.severity:
            data["Severity"] = int(self.severity)
        return data

    @classmethod
    def from_json(cls, data: Any) -> CveEntry:
        if not isinstance(data, dict):
            raise ValueError("CVE entry must be a JSON object")
        cve_id = data.get("ID") or ""
        if not isinstance(cve_id, str):
            raise ValueError("field ID: expected a string")
        return cls(id=cve_id, severity=Severity(_int(data, "Severity")))


@dataclass
class Entry:
    """Advisory information for one set of platforms.

    CPE names are kept in ``affected_cpe_list`` while parsing, but only their
    indices are stored.
    """

    fixed_version: str = ""
    cves: list[CveEntry] = field(default_factory=list)
    arches: list[str] = field(default_factory=list)
    status: Status = Status.UNKNOWN
    affected_cpe_list: list[str] = field(default_factory=list)
    affected_cpe_indices: list[int] = field(default_factory=list)

    def to_json(self) -> dict:
        data: dict[str, Any] = {}
        if self.fixed_version:
            data["FixedVersion"] = self.fixed_version
        data["Cves"] = [c.to_json() for c in self.cves] if self.cves else None
        if self.arches:
            data["Arches"] = list(self.arches)
        if self.affected_cpe_indices:
            data["Affected"] = list(self.affected_cpe_indices)
        if self.status:
            data["Status"] = int(self.status)
        return data

    @classmethod
    def from_json(cls, data: Any) -> Entry:
        if not isinstance(data, dict):
            raise ValueError("entry must be a JSON object")
        fixed = data.get("FixedVersion") or ""
        if not isinstance(fixed, str):
            raise ValueError("field FixedVersion: expected a string")
        cves = data.get("Cves") or []
        if not isinstance(cves, list):
            raise ValueError("field Cves: expected a list")
        return cls(
            fixed_version=fixed,
            cves=[CveEntry.from_json(c) for c in cves],
            arches=_list(data, "Arches", str),
            status=Status(_int(data, "Status")),
            affected_cpe_indices=_list(data, "Affected", int),
        )


@dataclass
class RedHatAdvisory:
    entries: list[Entry] = field(default_factory=list)

    def to_json(self) -> dict:
        return {"Entries": [e.to_json() for e in self.entries]} if self.entries else {}

    @classmethod
    def from_json(cls, data: Any) -> RedHatAdvisory:
        if not isinstance(data, dict):
            raise ValueError("advisory must be a JSON object")
        entries = data.get("Entries") or []
        if not isinstance(entries, list):
            raise ValueError("field Entries: expected a list")
        return cls(entries=[Entry.from_json(e) for e in entries])


def cpe_indices(cpe_list: list[str], cpes: list[str]) -> list[int]:
    """Positions of ``cpes`` in ``cpe_list`` (-1 when absent), sorted."""
    positions: dict[str, int] = {}
    for position, cpe in enumerate(cpe_list):
        positions.setdefault(cpe, position)
    return sorted(positions.get(cpe, -1) for cpe in cpes)


@dataclass
class RpmInfoTest:
    """A resolved rpminfo test: the package it checks and the state it expects."""

    name: str = ""
    signature_key_id: str = ""
    fixed_version: str = ""
    arch: str = ""


@dataclass
class _OvalTest:
    check: str = ""
    comment: str = ""
    id: str = ""
    version: str = ""
    check_existence: str = ""
    object_ref: str = ""
    state_ref: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> _OvalTest:
        return cls(
            check=_string(data, "Check"),
            comment=_string(data, "Comment"),
            id=_string(data, "ID"),
            version=_string(data, "Version"),
            check_existence=_string(data, "CheckExistence"),
            object_ref=_string(_object(data, "Object"), "ObjectRef"),
            state_ref=_string(_object(data, "State"), "StateRef"),
        )


@dataclass
class _Typed:
    text: str = ""
    datatype: str = ""
    operation: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> _Typed:
        return cls(
            text=_string(data, "Text"),
            datatype=_string(data, "Datatype"),
            operation=_string(data, "Operation"),
        )


@dataclass
class _OvalState:
    id: str = ""
    version: str = ""
    arch: _Typed = field(default_factory=_Typed)
    evr: _Typed = field(default_factory=_Typed)
    signature_key_id: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> _OvalState:
        return cls(
            id=_string(data, "ID"),
            version=_string(data, "Version"),
            arch=_Typed.from_dict(_object(data, "Arch")),
            evr=_Typed.from_dict(_object(data, "Evr")),
            signature_key_id=_string(_object(data, "SignatureKeyID"), "Text"),
        )


def _load_json(path: Path) -> Any:
    try:
        text = path.read_text()
    except OSError as exc:
        raise FeedError(f"unable to open a file ({path}): {exc}") from exc
    try:
        return json.loads(text)
    except ValueError as exc:
        raise FeedError(f"failed to decode Red Hat OVAL JSON: {exc}") from exc


def _parse_file(path: Path, key: str, parse: Any, what: str) -> list:
    try:
        data = _load_json(path)
        if not isinstance(data, dict):
            raise FeedError("failed to decode Red Hat OVAL JSON: expected a JSON object")
        return [parse(item) for item in _objects(data, key)]
    except ValueError as exc:
        raise FeedError(f"failed to unmarshal {what}: failed to decode Red Hat OVAL JSON: {exc}") from exc
    except FeedError as exc:
        raise FeedError(f"failed to unmarshal {what}: {exc}") from exc


def _parse_objects(directory: Path) -> dict[str, str]:
    objects = _parse_file(
        directory / "objects" / "objects.json",
        "RpminfoObjects",
        lambda o: (_string(o, "ID"), _string(o, "Name")),
        "objects",
    )
    return dict(objects)


def _parse_states(directory: Path) -> dict[str, _OvalState]:
    states = _parse_file(
        directory / "states" / "states.json", "RpminfoState", _OvalState.from_dict, "states"
    )
    return {state.id: state for state in states}


def follow_test_refs(
    test: _OvalTest, objects: dict[str, str], states: dict[str, _OvalState]
) -> RpmInfoTest:
    """Resolve a test's object and state references into an RpmInfoTest."""
    result = RpmInfoTest()
    if not test.object_ref:
        return result

    name = objects.get(test.object_ref)
    if name is None:
        raise FeedError(
            f"invalid tests data, can't find object ref: {test.object_ref}, test ref: {test.id}"
        )
    result.name = name

    if not test.state_ref:
        return result

    state = states.get(test.state_ref)
    if state is None:
        raise FeedError(
            f"invalid tests data, can't find ovalstate ref {test.state_ref}, test ref: {test.id}"
        )

    result.signature_key_id = state.signature_key_id
    if state.arch.datatype == "string" and state.arch.operation in ("pattern match", "equals"):
        result.arch = state.arch.text
    if state.evr.datatype == "evr_string" and state.evr.operation == "less than":
        result.fixed_version = state.evr.text
    return result


def parse_tests(directory: str | Path) -> dict[str, RpmInfoTest]:
    """Read and resolve the "at least one" rpminfo tests of one OVAL stream."""
    directory = Path(directory)
    try:
        objects = _parse_objects(directory)
    except FeedError as exc:
        raise FeedError(f"failed to parse objects: {exc}") from exc
    try:
        states = _parse_states(directory)
    except FeedError as exc:
        raise FeedError(f"failed to parse states: {exc}") from exc
    raw_tests = _parse_file(
        directory / "tests" / "tests.json", "RpminfoTests", _OvalTest.from_dict, "tests"
    )

    tests = {}
    for test in raw_tests:
        if test.check != "at least one":
            continue
        try:
            tests[test.id] = follow_test_refs(test, objects, states)
        except FeedError as exc:
            raise FeedError(f"unable to follow test refs: {exc}") from exc
    return tests