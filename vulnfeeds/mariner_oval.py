"""Reader for CBL-Mariner OVAL data: definitions, tests, objects and states."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .store import FeedError, _lookup, walk_files


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


def _objects(data: dict, key: str) -> list:
    value = _lookup(data, key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"field {key}: expected a list, got {type(value).__name__}")
    return value


def _load(path: Path) -> Any:
    return json.loads(path.read_text())


@dataclass
class Criterion:
    comment: str = ""
    test_ref: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Criterion:
        return cls(comment=_string(data, "Comment"), test_ref=_string(data, "TestRef"))


@dataclass
class Criteria:
    operator: str = ""
    criterion: Criterion = field(default_factory=Criterion)

    @classmethod
    def from_dict(cls, data: dict) -> Criteria:
        return cls(
            operator=_string(data, "Operator"),
            criterion=Criterion.from_dict(_object(data, "Criterion")),
        )


@dataclass
class Reference:
    ref_id: str = ""
    ref_url: str = ""
    source: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Reference:
        return cls(
            ref_id=_string(data, "RefID"),
            ref_url=_string(data, "RefURL"),
            source=_string(data, "Source"),
        )


@dataclass
class Affected:
    family: str = ""
    platform: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Affected:
        return cls(family=_string(data, "Family"), platform=_string(data, "Platform"))


@dataclass
class Metadata:
    title: str = ""
    affected: Affected = field(default_factory=Affected)
    reference: Reference = field(default_factory=Reference)
    patchable: str = ""
    advisory_date: str = ""
    advisory_id: str = ""
    severity: str = ""
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Metadata:
        return cls(
            title=_string(data, "Title"),
            affected=Affected.from_dict(_object(data, "Affected")),
            reference=Reference.from_dict(_object(data, "Reference")),
            patchable=_string(data, "Patchable"),
            advisory_date=_string(data, "AdvisoryDate"),
            advisory_id=_string(data, "AdvisoryID"),
            severity=_string(data, "Severity"),
            description=_string(data, "Description"),
        )


@dataclass
class Definition:
    class_name: str = ""
    id: str = ""
    version: str = ""
    metadata: Metadata = field(default_factory=Metadata)
    criteria: Criteria = field(default_factory=Criteria)

    @classmethod
    def from_dict(cls, data: dict) -> Definition:
        return cls(
            class_name=_string(data, "Class"),
            id=_string(data, "ID"),
            version=_string(data, "Version"),
            metadata=Metadata.from_dict(_object(data, "Metadata")),
            criteria=Criteria.from_dict(_object(data, "Criteria")),
        )


@dataclass
class RpmInfoTest:
    check: str = ""
    comment: str = ""
    id: str = ""
    version: str = ""
    object_ref: str = ""
    state_ref: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> RpmInfoTest:
        return cls(
            check=_string(data, "Check"),
            comment=_string(data, "Comment"),
            id=_string(data, "ID"),
            version=_string(data, "Version"),
            object_ref=_string(_object(data, "Object"), "ObjectRef"),
            state_ref=_string(_object(data, "State"), "StateRef"),
        )


@dataclass
class Evr:
    text: str = ""
    datatype: str = ""
    operation: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Evr:
        return cls(
            text=_string(data, "Text"),
            datatype=_string(data, "Datatype"),
            operation=_string(data, "Operation"),
        )


@dataclass
class RpmInfoState:
    id: str = ""
    version: str = ""
    evr: Evr = field(default_factory=Evr)

    @classmethod
    def from_dict(cls, data: dict) -> RpmInfoState:
        return cls(
            id=_string(data, "ID"),
            version=_string(data, "Version"),
            evr=Evr.from_dict(_object(data, "Evr")),
        )


def parse_definitions(directory: str | Path) -> list[Definition]:
    """Read every definition file below ``directory``/definitions."""
    root = Path(directory) / "definitions"
    if not root.exists():
        raise FeedError("no definitions dir")

    definitions = []
    try:
        for path in walk_files(root):
            try:
                definitions.append(Definition.from_dict(_load(path)))
            except (ValueError, TypeError) as exc:
                raise FeedError(f"failed to decode {path}: {exc}") from exc
    except (OSError, FeedError) as exc:
        raise FeedError(f"CBL-Mariner OVAL walk error: {exc}") from exc
    return definitions


def parse_tests(directory: str | Path) -> list[RpmInfoTest]:
    """Read the rpminfo tests from ``directory``/tests/tests.json."""
    try:
        data = _load(Path(directory) / "tests" / "tests.json")
        return [RpmInfoTest.from_dict(t) for t in _objects(data, "RpminfoTests")]
    except (OSError, ValueError, TypeError) as exc:
        raise FeedError(f"failed to unmarshal tests: {exc}") from exc


def parse_objects(directory: str | Path) -> dict[str, str]:
    """Map each rpminfo object ID to its package name."""
    try:
        data = _load(Path(directory) / "objects" / "objects.json")
        return {
            _string(obj, "ID"): _string(obj, "Name")
            for obj in _objects(data, "RpminfoObjects")
        }
    except (OSError, ValueError, TypeError) as exc:
        raise FeedError(f"failed to unmarshal objects: {exc}") from exc


def parse_states(directory: str | Path) -> dict[str, RpmInfoState]:
    """Map each rpminfo state ID to the state."""
    try:
        data = _load(Path(directory) / "states" / "states.json")
        states = [RpmInfoState.from_dict(s) for s in _objects(data, "RpminfoState")]
    except (OSError, ValueError, TypeError) as exc:
        raise FeedError(f"failed to unmarshal states: {exc}") from exc
    return {state.id: state for state in states}