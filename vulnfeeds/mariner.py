"""CBL-Mariner vulnerability data feed."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path

from . import mariner_oval
from .mariner_oval import Definition, Metadata, RpmInfoState, RpmInfoTest
from .store import (
    Advisory,
    DataSource,
    FeedError,
    Severity,
    Store,
    VulnerabilityDetail,
    new_severity,
)

log = logging.getLogger(__name__)

MARINER_DIR = "mariner"
PLATFORM_FORMAT = "CBL-Mariner {}"

SOURCE = DataSource(
    id="cbl-mariner",
    name="CBL-Mariner Vulnerability Data",
    url="https://github.com/microsoft/CBL-MarinerVulnerabilityData",
)


class NotSupportedError(FeedError):
    """Raised for OVAL states whose data type or operation is not handled."""


class Operator(str, enum.Enum):
    LESS_THAN_OR_EQUAL = "less than or equal"
    LESS_THAN = "less than"


@dataclass
class _ResolvedTest:
    name: str
    version: str
    operator: Operator


@dataclass
class Entry:
    pkg_name: str = ""
    version: str = ""
    operator: Operator = Operator.LESS_THAN
    metadata: Metadata = field(default_factory=Metadata)


def follow_test_refs(
    test: RpmInfoTest, objects: dict[str, str], states: dict[str, RpmInfoState]
) -> _ResolvedTest:
    """Resolve a test into the package name, version and operator it checks."""
    if not test.object_ref:
        raise FeedError("invalid test, no object ref")
    pkg_name = objects.get(test.object_ref)
    if pkg_name is None:
        raise FeedError(
            f"invalid test data, can't find object ref: {test.object_ref}, test ref: {test.id}"
        )

    if not test.state_ref:
        raise FeedError("invalid test, no state ref")
    state = states.get(test.state_ref)
    if state is None:
        raise FeedError(
            f"invalid tests data, can't find ovalstate ref {test.state_ref}, test ref: {test.id}"
        )

    if state.evr.datatype != "evr_string":
        raise NotSupportedError(f"state data type ({state.evr.datatype}): format not supported")
    try:
        operator = Operator(state.evr.operation)
    except ValueError:
        raise NotSupportedError(
            f"state operation ({state.evr.operation}): format not supported"
        ) from None

    return _ResolvedTest(name=pkg_name, version=state.evr.text, operator=operator)


def resolve_tests(directory: str | Path) -> dict[str, _ResolvedTest]:
    """Resolve every "at least one" test in ``directory`` by its ID."""
    try:
        objects = mariner_oval.parse_objects(directory)
    except FeedError as exc:
        raise FeedError(f"failed to parse objects: {exc}") from exc
    try:
        states = mariner_oval.parse_states(directory)
    except FeedError as exc:
        raise FeedError(f"failed to parse states: {exc}") from exc
    try:
        tests = mariner_oval.parse_tests(directory)
    except FeedError as exc:
        raise FeedError(f"failed to parse tests: {exc}") from exc

    resolved = {}
    for test in tests:
        if test.check != "at least one":
            continue
        try:
            resolved[test.id] = follow_test_refs(test, objects, states)
        except FeedError as exc:
            raise FeedError(f"unable to follow test refs: {exc}") from exc
    return resolved


def resolve_definitions(
    definitions: list[Definition], tests: dict[str, _ResolvedTest]
) -> list[Entry]:
    """Pair each definition with its resolved test; skip those without one."""
    entries = []
    for definition in definitions:
        test = tests.get(definition.criteria.criterion.test_ref)
        if test is None:
            continue
        entries.append(
            Entry(
                pkg_name=test.name,
                version=test.version,
                operator=test.operator,
                metadata=definition.metadata,
            )
        )
    return entries


def parse_oval(directory: str | Path) -> list[Entry]:
    log.info("    Parsing %s", directory)
    try:
        tests = resolve_tests(directory)
    except FeedError as exc:
        raise FeedError(f"failed to resolve tests: {exc}") from exc
    try:
        definitions = mariner_oval.parse_definitions(directory)
    except FeedError as exc:
        raise FeedError(f"failed to parse definitions: {exc}") from exc
    return resolve_definitions(definitions, tests)


def _severity(name: str) -> Severity:
    try:
        return new_severity(name.upper())
    except ValueError:
        return Severity.UNKNOWN


class VulnSrc:
    name = SOURCE.id

    def __init__(self, store: Store) -> None:
        self.store = store

    def update(self, directory: str | Path) -> None:
        root = Path(directory) / "vuln-list" / MARINER_DIR
        try:
            versions = sorted(root.iterdir(), key=lambda p: p.name)
        except OSError as exc:
            raise FeedError(f"unable to list directory entries ({root}): {exc}") from exc

        for version_dir in versions:
            try:
                entries = parse_oval(version_dir)
            except FeedError as exc:
                raise FeedError(f"failed to parse CBL-Mariner OVAL: {exc}") from exc
            self._save(version_dir.name, entries)

    def _save(self, major_version: str, entries: list[Entry]) -> None:
        platform = PLATFORM_FORMAT.format(major_version)
        with self.store.batch_update() as tx:
            tx.put_data_source(platform, SOURCE)
            for entry in entries:
                cve_id = entry.metadata.reference.ref_id
                advisory = Advisory()
                # Patchable holds "true", "false" or "Not Applicable".
                patchable = entry.metadata.patchable.lower()
                if patchable == "true":
                    advisory.fixed_version = entry.version
                elif patchable == "not applicable":
                    continue

                tx.put_advisory_detail(cve_id, entry.pkg_name, [platform], advisory)
                tx.put_vulnerability_detail(
                    cve_id,
                    SOURCE.id,
                    VulnerabilityDetail(
                        severity=_severity(entry.metadata.severity),
                        title=entry.metadata.title,
                        description=entry.metadata.description,
                        references=[entry.metadata.reference.ref_url],
                    ),
                )
                tx.put_vulnerability_id(cve_id)

    def get(self, release: str, pkg_name: str) -> list[Advisory]:
        try:
            return self.store.get_advisories(PLATFORM_FORMAT.format(release), pkg_name)
        except FeedError as exc:
            raise FeedError(f"failed to get CBL-Marina advisories: {exc}") from exc