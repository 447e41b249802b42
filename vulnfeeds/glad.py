"""GitLab Advisory Database (community edition) feed."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

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

GLAD_DIR = "glad"
SUPPORTED_ID_PREFIXES = ("CVE", "GHSA", "GMS")

# GLAD package type => ecosystem
ECOSYSTEMS = {"conan": "conan"}

SOURCE = DataSource(
    id="glad",
    name="GitLab Advisory Database Community",
    url="https://gitlab.com/gitlab-org/advisories-community",
)


def supported_id(file_name: str) -> bool:
    return file_name.startswith(SUPPORTED_ID_PREFIXES)


def _strs(data: dict, key: str) -> list[str]:
    value = _lookup(data, key) or []
    if not isinstance(value, list):
        raise ValueError(f"field {key}: expected a list")
    return [str(v) for v in value]


@dataclass
class GladAdvisory:
    identifier: str = ""
    package_slug: str = ""
    title: str = ""
    description: str = ""
    affected_range: str = ""
    fixed_versions: list[str] = field(default_factory=list)
    urls: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> GladAdvisory:
        return cls(
            identifier=str(_lookup(data, "Identifier", "")),
            package_slug=str(_lookup(data, "PackageSlug", "")),
            title=str(_lookup(data, "Title", "")),
            description=str(_lookup(data, "Description", "")),
            affected_range=str(_lookup(data, "AffectedRange", "")),
            fixed_versions=_strs(data, "FixedVersions"),
            urls=_strs(data, "Urls"),
        )


class VulnSrc:
    name = SOURCE.id

    def __init__(self, store: Store) -> None:
        self.store = store

    def update(self, directory: str | Path) -> None:
        for pkg_type in ECOSYSTEMS:
            log.info("Updating GitLab Advisory Database %s...", pkg_type.title())
            root = Path(directory) / "vuln-list" / GLAD_DIR / pkg_type
            self._update(pkg_type, root)

    def _update(self, pkg_type: str, root: Path) -> None:
        advisories = []
        for path in walk_files(root):
            if not supported_id(path.name):
                continue
            try:
                advisories.append(GladAdvisory.from_dict(json.loads(path.read_text())))
            except (ValueError, TypeError) as exc:
                raise FeedError(f"failed to decode GLAD: {exc}") from exc

        with self.store.batch_update() as tx:
            for glad in advisories:
                _, sep, pkg_name = glad.package_slug.partition("/")
                if not sep:
                    raise FeedError(f"failed to parse package slug: {glad.package_slug}")
                ecosystem = ECOSYSTEMS.get(pkg_type)
                if ecosystem is None:
                    raise FeedError(f"failed to get ecosystem: {pkg_type}")
                bucket = bucket_name(ecosystem, SOURCE.name)
                tx.put_data_source(bucket, SOURCE)
                tx.put_advisory_detail(
                    glad.identifier,
                    pkg_name,
                    [bucket],
                    Advisory(
                        vulnerable_versions=[glad.affected_range],
                        patched_versions=glad.fixed_versions,
                    ),
                )
                tx.put_vulnerability_detail(
                    glad.identifier,
                    SOURCE.id,
                    VulnerabilityDetail(
                        id=glad.identifier,
                        references=glad.urls,
                        title=glad.title,
                        description=glad.description,
                    ),
                )
                tx.put_vulnerability_id(glad.identifier)