"""Photon OS CVE metadata feed."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from .store import Advisory, DataSource, FeedError, Store, VulnerabilityDetail, _lookup, walk_files

log = logging.getLogger(__name__)

PHOTON_DIR = "photon"
PLATFORM_FORMAT = "Photon OS {}"

SOURCE = DataSource(
    id="photon",
    name="Photon OS CVE metadata",
    url="https://packages.vmware.com/photon/photon_cve_metadata/",
)


@dataclass
class PhotonCVE:
    os_version: str = ""
    cve_id: str = ""
    pkg: str = ""
    cve_score: float = 0.0
    aff_ver: str = ""
    res_ver: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> PhotonCVE:
        return cls(
            os_version=str(_lookup(data, "os_version", "")),
            cve_id=str(_lookup(data, "cve_id", "")),
            pkg=str(_lookup(data, "pkg", "")),
            cve_score=float(_lookup(data, "cve_score", 0.0) or 0.0),
            aff_ver=str(_lookup(data, "aff_ver", "")),
            res_ver=str(_lookup(data, "res_ver", "")),
        )


class VulnSrc:
    name = SOURCE.id

    def __init__(self, store: Store) -> None:
        self.store = store

    def update(self, directory: str | Path) -> None:
        root = Path(directory) / "vuln-list" / PHOTON_DIR
        cves = []
        for path in walk_files(root):
            try:
                cves.append(PhotonCVE.from_dict(json.loads(path.read_text())))
            except (ValueError, TypeError) as exc:
                raise FeedError(f"failed to decode Photon JSON: {exc}") from exc
        log.info("Saving Photon DB")
        with self.store.batch_update() as tx:
            for cve in cves:
                platform = PLATFORM_FORMAT.format(cve.os_version)
                tx.put_data_source(platform, SOURCE)
                tx.put_advisory_detail(
                    cve.cve_id, cve.pkg, [platform], Advisory(fixed_version=cve.res_ver)
                )
                tx.put_vulnerability_detail(
                    cve.cve_id, SOURCE.id, VulnerabilityDetail(cvss_score_v3=cve.cve_score)
                )
                tx.put_vulnerability_id(cve.cve_id)

    def get(self, release: str, pkg_name: str) -> list[Advisory]:
        try:
            return self.store.get_advisories(PLATFORM_FORMAT.format(release), pkg_name)
        except FeedError as exc:
            raise FeedError(f"failed to get Photon advisories: {exc}") from exc