"""Package advisories from the Echo advisory data."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Mapping

from .bucket import new_echo
from .store import Store, StoreError
from .types import Advisory, DataSource, new_severity

ECHO_DIR = "echo"

PLATFORM_NAME = new_echo("").name()

SOURCE = DataSource(id="echo", name="Echo", url="https://advisory.echohq.com/data.json")


def _stem(file_name: str) -> str:
    dot = file_name.rfind(".")
    return file_name if dot < 0 else file_name[:dot]


def read_package_advisories(
    root_dir: str | os.PathLike[str], file_name: str
) -> tuple[str, dict[str, Advisory]]:
    """Read one package file; return the package name and its advisories by CVE ID."""
    path = Path(root_dir, file_name)
    pkg_name = _stem(file_name)
    try:
        with path.open(encoding="utf-8") as handle:
            raw = json.load(handle)
    except ValueError as exc:
        raise ValueError(f"{path}: json decode error: {exc}") from exc
    if raw is None:
        return pkg_name, {}
    if not isinstance(raw, Mapping):
        raise ValueError(f"{path}: json decode error: document is not an object")

    advisories: dict[str, Advisory] = {}
    for cve_id, info in raw.items():
        info = info or {}
        if not isinstance(info, Mapping):
            raise ValueError(f"{path}: json decode error: {cve_id} is not an object")
        advisory = Advisory(fixed_version=str(info.get("fixed_version") or ""))
        severity = str(info.get("severity") or "")
        if severity:
            try:
                advisory.severity = new_severity(severity.upper())
            except ValueError:
                pass
        advisories[str(cve_id)] = advisory
    return pkg_name, advisories


class VulnSrc:
    """Loads Echo advisories into a store."""

    def __init__(self, store: Store | None = None) -> None:
        self.store = store if store is not None else Store()

    def name(self) -> str:
        return SOURCE.id

    def update(self, directory: str | os.PathLike[str]) -> None:
        """Read every package file and store its advisories."""
        root = Path(directory, "vuln-list", ECHO_DIR)
        advisory_map: dict[str, dict[str, Advisory]] = {}
        for entry in sorted(root.iterdir(), key=lambda p: p.name):
            if entry.is_dir():
                continue
            pkg_name, advisories = read_package_advisories(root, entry.name)
            advisory_map[pkg_name] = advisories

        with self.store.transaction():
            self.store.put_data_source(PLATFORM_NAME, SOURCE)
            for pkg_name, advisories in advisory_map.items():
                for cve_id, advisory in advisories.items():
                    self.store.put_advisory_detail(cve_id, pkg_name, [PLATFORM_NAME], advisory)
                    self.store.put_vulnerability_id(cve_id)

    def get(self, pkg_name: str) -> list[Advisory]:
        """Return the stored advisories of a package."""
        try:
            return self.store.get_advisories(PLATFORM_NAME, pkg_name)
        except StoreError as exc:
            raise StoreError(f"failed to get advisories (bucket {PLATFORM_NAME}): {exc}") from exc