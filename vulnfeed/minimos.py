"""Package advisories from the MinimOS security data."""

from __future__ import annotations

import errno
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Mapping

from .bucket import new_minimos
from .store import Store, StoreError
from .types import Advisory, DataSource

MINIMOS_DIR = "minimos"

PLATFORM_NAME = new_minimos("").name()

SOURCE = DataSource(
    id="minimos",
    name="MinimOS Security Data",
    url="https://packages.mini.dev/advisories/secdb/security.json",
)


@dataclass
class _PackageFixes:
    pkg_name: str = ""
    secfixes: dict[str, list[str]] = field(default_factory=dict)


def _walk_files(root: Path) -> Iterator[Path]:
    """Yield every file under root, depth first, in lexical order."""
    if not root.exists():
        raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(root))
    if not root.is_dir():
        yield root
        return
    for entry in sorted(root.iterdir(), key=lambda p: p.name):
        if entry.is_dir():
            yield from _walk_files(entry)
        else:
            yield entry


def _read(path: Path) -> _PackageFixes:
    try:
        with path.open(encoding="utf-8") as handle:
            raw = json.load(handle)
    except ValueError as exc:
        raise ValueError(f"{path}: json decode error: {exc}") from exc
    if raw is None:
        return _PackageFixes()
    if not isinstance(raw, Mapping):
        raise ValueError(f"{path}: json decode error: document is not an object")
    secfixes = raw.get("secfixes") or {}
    if not isinstance(secfixes, Mapping) or not all(
        isinstance(ids, list) or ids is None for ids in secfixes.values()
    ):
        raise ValueError(f"{path}: json decode error: malformed secfixes")
    return _PackageFixes(
        pkg_name=str(raw.get("name") or ""),
        secfixes={str(version): [str(i) for i in ids or []] for version, ids in secfixes.items()},
    )


class VulnSrc:
    """Loads MinimOS security fixes into a store."""

    def __init__(self, store: Store | None = None) -> None:
        self.store = store if store is not None else Store()

    def name(self) -> str:
        return SOURCE.id

    def update(self, directory: str | os.PathLike[str]) -> None:
        """Read every package file and store its security fixes."""
        root = Path(directory, "vuln-list", MINIMOS_DIR)
        packages = [_read(path) for path in _walk_files(root)]
        with self.store.transaction():
            self.store.put_data_source(PLATFORM_NAME, SOURCE)
            for package in packages:
                self._save_secfixes(package)

    def _save_secfixes(self, package: _PackageFixes) -> None:
        for fixed_version, vuln_ids in package.secfixes.items():
            # "0" marks vulnerabilities the package never contained.
            if fixed_version == "0":
                continue
            advisory = Advisory(fixed_version=fixed_version)
            for vuln_id in vuln_ids:
                # Other IDs such as GHSA are aliases of the same CVEs.
                if not vuln_id.startswith("CVE-"):
                    continue
                self.store.put_advisory_detail(vuln_id, package.pkg_name, [PLATFORM_NAME], advisory)
                self.store.put_vulnerability_id(vuln_id)

    def get(self, pkg_name: str) -> list[Advisory]:
        """Return the stored advisories of a package."""
        try:
            return self.store.get_advisories(PLATFORM_NAME, pkg_name)
        except StoreError as exc:
            raise StoreError(f"failed to get advisories: {exc}") from exc