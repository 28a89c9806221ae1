"""PHP package advisories from the PHP Security Advisories Database."""

from __future__ import annotations

import errno
import os
from pathlib import Path
from typing import Any, Iterator, Mapping

import yaml

from .bucket import new_composer
from .store import Store
from .types import Advisory, DataSource, VulnerabilityDetail

COMPOSER_DIR = "php-security-advisories"

SOURCE = DataSource(
    id="php-security-advisories",
    name="PHP Security Advisories Database",
    url="https://github.com/FriendsOfPHP/security-advisories",
)

BUCKET_NAME = new_composer(SOURCE).name()


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


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _vulnerable_versions(branches: Any, path: Path) -> list[str]:
    if not isinstance(branches, Mapping):
        raise ValueError(f"{path}: yaml unmarshal error: branches is not a mapping")
    ranges = []
    for branch in branches.values():
        branch = branch or {}
        if not isinstance(branch, Mapping):
            raise ValueError(f"{path}: yaml unmarshal error: branch is not a mapping")
        ranges.append(", ".join(_text(v) for v in branch.get("versions") or []))
    return ranges


class VulnSrc:
    """Loads the PHP Security Advisories Database into a store."""

    def __init__(self, store: Store | None = None) -> None:
        self.store = store if store is not None else Store()

    def name(self) -> str:
        return SOURCE.id

    def update(self, directory: str | os.PathLike[str]) -> None:
        """Read every CVE file of the repository and store it."""
        root = Path(directory, COMPOSER_DIR)
        with self.store.transaction():
            self.store.put_data_source(BUCKET_NAME, SOURCE)
            for path in _walk_files(root):
                if path.name.startswith("CVE-"):
                    self._put_file(path)

    def _put_file(self, path: Path) -> None:
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ValueError(f"{path}: yaml unmarshal error: {exc}") from exc
        if raw is None:
            raw = {}
        if not isinstance(raw, Mapping):
            raise ValueError(f"{path}: yaml unmarshal error: document is not a mapping")

        vuln_id = _text(raw.get("cve")) or path.name.removesuffix(".yaml")
        advisory = Advisory(vulnerable_versions=_vulnerable_versions(raw.get("branches") or {}, path))

        pkg_name = _text(raw.get("reference")).removeprefix("composer://").lower()
        self.store.put_advisory_detail(vuln_id, pkg_name, [BUCKET_NAME], advisory)

        detail = VulnerabilityDetail(
            id=vuln_id,
            references=[_text(raw.get("link"))],
            title=_text(raw.get("title")),
        )
        self.store.put_vulnerability_detail(vuln_id, SOURCE.id, detail)
        self.store.put_vulnerability_id(vuln_id)