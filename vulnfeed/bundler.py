"""Ruby gem advisories from the Ruby Advisory Database."""

from __future__ import annotations

import errno
import os
from pathlib import Path
from typing import Any, Iterator, Mapping

import yaml

from .bucket import new_rubygems
from .store import Store
from .types import Advisory, DataSource, VulnerabilityDetail

BUNDLER_DIR = "ruby-advisory-db"

SOURCE = DataSource(
    id="ruby-advisory-db",
    name="Ruby Advisory Database",
    url="https://github.com/rubysec/ruby-advisory-db",
)

BUCKET_NAME = new_rubygems(SOURCE).name()


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


def _number(value: Any) -> float:
    return 0.0 if value is None else float(value)


def _strings(value: Any) -> list[str]:
    return [_text(item) for item in value or []]


class VulnSrc:
    """Loads the Ruby Advisory Database into a store."""

    def __init__(self, store: Store | None = None) -> None:
        self.store = store if store is not None else Store()

    def name(self) -> str:
        return SOURCE.id

    def update(self, directory: str | os.PathLike[str]) -> None:
        """Read every advisory under the gems directory and store it."""
        root = Path(directory, BUNDLER_DIR, "gems")
        with self.store.transaction():
            self.store.put_data_source(BUCKET_NAME, SOURCE)
            for path in _walk_files(root):
                if path.name.upper().startswith("OSVDB"):
                    continue
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

        url = _text(raw.get("url"))
        if "osvdb.org" in url.lower():
            url = ""

        cve = _text(raw.get("cve"))
        ghsa = _text(raw.get("ghsa"))
        if cve:
            vuln_id = f"CVE-{cve}"
        elif ghsa:
            vuln_id = f"GHSA-{ghsa}"
        else:
            return

        related = raw.get("related") or {}
        if not isinstance(related, Mapping):
            raise ValueError(f"{path}: yaml unmarshal error: related is not a mapping")

        try:
            advisory = Advisory(
                patched_versions=_strings(raw.get("patched_versions")),
                unaffected_versions=_strings(raw.get("unaffected_versions")),
            )
            detail = VulnerabilityDetail(
                cvss_score=_number(raw.get("cvss_v2")),
                cvss_score_v3=_number(raw.get("cvss_v3")),
                references=[url, *_strings(related.get("url"))],
                title=_text(raw.get("title")),
                description=_text(raw.get("description")),
            )
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{path}: yaml unmarshal error: {exc}") from exc

        self.store.put_advisory_detail(vuln_id, _text(raw.get("gem")), [BUCKET_NAME], advisory)
        self.store.put_vulnerability_detail(vuln_id, SOURCE.id, detail)
        self.store.put_vulnerability_id(vuln_id)