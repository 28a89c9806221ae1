"""npm package advisories from the Node.js Ecosystem Security Working Group."""

from __future__ import annotations

import errno
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Mapping

from .bucket import new_npm
from .store import Store
from .types import Advisory, DataSource, VulnerabilityDetail

NODE_DIR = "nodejs-security-wg"

SOURCE = DataSource(
    id="nodejs-security-wg",
    name="Node.js Ecosystem Security Working Group",
    url="https://github.com/nodejs/security-wg",
)

BUCKET_NAME = new_npm(SOURCE).name()


def parse_cvss_score(value: Any) -> float:
    """Read a CVSS score given as a number or as text such as "4.8 (Medium)".

    Anything else, null included, gives -1.
    """
    if isinstance(value, bool):
        return -1.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return float(value.split(" ")[0])
    return -1.0


def _lookup(raw: Mapping[str, Any], key: str) -> Any:
    """Find a key exactly, or else ignoring case."""
    if key in raw:
        return raw[key]
    folded = key.casefold()
    for name, value in raw.items():
        if isinstance(name, str) and name.casefold() == folded:
            return value
    return None


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _strings(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError("expected a list of strings")
    return [_text(item) for item in value]


@dataclass
class RawAdvisory:
    """One advisory file of the working group."""

    id: int = 0
    title: str = ""
    module_name: str = ""
    cves: list[str] = field(default_factory=list)
    vulnerable_versions: str = ""
    patched_versions: str = ""
    overview: str = ""
    recommendation: str = ""
    references: list[str] = field(default_factory=list)
    cvss_score: float = 0.0

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> RawAdvisory:
        ident = _lookup(raw, "id")
        if ident is not None and (isinstance(ident, bool) or not isinstance(ident, int)):
            raise ValueError(f"advisory id is not an integer: {ident!r}")
        score = _lookup(raw, "cvss_score")
        has_score = any(
            isinstance(name, str) and name.casefold() == "cvss_score" for name in raw
        )
        return cls(
            id=ident or 0,
            title=_text(_lookup(raw, "title")),
            module_name=_text(_lookup(raw, "module_name")),
            cves=_strings(_lookup(raw, "cves")),
            vulnerable_versions=_text(_lookup(raw, "vulnerable_versions")),
            patched_versions=_text(_lookup(raw, "patched_versions")),
            overview=_text(_lookup(raw, "overview")),
            recommendation=_text(_lookup(raw, "recommendation")),
            references=_strings(_lookup(raw, "references")),
            cvss_score=parse_cvss_score(score) if has_score else 0.0,
        )


def _split_ranges(ranges: str) -> list[str]:
    if not ranges:
        return []
    return [part.strip() for part in ranges.split("||")]


def convert_to_generic_advisory(advisory: RawAdvisory) -> Advisory:
    """Turn the "||"-separated version ranges into an advisory."""
    return Advisory(
        vulnerable_versions=_split_ranges(advisory.vulnerable_versions),
        patched_versions=_split_ranges(advisory.patched_versions),
    )


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


def _read(path: Path) -> RawAdvisory:
    try:
        with path.open(encoding="utf-8") as handle:
            raw = json.load(handle)
        if raw is None:
            return RawAdvisory()
        if not isinstance(raw, Mapping):
            raise ValueError("document is not an object")
        return RawAdvisory.from_dict(raw)
    except ValueError as exc:
        raise ValueError(f"{path}: json decode error: {exc}") from exc


class VulnSrc:
    """Loads the working group's npm advisories into a store."""

    def __init__(self, store: Store | None = None) -> None:
        self.store = store if store is not None else Store()

    def name(self) -> str:
        return SOURCE.id

    def update(self, directory: str | os.PathLike[str]) -> None:
        """Read every JSON advisory under the vuln directory and store it."""
        root = Path(directory, NODE_DIR, "vuln")
        with self.store.transaction():
            self.store.put_data_source(BUCKET_NAME, SOURCE)
            for path in _walk_files(root):
                if path.name.endswith(".json"):
                    self._commit(_read(path))

    def _commit(self, advisory: RawAdvisory) -> None:
        # Advisories of Node.js itself have no module name.
        if not advisory.module_name:
            return
        module_name = advisory.module_name.lower()

        vuln_ids = advisory.cves or [f"NSWG-ECO-{advisory.id}"]
        generic = convert_to_generic_advisory(advisory)
        # A score of zero means none was given.
        score = advisory.cvss_score if advisory.cvss_score > 0 else -1.0

        for vuln_id in vuln_ids:
            self.store.put_advisory_detail(vuln_id, module_name, [BUCKET_NAME], generic)
            detail = VulnerabilityDetail(
                id=vuln_id,
                cvss_score=score,
                references=list(advisory.references),
                title=advisory.title,
                description=advisory.overview,
            )
            self.store.put_vulnerability_detail(vuln_id, SOURCE.id, detail)
            self.store.put_vulnerability_id(vuln_id)