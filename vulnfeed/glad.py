"""Conan package advisories from the GitLab Advisory Database."""

from __future__ import annotations

import errno
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Mapping

from .bucket import Ecosystem, new_conan
from .store import Store
from .types import Advisory, DataSource, Severity, VulnerabilityDetail

logger = logging.getLogger(__name__)

GLAD_DIR = "glad"

SUPPORTED_ID_PREFIXES = ("CVE", "GHSA", "GMS")

# Package slug prefix in the advisory database mapped to the ecosystem it belongs to.
ECOSYSTEMS: dict[str, Ecosystem] = {"conan": Ecosystem.CONAN}

SOURCE = DataSource(
    id="glad",
    name="GitLab Advisory Database Community",
    url="https://gitlab.com/gitlab-org/advisories-community",
)

# Only Conan is supported for now.
BUCKET_NAME = new_conan(SOURCE).name()


@dataclass
class _GladAdvisory:
    identifier: str = ""
    package_slug: str = ""
    title: str = ""
    description: str = ""
    affected_range: str = ""
    fixed_versions: list[str] = field(default_factory=list)
    urls: list[str] = field(default_factory=list)


def supported_id(file_name: str) -> bool:
    """Tell whether a file name starts with a supported advisory ID prefix."""
    return file_name.startswith(SUPPORTED_ID_PREFIXES)


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


def _read(path: Path) -> _GladAdvisory:
    try:
        with path.open(encoding="utf-8") as handle:
            raw = json.load(handle)
    except ValueError as exc:
        raise ValueError(f"{path}: json decode error: {exc}") from exc
    if raw is None:
        return _GladAdvisory()
    if not isinstance(raw, Mapping):
        raise ValueError(f"{path}: json decode error: document is not an object")
    try:
        return _GladAdvisory(
            identifier=_text(_lookup(raw, "Identifier")),
            package_slug=_text(_lookup(raw, "PackageSlug")),
            title=_text(_lookup(raw, "Title")),
            description=_text(_lookup(raw, "Description")),
            affected_range=_text(_lookup(raw, "AffectedRange")),
            fixed_versions=_strings(_lookup(raw, "FixedVersions")),
            urls=_strings(_lookup(raw, "Urls")),
        )
    except ValueError as exc:
        raise ValueError(f"{path}: json decode error: {exc}") from exc


class VulnSrc:
    """Loads the GitLab Advisory Database into a store."""

    def __init__(self, store: Store | None = None) -> None:
        self.store = store if store is not None else Store()

    def name(self) -> str:
        return SOURCE.id

    def update(self, directory: str | os.PathLike[str]) -> None:
        """Read the advisories of every supported package type and store them."""
        for pkg_type in ECOSYSTEMS:
            logger.info("Updating GitLab Advisory Database (type: %s)", pkg_type.title())
            root = Path(directory, "vuln-list", GLAD_DIR, pkg_type)
            glads = [_read(path) for path in _walk_files(root) if supported_id(path.name)]
            with self.store.transaction():
                self._commit(pkg_type, glads)

    def _commit(self, pkg_type: str, glads: list[_GladAdvisory]) -> None:
        for glad in glads:
            advisory = Advisory(
                vulnerable_versions=[glad.affected_range],
                patched_versions=list(glad.fixed_versions),
            )
            context = f"vuln_id={glad.identifier} slug={glad.package_slug}"

            # e.g. "conan/gsoap" => "conan", "gsoap"
            parts = glad.package_slug.split("/", 1)
            if len(parts) < 2:
                raise ValueError(f"failed to parse package slug ({context})")
            pkg_name = parts[1]
            if pkg_type not in ECOSYSTEMS:
                raise ValueError(f"failed to get ecosystem: {pkg_type} ({context})")

            self.store.put_data_source(BUCKET_NAME, SOURCE)
            self.store.put_advisory_detail(glad.identifier, pkg_name, [BUCKET_NAME], advisory)

            # Scores are taken from NVD, so none are stored here.
            detail = VulnerabilityDetail(
                id=glad.identifier,
                severity=Severity.UNKNOWN,
                references=list(glad.urls),
                title=glad.title,
                description=glad.description,
            )
            self.store.put_vulnerability_detail(glad.identifier, SOURCE.id, detail)
            self.store.put_vulnerability_id(glad.identifier)