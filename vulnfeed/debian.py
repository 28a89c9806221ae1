"""Debian package advisories from the Debian Security Tracker."""

from __future__ import annotations

import dataclasses
import errno
import json
import logging
import os
import string
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator, Mapping, NamedTuple

from .bucket import new_debian
from .store import Store, StoreError
from .types import Advisory, DataSource, Severity, Status, VulnerabilityDetail

logger = logging.getLogger(__name__)

DEBIAN_DIR = "vuln-list-debian"

PACKAGE_TYPE = "package"
XREF_TYPE = "xref"

DISTRIBUTIONS_FILE = "distributions.json"
SOURCES_DIR = "source"
UPDATE_SOURCES_DIR = "updates-source"
CVE_DIR = "CVE"
DLA_DIR = "DLA"
DSA_DIR = "DSA"

# "removed" must not be treated as not affected.
SKIP_STATUSES = ("not-affected", "undetermined")

SOURCE = DataSource(
    id="debian",
    name="Debian Security Tracker",
    url="https://salsa.debian.org/security-tracker-team/security-tracker",
)

_DIGITS = frozenset(string.digits)
_LETTERS = frozenset(string.ascii_letters)


def _char_order(char: str) -> int:
    if char in _DIGITS or char == "":
        return 0
    if char in _LETTERS:
        return ord(char)
    if char == "~":
        return -1
    return ord(char) + 256


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def _compare_part(a: str, b: str) -> int:
    """Compare two upstream versions or revisions the way dpkg does."""
    i = j = 0
    while i < len(a) or j < len(b):
        first_diff = 0
        while (i < len(a) and a[i] not in _DIGITS) or (j < len(b) and b[j] not in _DIGITS):
            ac = _char_order(a[i] if i < len(a) else "")
            bc = _char_order(b[j] if j < len(b) else "")
            if ac != bc:
                return _sign(ac - bc)
            i += 1
            j += 1
        while i < len(a) and a[i] == "0":
            i += 1
        while j < len(b) and b[j] == "0":
            j += 1
        while i < len(a) and a[i] in _DIGITS and j < len(b) and b[j] in _DIGITS:
            if not first_diff:
                first_diff = ord(a[i]) - ord(b[j])
            i += 1
            j += 1
        if i < len(a) and a[i] in _DIGITS:
            return 1
        if j < len(b) and b[j] in _DIGITS:
            return -1
        if first_diff:
            return _sign(first_diff)
    return 0


@dataclass(frozen=True, eq=False)
class DebianVersion:
    """A Debian package version: epoch, upstream version and revision."""

    epoch: int
    upstream: str
    revision: str = ""

    __hash__ = None  # type: ignore[assignment]

    @classmethod
    def parse(cls, text: str) -> DebianVersion:
        """Parse and validate a version string; ValueError if it is malformed."""
        text = text.strip()
        epoch = 0
        if ":" in text:
            epoch_text, text = text.split(":", 1)
            try:
                epoch = int(epoch_text)
            except ValueError:
                raise ValueError(f"epoch parse error: {epoch_text!r}") from None
            if epoch < 0:
                raise ValueError("epoch is negative")
        upstream, dash, revision = text.rpartition("-")
        if not dash:
            upstream, revision = text, ""
        if not upstream:
            raise ValueError("upstream_version is empty")
        if upstream[0] not in _DIGITS:
            raise ValueError(f"upstream_version must start with digit: {upstream!r}")
        for char in upstream:
            if not (char.isdigit() or char.isalpha() or char in ".-+~:_"):
                raise ValueError(f"upstream_version includes invalid character {char!r}")
        for char in revision:
            if not (char.isdigit() or char.isalpha() or char in ".+~_"):
                raise ValueError(f"debian_revision includes invalid character {char!r}")
        return cls(epoch, upstream, revision)

    def compare(self, other: DebianVersion) -> int:
        """Return -1, 0 or 1 as this version is older, equal or newer."""
        if self.epoch != other.epoch:
            return _sign(self.epoch - other.epoch)
        return _compare_part(self.upstream, other.upstream) or _compare_part(
            self.revision, other.revision
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DebianVersion):
            return NotImplemented
        return self.compare(other) == 0

    def __lt__(self, other: DebianVersion) -> bool:
        return self.compare(other) < 0

    def __le__(self, other: DebianVersion) -> bool:
        return self.compare(other) <= 0

    def __gt__(self, other: DebianVersion) -> bool:
        return self.compare(other) > 0

    def __ge__(self, other: DebianVersion) -> bool:
        return self.compare(other) >= 0

    def __str__(self) -> str:
        text = f"{self.epoch}:{self.upstream}" if self.epoch else self.upstream
        return f"{text}-{self.revision}" if self.revision else text


def compare_versions(v1: str, v2: str) -> int:
    """Compare two versions, either of which may be empty (empty is oldest)."""
    if not v1 and not v2:
        return 0
    if not v1:
        return -1
    if not v2:
        return 1
    try:
        return DebianVersion.parse(v1).compare(DebianVersion.parse(v2))
    except ValueError as exc:
        raise ValueError(f"version error: {exc}") from exc


def has_fixed_version(sid_ver: str, code_ver: str) -> bool:
    """Tell whether a release whose latest version is code_ver carries the sid fix.

    An empty sid version means the vulnerability is not fixed even in sid.
    """
    if not sid_ver:
        return False
    try:
        return compare_versions(code_ver, sid_ver) >= 0
    except ValueError as exc:
        raise ValueError(
            f"version comparison error (sid {sid_ver}, release {code_ver}): {exc}"
        ) from exc


def severity_from_urgency(urgency: str) -> Severity:
    """Map a tracker urgency to a severity."""
    if urgency in ("unimportant", "low", "low*", "low**"):
        return Severity.LOW
    if urgency in ("medium", "medium*", "medium**"):
        return Severity.MEDIUM
    if urgency in ("high", "high*", "high**"):
        return Severity.HIGH
    return Severity.UNKNOWN


def new_status(state: str) -> Status:
    """Map a tracker state such as "no-dsa" to a status."""
    state = state.lower()
    if state in ("no-dsa", "unfixed"):
        return Status.AFFECTED
    if state == "ignored":
        return Status.WILL_NOT_FIX
    if state == "postponed":
        return Status.FIX_DEFERRED
    if state == "end-of-life":
        return Status.END_OF_LIFE
    return Status.UNKNOWN


@dataclass
class DebianAdvisory:
    """An advisory as gathered from the tracker, before it is stored."""

    vulnerability_id: str = ""
    platform: str = ""
    pkg_name: str = ""
    vendor_ids: list[str] = field(default_factory=list)
    state: str = ""
    severity: str = ""
    fixed_version: str = ""
    title: str = ""


PutFunc = Callable[[Store, DebianAdvisory], None]


def _default_put(store: Store, advisory: DebianAdvisory) -> None:
    if not isinstance(advisory, DebianAdvisory):
        raise TypeError("unknown type")
    detail = Advisory(
        vendor_ids=list(advisory.vendor_ids),
        status=new_status(advisory.state),
        severity=severity_from_urgency(advisory.severity),
        fixed_version=advisory.fixed_version,
    )
    store.put_advisory_detail(
        advisory.vulnerability_id, advisory.pkg_name, [advisory.platform], detail
    )
    store.put_vulnerability_detail(
        advisory.vulnerability_id, SOURCE.id, VulnerabilityDetail(title=advisory.title)
    )
    store.put_vulnerability_id(advisory.vulnerability_id)
    store.put_data_source(advisory.platform, SOURCE)


class _Key(NamedTuple):
    code_name: str = ""
    pkg_name: str = ""
    vuln_id: str = ""
    severity: str = ""


@dataclass
class _Annotation:
    type: str = ""
    release: str = ""
    package: str = ""
    kind: str = ""
    version: str = ""
    severity: str = ""
    bugs: list[str] = field(default_factory=list)


@dataclass
class _Bug:
    id: str = ""
    description: str = ""
    annotations: list[_Annotation] = field(default_factory=list)


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
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"expected a string, got {value!r}")
    return value


def _strings(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError("expected a list of strings")
    return [_text(item) for item in value]


def _mapping(value: Any, what: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"{what} is not an object")
    return value


def _read_json(path: Path) -> Any:
    try:
        with path.open(encoding="utf-8") as handle:
            return json.load(handle)
    except ValueError as exc:
        raise ValueError(f"{path}: json decode error: {exc}") from exc


def _read_bug(path: Path) -> _Bug:
    raw = _read_json(path)
    try:
        raw = _mapping(raw, "document")
        header = _mapping(_lookup(raw, "Header"), "Header")
        annotations = _lookup(raw, "Annotations") or []
        if not isinstance(annotations, list):
            raise ValueError("Annotations is not a list")
        return _Bug(
            id=_text(_lookup(header, "ID")),
            description=_text(_lookup(header, "Description")),
            annotations=[
                _Annotation(
                    type=_text(_lookup(ann, "Type")),
                    release=_text(_lookup(ann, "Release")),
                    package=_text(_lookup(ann, "Package")),
                    kind=_text(_lookup(ann, "Kind")),
                    version=_text(_lookup(ann, "Version")),
                    severity=_text(_lookup(ann, "Severity")),
                    bugs=_strings(_lookup(ann, "Bugs")),
                )
                for ann in (_mapping(item, "annotation") for item in annotations)
            ],
        )
    except ValueError as exc:
        raise ValueError(f"{path}: json decode error: {exc}") from exc


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


@contextmanager
def _stage(message: str) -> Iterator[None]:
    try:
        yield
    except ValueError as exc:
        raise ValueError(f"{message}: {exc}") from exc


class VulnSrc:
    """Loads the Debian Security Tracker into a store.

    A custom ``put`` receives each gathered advisory instead of the default
    writer, which stores advisory, detail, ID and data source.
    """

    def __init__(self, store: Store | None = None, put: PutFunc | None = None) -> None:
        self.store = store if store is not None else Store()
        self.put = put if put is not None else _default_put
        self._reset()

    def _reset(self) -> None:
        # Codename to major version, e.g. "buster" => "10".
        self._distributions: dict[str, str] = {}
        # Vulnerability ID to short description.
        self._details: dict[str, str] = {}
        # (codename, package) to the latest version in the release.
        self._pkg_versions: dict[_Key, str] = {}
        # (package, vulnerability, severity) to the fixed version in sid; empty if unfixed.
        self._sid_fixed_versions: dict[_Key, str] = {}
        self._advisories: dict[_Key, DebianAdvisory] = {}
        self._not_affected: set[_Key] = set()

    def name(self) -> str:
        return SOURCE.id

    def update(self, directory: str | os.PathLike[str]) -> None:
        """Parse the tracker data under directory and store the advisories."""
        self._reset()
        with _stage("parse error"):
            self._parse(Path(directory, DEBIAN_DIR, "tracker"))
        with _stage("save error"):
            self._save()

    def _parse(self, root: Path) -> None:
        with _stage("distributions error"):
            self._parse_distributions(root)
        with _stage("source parse error"):
            self._parse_sources(root / SOURCES_DIR)
        with _stage("updates-source parse error"):
            self._parse_sources(root / UPDATE_SOURCES_DIR)
        with _stage("CVE error"):
            logger.info("Parsing CVE JSON files...")
            self._parse_bugs(root / CVE_DIR, self._parse_cve)
        with _stage("DLA error"):
            logger.info("Parsing DLA JSON files...")
            self._parse_bugs(root / DLA_DIR, self._parse_advisory)
        with _stage("DSA error"):
            logger.info("Parsing DSA JSON files...")
            self._parse_bugs(root / DSA_DIR, self._parse_advisory)

    def _parse_distributions(self, root: Path) -> None:
        logger.info("Parsing distributions...")
        path = root / DISTRIBUTIONS_FILE
        raw = _read_json(path)
        try:
            parsed = _mapping(raw, "document")
            for dist, value in parsed.items():
                major = _text(_lookup(_mapping(value, dist), "major-version"))
                # An empty major version belongs to sid.
                if major:
                    self._distributions[dist] = major
        except ValueError as exc:
            raise ValueError(f"{path}: json decode error: {exc}") from exc

    def _parse_sources(self, directory: Path) -> None:
        for code in self._distributions:
            code_path = directory / code
            if not code_path.exists():
                continue
            logger.info("Parsing sources... (code: %s)", code)
            for path in _walk_files(code_path):
                raw = _read_json(path)
                try:
                    raw = _mapping(raw, "document")
                    packages = _strings(_lookup(raw, "Package"))
                    versions = _strings(_lookup(raw, "Version"))
                except ValueError as exc:
                    raise ValueError(f"{path}: json decode error: {exc}") from exc
                if not packages or not versions:
                    continue
                key = _Key(code_name=code, pkg_name=packages[0])
                version = versions[0]
                stored = self._pkg_versions.get(key)
                if stored is not None:
                    try:
                        newer_stored = compare_versions(stored, version) >= 0
                    except ValueError as exc:
                        raise ValueError(
                            f"{path}: version comparison error ({key.pkg_name} {version}): {exc}"
                        ) from exc
                    if newer_stored:
                        continue
                self._pkg_versions[key] = version

    def _parse_bugs(self, directory: Path, handle: Callable[[_Bug], None]) -> None:
        for path in _walk_files(directory):
            bug = _read_bug(path)
            try:
                handle(bug)
            except ValueError as exc:
                raise ValueError(f"{path}: parse debian bug error: {exc}") from exc

    def _parse_cve(self, bug: _Bug) -> None:
        severities: dict[str, str] = {}
        cve_id = bug.id
        self._details[cve_id] = bug.description.strip("()")

        for ann in bug.annotations:
            if ann.type != PACKAGE_TYPE:
                continue
            # The release is empty for sid.
            key = _Key(code_name=ann.release, pkg_name=ann.package, vuln_id=cve_id)

            if ann.kind in SKIP_STATUSES:
                self._not_affected.add(key)
                continue

            if not ann.release:
                sid_key = _Key(pkg_name=ann.package, vuln_id=cve_id)
                if ann.severity:
                    severities[ann.package] = ann.severity
                    sid_key = sid_key._replace(severity=ann.severity)
                # Empty for unfixed vulnerabilities.
                self._sid_fixed_versions[sid_key] = ann.version
                continue

            fixed_version = ann.version
            kind = ann.kind
            latest = self._pkg_versions.get(_Key(code_name=ann.release, pkg_name=ann.package))
            if latest is not None:
                # A fix that is not released yet leaves the package unfixed.
                try:
                    unreleased = compare_versions(latest, fixed_version) < 0
                except ValueError:
                    unreleased = False
                if unreleased:
                    fixed_version = ""
                    if kind == "fixed":
                        kind = "unfixed"

            advisory = DebianAdvisory(
                fixed_version=fixed_version, severity=severities.get(ann.package, "")
            )
            if not fixed_version:
                # e.g. no-dsa
                advisory.state = kind
            # DLA and DSA may overwrite this advisory later.
            self._advisories[key] = advisory

    def _parse_advisory(self, bug: _Bug) -> None:
        cve_ids: list[str] = []
        advisory_id = bug.id
        self._details[advisory_id] = bug.description.strip("()")

        for ann in bug.annotations:
            if ann.type == XREF_TYPE:
                cve_ids = ann.bugs
                continue
            if ann.type != PACKAGE_TYPE:
                continue

            # Advisories without CVE IDs are stored under their own ID.
            for vuln_id in cve_ids or [advisory_id]:
                key = _Key(code_name=ann.release, pkg_name=ann.package, vuln_id=vuln_id)
                if ann.kind in SKIP_STATUSES:
                    self._not_affected.add(key)
                    continue

                existing = self._advisories.get(key)
                if existing is not None:
                    # The latest fix wins: the earlier one is assumed insufficient.
                    try:
                        newer = compare_versions(ann.version, existing.fixed_version) > 0
                    except ValueError as exc:
                        raise ValueError(
                            f"version error ({vuln_id} {ann.package} {ann.release}): {exc}"
                        ) from exc
                    adv = dataclasses.replace(existing)
                    if newer:
                        adv.fixed_version = ann.version
                        adv.state = ""
                    adv.vendor_ids = [*existing.vendor_ids, advisory_id]
                else:
                    adv = DebianAdvisory(fixed_version=ann.version, vendor_ids=[advisory_id])
                self._advisories[key] = adv

    def _save(self) -> None:
        logger.info("Saving DB")
        with self.store.transaction():
            self._commit()
        logger.info("Saved DB")

    def _commit(self) -> None:
        for sid_key, sid_ver in self._sid_fixed_versions.items():
            pkg_name, cve_id = sid_key.pkg_name, sid_key.vuln_id

            # Not affected in any distribution.
            if _Key(pkg_name=pkg_name, vuln_id=cve_id) in self._not_affected:
                continue

            for code in self._distributions:
                key = _Key(code_name=code, pkg_name=pkg_name, vuln_id=cve_id)
                if key in self._not_affected:
                    continue

                existing = self._advisories.get(key)
                # Advisories with a fixed version are stored below as they are;
                # "no-dsa" or "postponed" may be wrong and are checked against sid.
                if existing is not None and not existing.state:
                    continue

                code_ver = self._pkg_versions.get(_Key(code_name=code, pkg_name=pkg_name))
                if code_ver is None:
                    continue

                try:
                    fixed = has_fixed_version(sid_ver, code_ver)
                except ValueError as exc:
                    raise ValueError(
                        f"version error ({cve_id} {pkg_name} {code}): {exc}"
                    ) from exc

                adv = dataclasses.replace(existing) if existing is not None else DebianAdvisory()
                if fixed:
                    adv.fixed_version = sid_ver
                    adv.state = ""
                    self._advisories.pop(key, None)
                adv.severity = sid_key.severity
                self._put_advisory(key, adv)

        for key, advisory in self._advisories.items():
            self._put_advisory(key, advisory)

    def _put_advisory(self, key: _Key, advisory: DebianAdvisory) -> None:
        major = self._distributions.get(key.code_name)
        if major is None:
            # Stale codenames such as squeeze and sarge.
            return
        self.put(
            self.store,
            dataclasses.replace(
                advisory,
                vulnerability_id=key.vuln_id,
                pkg_name=key.pkg_name,
                platform=new_debian(major).name(),
                # The tracker description is short, so it serves as the title.
                title=self._details.get(key.vuln_id, ""),
            ),
        )

    def get(self, release: str, pkg_name: str) -> list[Advisory]:
        """Return the stored advisories of a package in a Debian release."""
        bucket_name = new_debian(release).name()
        try:
            return self.store.get_advisories(bucket_name, pkg_name)
        except StoreError as exc:
            raise StoreError(
                f"failed to get advisories (release {release}, package {pkg_name}): {exc}"
            ) from exc