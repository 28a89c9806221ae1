"""Oracle Linux package advisories from the Oracle Linux OVAL definitions."""

from __future__ import annotations

import dataclasses
import enum
import errno
import json
import logging
import os
import string
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, NamedTuple

from .bucket import new_oracle
from .store import Store, StoreError
from .types import Advisories, Advisory, DataSource, Severity, VulnerabilityDetail

logger = logging.getLogger(__name__)

TARGET_PLATFORMS = (
    "Oracle Linux 5",
    "Oracle Linux 6",
    "Oracle Linux 7",
    "Oracle Linux 8",
    "Oracle Linux 9",
)

ORACLE_DIR = Path("oval", "oracle")

SOURCE = DataSource(
    id="oracle-oval",
    name="Oracle Linux OVAL definitions",
    url="https://linux.oracle.com/security/oval/",
)

_DIGITS = frozenset(string.digits)

_OS_PREFIX = "Oracle Linux "
_OS_SUFFIX = " is installed"
_ARCH_PREFIX = "Oracle Linux arch is "
_EARLIER_THAN = " is earlier than "


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def _is_alnum(char: str) -> bool:
    return char.isascii() and char.isalnum()


def _is_alpha(char: str) -> bool:
    return char.isascii() and char.isalpha()


def _span(text: str, start: int, digits: bool) -> tuple[str, int]:
    end = start
    while end < len(text) and (text[end] in _DIGITS if digits else _is_alpha(text[end])):
        end += 1
    return text[start:end], end


def _rpmvercmp(a: str, b: str) -> int:
    """Compare two version or release strings the way rpm does."""
    if a == b:
        return 0
    i = j = 0
    while i < len(a) or j < len(b):
        while i < len(a) and not _is_alnum(a[i]) and a[i] != "~" and a[i] != "^":
            i += 1
        while j < len(b) and not _is_alnum(b[j]) and b[j] != "~" and b[j] != "^":
            j += 1
        ca = a[i] if i < len(a) else ""
        cb = b[j] if j < len(b) else ""

        # A tilde sorts before everything, even the end of the string.
        if ca == "~" or cb == "~":
            if ca != "~":
                return 1
            if cb != "~":
                return -1
            i += 1
            j += 1
            continue
        # A caret sorts after the end of the string but before anything else.
        if ca == "^" or cb == "^":
            if not ca:
                return -1
            if not cb:
                return 1
            if ca != "^":
                return 1
            if cb != "^":
                return -1
            i += 1
            j += 1
            continue

        if not (ca and cb):
            break

        numeric = ca in _DIGITS
        seg_a, i = _span(a, i, numeric)
        seg_b, j = _span(b, j, numeric)
        if not seg_b:
            return 1 if numeric else -1
        if numeric:
            seg_a = seg_a.lstrip("0")
            seg_b = seg_b.lstrip("0")
            if len(seg_a) != len(seg_b):
                return _sign(len(seg_a) - len(seg_b))
        if seg_a != seg_b:
            return -1 if seg_a < seg_b else 1

    if i >= len(a) and j >= len(b):
        return 0
    return -1 if i >= len(a) else 1


@dataclass(frozen=True, eq=False)
class RpmVersion:
    """An RPM package version: epoch, version and release."""

    epoch: int = 0
    version: str = ""
    release: str = ""

    __hash__ = None  # type: ignore[assignment]

    @classmethod
    def parse(cls, text: str) -> RpmVersion:
        """Split "epoch:version-release"; an unreadable epoch counts as zero."""
        epoch = 0
        epoch_text, sep, rest = text.partition(":")
        if sep:
            try:
                epoch = int(epoch_text)
            except ValueError:
                epoch = 0
            text = rest
        version, dash, release = text.rpartition("-")
        if not dash:
            version, release = text, ""
        return cls(epoch, version, release)

    def compare(self, other: RpmVersion) -> int:
        """Return -1, 0 or 1 as this version is older, equal or newer."""
        if self.epoch != other.epoch:
            return _sign(self.epoch - other.epoch)
        return _rpmvercmp(self.version, other.version) or _rpmvercmp(
            self.release, other.release
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RpmVersion):
            return NotImplemented
        return self.compare(other) == 0

    def __lt__(self, other: RpmVersion) -> bool:
        return self.compare(other) < 0

    def __le__(self, other: RpmVersion) -> bool:
        return self.compare(other) <= 0

    def __gt__(self, other: RpmVersion) -> bool:
        return self.compare(other) > 0

    def __ge__(self, other: RpmVersion) -> bool:
        return self.compare(other) >= 0

    def __str__(self) -> str:
        text = f"{self.epoch}:{self.version}" if self.epoch > 0 else self.version
        return f"{text}-{self.release}" if self.release else text


class PkgFlavor(str, enum.Enum):
    """Kind of build a fixed version belongs to."""

    NORMAL = "normal"
    FIPS = "fips"
    KSPLICE = "ksplice"


def package_flavor(version: str) -> PkgFlavor:
    """Tell a normal, FIPS validated or ksplice userspace build from its version."""
    version = version.lower()
    if version.endswith("_fips"):
        return PkgFlavor.FIPS
    if any(part.startswith("ksplice") for part in version.split(".")):
        return PkgFlavor.KSPLICE
    return PkgFlavor.NORMAL


@dataclass(frozen=True)
class Package:
    """A package name within one Oracle Linux major version."""

    name: str = ""
    os_ver: str = ""

    def platform_name(self) -> str:
        return new_oracle(self.os_ver).name()


@dataclass(frozen=True)
class AffectedPackage:
    """A package found in OVAL criteria, with its arch and fixed version."""

    package: Package
    arch: str = ""
    fixed_version: str = ""


@dataclass
class PutInput:
    """Everything stored for one vulnerability ID (a CVE or an ELSA ID)."""

    vuln_id: str
    vuln: VulnerabilityDetail
    advisories: dict[Package, Advisories] = field(default_factory=dict)
    ovals: list[Mapping[str, Any]] = field(default_factory=list)


def _lookup(raw: Mapping[str, Any], *keys: str) -> Any:
    """Find the first of several keys exactly, or else ignoring case and underscores."""
    for key in keys:
        if key in raw:
            return raw[key]
    wanted = {key.replace("_", "").casefold() for key in keys}
    for name, value in raw.items():
        if isinstance(name, str) and name.replace("_", "").casefold() in wanted:
            return value
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"expected a string, got {value!r}")
    return value


def _mapping(value: Any, what: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"{what} is not an object")
    return value


def _mappings(value: Any, what: str) -> list[Mapping[str, Any]]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{what} is not a list")
    return [_mapping(item, what) for item in value]


def walk_oracle(
    criteria: Mapping[str, Any], os_ver: str = "", arch: str = ""
) -> list[AffectedPackage]:
    """Collect the affected packages of an OVAL criteria tree.

    The OS version and arch named by a criterion hold for the criteria that
    follow it and for all nested criteria.
    """
    packages: list[AffectedPackage] = []
    criteria = _mapping(criteria, "Criteria")
    for criterion in _mappings(_lookup(criteria, "Criterions"), "Criterions"):
        comment = _text(_lookup(criterion, "Comment"))
        if comment.startswith(_OS_PREFIX) and comment.endswith(_OS_SUFFIX):
            os_ver = comment.removeprefix(_OS_PREFIX).removesuffix(_OS_SUFFIX)
        if comment.startswith(_ARCH_PREFIX):
            arch = comment.removeprefix(_ARCH_PREFIX)
        parts = comment.split(_EARLIER_THAN)
        if len(parts) != 2:
            continue
        packages.append(
            AffectedPackage(
                package=Package(name=parts[0], os_ver=os_ver),
                arch=arch,
                fixed_version=str(RpmVersion.parse(parts[1])),
            )
        )
    for child in _mappings(_lookup(criteria, "Criterias"), "Criterias"):
        packages.extend(walk_oracle(child, os_ver, arch))
    return packages


def references_from_contains(sources: Iterable[str], matches: Iterable[str]) -> list[str]:
    """Return the sorted, distinct sources that contain any of the matches."""
    matches = list(matches)
    return sorted({s for s in sources if any(m in s for m in matches)})


def severity_from_threat(severity: str) -> Severity:
    """Map an OVAL threat level to a severity."""
    return {
        "LOW": Severity.LOW,
        "MODERATE": Severity.MEDIUM,
        "IMPORTANT": Severity.HIGH,
        "CRITICAL": Severity.CRITICAL,
    }.get(severity, Severity.UNKNOWN)


class _ArchFlavor(NamedTuple):
    arch: str
    flavor: PkgFlavor


class _VersionVendor(NamedTuple):
    version: str
    vendor_id: str


def _select_latest_versions(advisories: Advisories) -> dict[_ArchFlavor, _VersionVendor]:
    """Pick the highest fixed version per (arch, flavor)."""
    latest: dict[_ArchFlavor, _VersionVendor] = {}
    for entry in advisories.entries or []:
        if not entry.arches or not entry.fixed_version:
            continue
        # Before merging, every entry holds exactly one arch and one vendor ID.
        key = _ArchFlavor(entry.arches[0], package_flavor(entry.fixed_version))
        vendor_id = entry.vendor_ids[0] if entry.vendor_ids else ""
        existing = latest.get(key)
        if existing is None or RpmVersion.parse(entry.fixed_version) > RpmVersion.parse(
            existing.version
        ):
            latest[key] = _VersionVendor(entry.fixed_version, vendor_id)
    return latest


def _primary_fixed_version(latest: Mapping[_ArchFlavor, _VersionVendor]) -> str:
    """The normal x86_64 fix if there is one, else the lexically greatest version."""
    primary = latest.get(_ArchFlavor("x86_64", PkgFlavor.NORMAL))
    if primary is not None and primary.version:
        return primary.version
    return max((v.version for v in latest.values()), default="")


def merge_advisories_entries(advisories: Advisories) -> Advisories:
    """Keep the latest fix per arch and flavor, grouping arches that share it.

    The top-level fixed version is kept for older readers of the database.
    """
    latest = _select_latest_versions(advisories)
    grouped: dict[_VersionVendor, list[str]] = {}
    for key, chosen in latest.items():
        grouped.setdefault(chosen, []).append(key.arch)
    entries = [
        Advisory(fixed_version=chosen.version, arches=sorted(arches), vendor_ids=[chosen.vendor_id])
        for chosen, arches in sorted(grouped.items(), key=lambda item: item[0])
    ]
    entries.sort(key=lambda entry: entry.fixed_version)
    return Advisories(fixed_version=_primary_fixed_version(latest), entries=entries)


def remove_vendor_ids(advisories: Advisories) -> Advisories:
    """Drop vendor IDs and merge the arches of entries with the same fixed version."""
    grouped: dict[str, list[str]] = {}
    for entry in advisories.entries or []:
        grouped.setdefault(entry.fixed_version, []).extend(entry.arches or [])
    entries = [
        Advisory(fixed_version=version, arches=sorted(arches))
        for version, arches in sorted(grouped.items(), key=lambda item: item[0])
    ]
    return dataclasses.replace(advisories, entries=entries)


@dataclass
class _Oval:
    title: str
    description: str
    references: list[str]
    criteria: Mapping[str, Any]
    severity: str
    cve_ids: list[str]
    raw: Mapping[str, Any]


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


def _read(path: Path) -> _Oval:
    try:
        with path.open(encoding="utf-8") as handle:
            raw = _mapping(json.load(handle), "document")
        return _Oval(
            title=_text(_lookup(raw, "Title")),
            description=_text(_lookup(raw, "Description")),
            references=[
                _text(_lookup(ref, "URI"))
                for ref in _mappings(_lookup(raw, "References"), "References")
            ],
            criteria=_mapping(_lookup(raw, "Criteria"), "Criteria"),
            severity=_text(_lookup(raw, "Severity")),
            cve_ids=[_text(_lookup(cve, "ID")) for cve in _mappings(_lookup(raw, "Cves"), "Cves")],
            raw=raw,
        )
    except ValueError as exc:
        raise ValueError(f"{path}: json decode error: {exc}") from exc


def _data_source(value: Any) -> DataSource | None:
    if isinstance(value, DataSource):
        return value
    if isinstance(value, Mapping):
        return DataSource(
            id=_text(_lookup(value, "ID", "id")),
            name=_text(_lookup(value, "Name", "name")),
            url=_text(_lookup(value, "URL", "url")),
        )
    return None


def _unpack(value: Any) -> tuple[Any, Any]:
    """Split a stored value into its data source and its content."""
    if hasattr(value, "content"):
        return getattr(value, "source", None), value.content
    if isinstance(value, Mapping) and "content" in value:
        return value.get("source"), value["content"]
    if isinstance(value, tuple) and len(value) == 2:
        return value[0], value[1]
    return None, value


def _entry(value: Any) -> Advisory:
    if isinstance(value, Advisory):
        return value
    raw = _mapping(value, "entry")
    return Advisory(
        fixed_version=_text(_lookup(raw, "fixed_version", "FixedVersion")),
        arches=[_text(a) for a in _lookup(raw, "arches", "Arches") or []],
        vendor_ids=[_text(v) for v in _lookup(raw, "vendor_ids", "VendorIDs") or []],
    )


def _advisories(content: Any) -> Advisories:
    if isinstance(content, Advisories):
        return content
    if isinstance(content, Advisory):
        return Advisories(fixed_version=content.fixed_version, entries=[])
    if isinstance(content, (bytes, str)):
        content = json.loads(content)
    raw = _mapping(content, "advisories")
    entries = _lookup(raw, "entries", "Entries") or []
    if not isinstance(entries, list):
        raise ValueError("entries is not a list")
    return Advisories(
        fixed_version=_text(_lookup(raw, "fixed_version", "FixedVersion")),
        entries=[_entry(e) for e in entries],
    )


class VulnSrc:
    """Loads Oracle Linux OVAL definitions into a store.

    Subclasses may override ``put`` and ``get`` to store more, or differently.
    """

    def __init__(self, store: Store | None = None) -> None:
        self.store = store if store is not None else Store()

    def name(self) -> str:
        return SOURCE.id

    def update(self, directory: str | os.PathLike[str]) -> None:
        """Read every OVAL definition and store the advisories."""
        root = Path(directory, "vuln-list", ORACLE_DIR)
        ovals = [_read(path) for path in _walk_files(root)]
        logger.info("Saving Oracle Linux OVAL")
        try:
            with self.store.transaction():
                self._commit(ovals)
        except ValueError as exc:
            raise ValueError(f"put error: {exc}") from exc

    def _commit(self, ovals: list[_Oval]) -> None:
        put_inputs: dict[str, PutInput] = {}
        for oval in ovals:
            elsa_id = oval.title.split(":")[0]
            vuln_ids = oval.cve_ids or [elsa_id]

            collected: dict[Package, list[Advisory]] = {}
            for affected in walk_oracle(oval.criteria):
                # Some definitions lack an arch; such entries are not usable.
                if not affected.package.name or not affected.arch:
                    continue
                platform = affected.package.platform_name()
                if platform not in TARGET_PLATFORMS:
                    continue
                self.store.put_data_source(platform, SOURCE)
                entry = Advisory(
                    fixed_version=affected.fixed_version,
                    arches=[affected.arch],
                    vendor_ids=[elsa_id],
                )
                collected[affected.package] = [entry, *collected.get(affected.package, [])]

            for vuln_id in vuln_ids:
                vuln = VulnerabilityDetail(
                    description=oval.description,
                    references=references_from_contains(oval.references, [elsa_id, vuln_id]),
                    title=oval.title,
                    severity=severity_from_threat(oval.severity),
                )
                advisories = {pkg: list(entries) for pkg, entries in collected.items()}
                ovals_seen = [oval.raw]
                saved = put_inputs.get(vuln_id)
                if saved is not None:
                    ovals_seen.extend(saved.ovals)
                    merged = {pkg: list(advs.entries) for pkg, advs in saved.advisories.items()}
                    for pkg, entries in advisories.items():
                        merged[pkg] = [*merged.get(pkg, []), *entries]
                    advisories = merged
                put_inputs[vuln_id] = PutInput(
                    vuln_id=vuln_id,
                    vuln=vuln,
                    advisories={pkg: Advisories(entries=e) for pkg, e in advisories.items()},
                    ovals=ovals_seen,
                )

        for put_input in put_inputs.values():
            put_input.advisories = {
                pkg: merge_advisories_entries(advs) for pkg, advs in put_input.advisories.items()
            }
            self.put(put_input)

    def put(self, put_input: PutInput) -> None:
        """Store the detail, the ID and the per-package advisories of one vulnerability."""
        self.store.put_vulnerability_detail(put_input.vuln_id, SOURCE.id, put_input.vuln)
        self.store.put_vulnerability_id(put_input.vuln_id)
        for pkg, advisories in put_input.advisories.items():
            self.store.put_advisory_detail(
                put_input.vuln_id, pkg.name, [pkg.platform_name()], remove_vendor_ids(advisories)
            )

    def get(self, release: str, pkg_name: str, arch: str) -> list[Advisory]:
        """Return the advisories of a package that apply to an arch in a release."""
        bucket_name = new_oracle(release).name()
        try:
            stored = self.store.for_each_advisory([bucket_name], pkg_name)
        except StoreError as exc:
            raise StoreError(
                f"unable to iterate advisories (release {release}, package {pkg_name}): {exc}"
            ) from exc

        pairs = stored.items() if isinstance(stored, Mapping) else stored
        result: list[Advisory] = []
        for vuln_id, value in pairs:
            raw_source, content = _unpack(value)
            try:
                advs = _advisories(content)
            except ValueError as exc:
                raise ValueError(f"json unmarshal error: {exc}") from exc
            extra: dict[str, Any] = {}
            source = _data_source(raw_source)
            if source is not None:
                extra["data_source"] = source

            # Entries are missing in databases written by older releases.
            if not advs.entries:
                custom = getattr(advs, "custom", None)
                if custom is not None:
                    extra["custom"] = custom
                result.append(
                    Advisory(vulnerability_id=vuln_id, fixed_version=advs.fixed_version, **extra)
                )
                continue

            for entry in advs.entries:
                if arch not in (entry.arches or []):
                    continue
                result.append(dataclasses.replace(entry, vulnerability_id=vuln_id, **extra))
        return result