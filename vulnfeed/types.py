"""Value types shared by the vulnerability feeds: severities, statuses, advisories and details."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

SourceID = str


class Severity(enum.IntEnum):
    """Severity of a vulnerability, stored as an integer."""

    UNKNOWN = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4


def new_severity(name: str) -> Severity:
    """Return the severity with the given upper-case name."""
    try:
        return Severity[name]
    except (KeyError, TypeError):
        raise ValueError(f"unknown severity: {name!r}") from None


class Status(enum.IntEnum):
    """Fix status of an advisory, filled only when there is no fixed version."""

    UNKNOWN = 0
    NOT_AFFECTED = 1
    AFFECTED = 2
    FIXED = 3
    UNDER_INVESTIGATION = 4
    WILL_NOT_FIX = 5
    FIX_DEFERRED = 6
    END_OF_LIFE = 7

    @property
    def label(self) -> str:
        return self.name.lower()


_TIME_RE = re.compile(r"^(.*T\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})?$")


def _format_time(value: datetime) -> str:
    return value.isoformat()


def _parse_time(text: str) -> datetime:
    match = _TIME_RE.match(text)
    if match is None:
        raise ValueError(f"invalid time: {text!r}")
    base, fraction, zone = match.groups()
    fraction = (fraction or "")[:6].ljust(6, "0")
    if zone == "Z":
        zone = "+00:00"
    return datetime.fromisoformat(f"{base}.{fraction}{zone or ''}")


def _compact(items: Mapping[str, Any]) -> dict[str, Any]:
    """Drop empty values, the way the stored JSON omits them."""
    return {key: value for key, value in items.items() if value}


@dataclass(frozen=True)
class DataSource:
    """Where a set of advisories comes from."""

    id: SourceID = ""
    name: str = ""
    url: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"ID": self.id, "Name": self.name, "URL": self.url}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DataSource:
        return cls(id=data.get("ID", ""), name=data.get("Name", ""), url=data.get("URL", ""))


@dataclass
class Advisory:
    """How one package is affected by one vulnerability."""

    vulnerability_id: str = ""
    vendor_ids: list[str] = field(default_factory=list)
    oses: list[str] = field(default_factory=list)
    arches: list[str] = field(default_factory=list)
    status: Status = Status.UNKNOWN
    severity: Severity = Severity.UNKNOWN
    fixed_version: str = ""
    affected_version: str = ""
    vulnerable_versions: list[str] = field(default_factory=list)
    patched_versions: list[str] = field(default_factory=list)
    unaffected_versions: list[str] = field(default_factory=list)
    data_source: DataSource | None = None
    custom: Any = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "VulnerabilityID": self.vulnerability_id,
                "VendorIDs": list(self.vendor_ids),
                "OSes": list(self.oses),
                "Arches": list(self.arches),
                "Status": int(self.status),
                "Severity": int(self.severity),
                "FixedVersion": self.fixed_version,
                "AffectedVersion": self.affected_version,
                "VulnerableVersions": list(self.vulnerable_versions),
                "PatchedVersions": list(self.patched_versions),
                "UnaffectedVersions": list(self.unaffected_versions),
                "DataSource": self.data_source.to_dict() if self.data_source else None,
                "Custom": self.custom,
            }
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Advisory:
        source = data.get("DataSource")
        return cls(
            vulnerability_id=data.get("VulnerabilityID", ""),
            vendor_ids=list(data.get("VendorIDs") or []),
            oses=list(data.get("OSes") or []),
            arches=list(data.get("Arches") or []),
            status=Status(data.get("Status", 0)),
            severity=Severity(data.get("Severity", 0)),
            fixed_version=data.get("FixedVersion", ""),
            affected_version=data.get("AffectedVersion", ""),
            vulnerable_versions=list(data.get("VulnerableVersions") or []),
            patched_versions=list(data.get("PatchedVersions") or []),
            unaffected_versions=list(data.get("UnaffectedVersions") or []),
            data_source=DataSource.from_dict(source) if source else None,
            custom=data.get("Custom"),
        )


@dataclass
class Advisories:
    """Several advisory entries for one package, with a primary fixed version."""

    fixed_version: str = ""
    entries: list[Advisory] = field(default_factory=list)
    custom: Any = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "FixedVersion": self.fixed_version,
                "Entries": [entry.to_dict() for entry in self.entries],
                "Custom": self.custom,
            }
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Advisories:
        return cls(
            fixed_version=data.get("FixedVersion", ""),
            entries=[Advisory.from_dict(entry) for entry in data.get("Entries") or []],
            custom=data.get("Custom"),
        )


@dataclass
class VulnerabilityDetail:
    """Descriptive details of a vulnerability as reported by one source."""

    id: str = ""
    cvss_score: float = 0.0
    cvss_vector: str = ""
    cvss_score_v3: float = 0.0
    cvss_vector_v3: str = ""
    cvss_score_v40: float = 0.0
    cvss_vector_v40: str = ""
    severity: Severity = Severity.UNKNOWN
    severity_v3: Severity = Severity.UNKNOWN
    severity_v40: Severity = Severity.UNKNOWN
    cwe_ids: list[str] = field(default_factory=list)
    references: list[str] = field(default_factory=list)
    title: str = ""
    description: str = ""
    published_date: datetime | None = None
    last_modified_date: datetime | None = None
    status: str = ""

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "ID": self.id,
                "CvssScore": self.cvss_score,
                "CvssVector": self.cvss_vector,
                "CvssScoreV3": self.cvss_score_v3,
                "CvssVectorV3": self.cvss_vector_v3,
                "CvssScoreV40": self.cvss_score_v40,
                "CvssVectorV40": self.cvss_vector_v40,
                "Severity": int(self.severity),
                "SeverityV3": int(self.severity_v3),
                "SeverityV40": int(self.severity_v40),
                "CweIDs": list(self.cwe_ids),
                "References": list(self.references),
                "Title": self.title,
                "Description": self.description,
                "PublishedDate": _format_time(self.published_date) if self.published_date else None,
                "LastModifiedDate": (
                    _format_time(self.last_modified_date) if self.last_modified_date else None
                ),
                "Status": self.status,
            }
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> VulnerabilityDetail:
        published = data.get("PublishedDate")
        modified = data.get("LastModifiedDate")
        return cls(
            id=data.get("ID", ""),
            cvss_score=data.get("CvssScore", 0.0),
            cvss_vector=data.get("CvssVector", ""),
            cvss_score_v3=data.get("CvssScoreV3", 0.0),
            cvss_vector_v3=data.get("CvssVectorV3", ""),
            cvss_score_v40=data.get("CvssScoreV40", 0.0),
            cvss_vector_v40=data.get("CvssVectorV40", ""),
            severity=Severity(data.get("Severity", 0)),
            severity_v3=Severity(data.get("SeverityV3", 0)),
            severity_v40=Severity(data.get("SeverityV40", 0)),
            cwe_ids=list(data.get("CweIDs") or []),
            references=list(data.get("References") or []),
            title=data.get("Title", ""),
            description=data.get("Description", ""),
            published_date=_parse_time(published) if published else None,
            last_modified_date=_parse_time(modified) if modified else None,
            status=data.get("Status", ""),
        )