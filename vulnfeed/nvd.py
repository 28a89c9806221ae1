"""Vulnerability details from the National Vulnerability Database API cache."""

from __future__ import annotations

import errno
import json
import logging
import os
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Mapping

from .store import Store
from .types import Severity, VulnerabilityDetail, new_severity

logger = logging.getLogger(__name__)

VULN_LIST_DIR = "vuln-list-nvd"
API_DIR = "api"
SOURCE_ID = "nvd"

# Source label that NVD gives to the metrics it scores itself.
NVD_SOURCE = "[email]"

_PROGRESS_EVERY = 25000

_CVSS40_PREFIX = "CVSS:4.0/"

_ANY_X = ("X",)
_CIA = ("H", "L", "N")

# Metrics of a CVSS v4.0 vector in their required order: name, allowed values, mandatory.
_CVSS40_METRICS: tuple[tuple[str, tuple[str, ...], bool], ...] = (
    ("AV", ("N", "A", "L", "P"), True),
    ("AC", ("L", "H"), True),
    ("AT", ("N", "P"), True),
    ("PR", ("N", "L", "H"), True),
    ("UI", ("N", "P", "A"), True),
    ("VC", _CIA, True),
    ("VI", _CIA, True),
    ("VA", _CIA, True),
    ("SC", _CIA, True),
    ("SI", _CIA, True),
    ("SA", _CIA, True),
    ("E", _ANY_X + ("A", "P", "U"), False),
    ("CR", _ANY_X + ("H", "M", "L"), False),
    ("IR", _ANY_X + ("H", "M", "L"), False),
    ("AR", _ANY_X + ("H", "M", "L"), False),
    ("MAV", _ANY_X + ("N", "A", "L", "P"), False),
    ("MAC", _ANY_X + ("L", "H"), False),
    ("MAT", _ANY_X + ("N", "P"), False),
    ("MPR", _ANY_X + ("N", "L", "H"), False),
    ("MUI", _ANY_X + ("N", "P", "A"), False),
    ("MVC", _ANY_X + _CIA, False),
    ("MVI", _ANY_X + _CIA, False),
    ("MVA", _ANY_X + _CIA, False),
    ("MSC", _ANY_X + _CIA, False),
    ("MSI", _ANY_X + ("S",) + _CIA, False),
    ("MSA", _ANY_X + ("S",) + _CIA, False),
    ("S", _ANY_X + ("N", "P"), False),
    ("AU", _ANY_X + ("N", "Y"), False),
    ("R", _ANY_X + ("A", "U", "I"), False),
    ("V", _ANY_X + ("D", "C"), False),
    ("RE", _ANY_X + ("L", "M", "H"), False),
    ("U", _ANY_X + ("Clear", "Green", "Amber", "Red"), False),
)

_CVSS40_POSITION = {name: index for index, (name, _, _) in enumerate(_CVSS40_METRICS)}

_TIMESTAMP_RE = re.compile(r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d{1,9}))?$")

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


def normalize_cvss40_vector(vector: str) -> str:
    """Validate a CVSS v4.0 vector and return it in canonical form.

    Metrics must appear in the specified order; optional metrics set to "X"
    are dropped from the result. Raises ValueError for an invalid vector.
    """
    if not vector.startswith(_CVSS40_PREFIX):
        raise ValueError(f"invalid CVSS v4.0 prefix: {vector!r}")
    values: dict[str, str] = {}
    last = -1
    for part in vector[len(_CVSS40_PREFIX):].split("/"):
        name, sep, value = part.partition(":")
        if not sep:
            raise ValueError(f"invalid CVSS v4.0 metric: {part!r}")
        position = _CVSS40_POSITION.get(name)
        if position is None:
            raise ValueError(f"unknown CVSS v4.0 metric: {name!r}")
        if position <= last:
            raise ValueError(f"CVSS v4.0 metric out of order or repeated: {name!r}")
        if value not in _CVSS40_METRICS[position][1]:
            raise ValueError(f"invalid value for CVSS v4.0 metric {name}: {value!r}")
        values[name] = value
        last = position
    missing = [name for name, _, mandatory in _CVSS40_METRICS if mandatory and name not in values]
    if missing:
        raise ValueError(f"missing CVSS v4.0 metrics: {', '.join(missing)}")
    return _CVSS40_PREFIX + "/".join(
        f"{name}:{values[name]}"
        for name, _, mandatory in _CVSS40_METRICS
        if name in values and (mandatory or values[name] != "X")
    )


def _obj(value: Any, what: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"{what} is not an object")
    return value


def _items(value: Any, what: str) -> list[Mapping[str, Any]]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{what} is not a list")
    return [_obj(item, what) for item in value]


def _text(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"expected a string, got {value!r}")
    return value


def _number(value: Any) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"expected a number, got {value!r}")
    return float(value)


def _severity(name: str) -> Severity:
    try:
        return new_severity(name)
    except ValueError:
        return Severity.UNKNOWN


def _parse_timestamp(text: str) -> datetime:
    """Parse an NVD timestamp as UTC; an unparseable one gives the zero time."""
    match = _TIMESTAMP_RE.match(text)
    if match is None:
        return _ZERO_TIME
    base, fraction = match.groups()
    try:
        parsed = datetime.strptime(base, "%Y-%m-%dT%H:%M:%S")
    except ValueError:
        return _ZERO_TIME
    micro = int((fraction or "")[:6].ljust(6, "0"))
    return parsed.replace(microsecond=micro, tzinfo=timezone.utc)


def _cvss_v2(metrics: Any, source: str) -> tuple[float, str, Severity]:
    for metric in _items(metrics, "cvssMetricV2"):
        if _text(metric.get("source")) != source:
            continue
        data = _obj(metric.get("cvssData"), "cvssData")
        return (
            _number(data.get("baseScore")),
            _text(data.get("vectorString")),
            _severity(_text(metric.get("baseSeverity"))),
        )
    return 0.0, "", Severity.UNKNOWN


def _cvss_v3(metrics_v31: Any, metrics_v30: Any, source: str) -> tuple[float, str, Severity]:
    for metric in [*_items(metrics_v31, "cvssMetricV31"), *_items(metrics_v30, "cvssMetricV30")]:
        if _text(metric.get("source")) != source:
            continue
        data = _obj(metric.get("cvssData"), "cvssData")
        return (
            _number(data.get("baseScore")),
            _text(data.get("vectorString")),
            _severity(_text(data.get("baseSeverity"))),
        )
    return 0.0, "", Severity.UNKNOWN


def _cvss_v40(metrics: Any, source: str) -> tuple[float, str, Severity]:
    for metric in _items(metrics, "cvssMetricV40"):
        if _text(metric.get("source")) != source:
            continue
        data = _obj(metric.get("cvssData"), "cvssData")
        score = _number(data.get("baseScore"))
        raw_vector = _text(data.get("vectorString"))
        try:
            vector = normalize_cvss40_vector(raw_vector.removesuffix("/"))
        except ValueError as exc:
            logger.warning("Failed to parse CVSSv4.0 vector (vector: %s): %s", raw_vector, exc)
            return 0.0, "", Severity.UNKNOWN
        return score, vector, _severity(_text(data.get("baseSeverity")))
    return 0.0, "", Severity.UNKNOWN


def get_cvss_v2(metrics: Any) -> tuple[float, str, Severity]:
    """Return score, vector and severity of the first NVD-scored v2 metric."""
    return _cvss_v2(metrics, NVD_SOURCE)


def get_cvss_v3(metrics_v31: Any, metrics_v30: Any) -> tuple[float, str, Severity]:
    """Return score, vector and severity of the first NVD-scored v3.1, else v3.0, metric."""
    return _cvss_v3(metrics_v31, metrics_v30, NVD_SOURCE)


def get_cvss_v40(metrics: Any) -> tuple[float, str, Severity]:
    """Return score, canonical vector and severity of the first NVD-scored v4.0 metric.

    A vector that does not parse yields no score at all.
    """
    return _cvss_v40(metrics, NVD_SOURCE)


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


def _elapsed(start: float) -> str:
    return f"{round(time.monotonic() - start)}s"


class VulnSrc:
    """Loads NVD CVE records into a store as vulnerability details."""

    def __init__(self, store: Store | None = None, metric_source: str = NVD_SOURCE) -> None:
        self.store = store if store is not None else Store()
        self.metric_source = metric_source

    def name(self) -> str:
        return SOURCE_ID

    def update(self, directory: str | os.PathLike[str]) -> None:
        """Read every CVE record under the API cache and store its details."""
        root = Path(directory, VULN_LIST_DIR, API_DIR)
        logger.info("Walking NVD cache (root_dir: %s)", root)
        start = time.monotonic()
        cves: list[Mapping[str, Any]] = []
        for path in _walk_files(root):
            try:
                raw = json.loads(path.read_text(encoding="utf-8"))
                cves.append(_obj(raw, "document"))
            except ValueError as exc:
                raise ValueError(f"{path}: json unmarshal error: {exc}") from exc
            if len(cves) % _PROGRESS_EVERY == 0:
                logger.info("Loaded CVEs (count: %d, elapsed: %s)", len(cves), _elapsed(start))
        logger.info("Finished loading CVEs (total: %d, elapsed: %s)", len(cves), _elapsed(start))

        try:
            self._save(cves)
        except ValueError as exc:
            raise ValueError(f"save error: {exc}") from exc

    def _save(self, cves: list[Mapping[str, Any]]) -> None:
        logger.info("NVD batch update (cves: %d)", len(cves))
        start = time.monotonic()
        with self.store.transaction():
            for done, cve in enumerate(cves, start=1):
                self.put(cve)
                if done % _PROGRESS_EVERY == 0:
                    logger.info(
                        "Committed CVEs (done: %d, total: %d, elapsed: %s)",
                        done,
                        len(cves),
                        _elapsed(start),
                    )
        logger.info(
            "NVD batch update complete (cves: %d, elapsed: %s)", len(cves), _elapsed(start)
        )

    def put(self, cve: Mapping[str, Any]) -> None:
        """Store the details of one CVE record, given as its decoded JSON."""
        cve = _obj(cve, "cve")
        metrics = _obj(cve.get("metrics"), "metrics")
        source = self.metric_source

        score_v2, vector_v2, severity_v2 = _cvss_v2(metrics.get("cvssMetricV2"), source)
        score_v3, vector_v3, severity_v3 = _cvss_v3(
            metrics.get("cvssMetricV31"), metrics.get("cvssMetricV30"), source
        )
        score_v40, vector_v40, severity_v40 = _cvss_v40(metrics.get("cvssMetricV40"), source)

        references = [_text(ref.get("url")) for ref in _items(cve.get("references"), "references")]

        description = next(
            (
                value
                for value in (
                    _text(d.get("value")) for d in _items(cve.get("descriptions"), "descriptions")
                )
                if value
            ),
            "",
        )

        cwe_ids: dict[str, None] = {}
        for weakness in _items(cve.get("weaknesses"), "weaknesses"):
            for desc in _items(weakness.get("description"), "description"):
                value = _text(desc.get("value"))
                if value.startswith("CWE"):
                    cwe_ids[value] = None

        detail = VulnerabilityDetail(
            cvss_score=score_v2,
            cvss_vector=vector_v2,
            cvss_score_v3=score_v3,
            cvss_vector_v3=vector_v3,
            cvss_score_v40=score_v40,
            cvss_vector_v40=vector_v40,
            severity=severity_v2,
            severity_v3=severity_v3,
            severity_v40=severity_v40,
            cwe_ids=list(cwe_ids),
            references=references,
            description=description,
            published_date=_parse_timestamp(_text(cve.get("published"))),
            last_modified_date=_parse_timestamp(_text(cve.get("lastModified"))),
            status=_text(cve.get("vulnStatus")).upper(),
        )
        self.store.put_vulnerability_detail(_text(cve.get("id")), SOURCE_ID, detail)