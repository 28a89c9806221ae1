import json

import pytest

from vulnfeed.node import (
    RawAdvisory,
    VulnSrc,
    convert_to_generic_advisory,
    parse_cvss_score,
)

BUCKET = "npm::Node.js Ecosystem Security Working Group"
DATA_SOURCE = {
    "ID": "nodejs-security-wg",
    "Name": "Node.js Ecosystem Security Working Group",
    "URL": "https://github.com/nodejs/security-wg",
}
BASSMASTER_DESCRIPTION = (
    "A vulnerability exists in bassmaster <= 1.5.1 that allows for an attacker to provide "
    "arbitrary JavaScript that is then executed server side via eval."
)
BASSMASTER_REFS = [
    "https://www.npmjs.org/package/bassmaster",
    "https://github.com/hapijs/bassmaster/commit/b751602d8cb7194ee62a61e085069679525138c4",
]


def _write(tmp_path, sub, name, document):
    root = tmp_path / "nodejs-security-wg" / "vuln" / sub
    root.mkdir(parents=True, exist_ok=True)
    path = root / name
    path.write_text(document if isinstance(document, str) else json.dumps(document))
    return path


def _bassmaster(cvss_score):
    return {
        "id": 1,
        "title": "Arbitrary JavaScript Execution",
        "module_name": "Bassmaster",
        "cves": ["CVE-2014-7205"],
        "vulnerable_versions": "<=1.5.1",
        "patched_versions": ">=1.5.2",
        "overview": BASSMASTER_DESCRIPTION,
        "references": BASSMASTER_REFS,
        "cvss_score": cvss_score,
    }


@pytest.mark.parametrize("cvss_score", [6.5, "6.5 (Medium)"])
def test_update_bassmaster(tmp_path, cvss_score):
    _write(tmp_path, "npm", "1.json", _bassmaster(cvss_score))
    _write(tmp_path, "npm", "README.md", "not an advisory")
    vs = VulnSrc()
    vs.update(tmp_path)
    store = vs.store
    assert store.get("data-source", BUCKET) == DATA_SOURCE
    assert store.get("advisory-detail", "CVE-2014-7205", BUCKET, "bassmaster") == {
        "PatchedVersions": [">=1.5.2"],
        "VulnerableVersions": ["<=1.5.1"],
    }
    assert store.get("vulnerability-detail", "CVE-2014-7205", "nodejs-security-wg") == {
        "ID": "CVE-2014-7205",
        "Title": "Arbitrary JavaScript Execution",
        "Description": BASSMASTER_DESCRIPTION,
        "References": BASSMASTER_REFS,
        "CvssScore": 6.5,
    }
    assert store.get("vulnerability-id", "CVE-2014-7205") == {}


def test_update_core_is_skipped(tmp_path):
    _write(
        tmp_path,
        "core",
        "1.json",
        {"id": 1, "title": "c-ares", "module_name": "", "cves": ["CVE-2017-1000381"]},
    )
    vs = VulnSrc()
    vs.update(tmp_path)
    assert vs.store.get("data-source", BUCKET) == DATA_SOURCE
    assert not vs.store.has("advisory-detail")
    assert not vs.store.has("vulnerability-id")


def test_update_no_cvss_and_no_severity(tmp_path):
    description = "The c-ares function ares_parse_naptr_reply() could read out of bounds.\n\n"
    _write(
        tmp_path,
        "npm",
        "0.json",
        {"id": 0, "module_name": "missingcvss-missingseverity-package", "overview": description},
    )
    vs = VulnSrc()
    vs.update(tmp_path)
    store = vs.store
    assert (
        store.get(
            "advisory-detail", "NSWG-ECO-0", BUCKET, "missingcvss-missingseverity-package"
        )
        == {}
    )
    assert store.get("vulnerability-detail", "NSWG-ECO-0", "nodejs-security-wg") == {
        "ID": "NSWG-ECO-0",
        "Description": description,
        "CvssScore": -1,
    }
    assert store.get("vulnerability-id", "NSWG-ECO-0") == {}


def test_update_null_cvss(tmp_path):
    _write(
        tmp_path,
        "npm",
        "334.json",
        {
            "id": 334,
            "title": "Downloads resources over HTTP",
            "module_name": "hubl-server",
            "cves": [],
            "vulnerable_versions": "<=99.999.99999",
            "patched_versions": "<0.0.0",
            "overview": "The hubl-server module downloads dependencies over HTTP.",
            "cvss_score": None,
        },
    )
    vs = VulnSrc()
    vs.update(tmp_path)
    store = vs.store
    assert store.get("advisory-detail", "NSWG-ECO-334", BUCKET, "hubl-server") == {
        "PatchedVersions": ["<0.0.0"],
        "VulnerableVersions": ["<=99.999.99999"],
    }
    assert store.get("vulnerability-detail", "NSWG-ECO-334", "nodejs-security-wg") == {
        "ID": "NSWG-ECO-334",
        "Title": "Downloads resources over HTTP",
        "Description": "The hubl-server module downloads dependencies over HTTP.",
        "CvssScore": -1,
    }


def test_update_sad_path(tmp_path):
    _write(tmp_path, "npm", "1.json", "{invalid")
    vs = VulnSrc()
    with pytest.raises(ValueError, match="json decode error"):
        vs.update(tmp_path)
    assert not vs.store.has("data-source", BUCKET)


def test_update_missing_directory(tmp_path):
    with pytest.raises(FileNotFoundError):
        VulnSrc().update(tmp_path)


@pytest.mark.parametrize(
    "value, expected",
    [(4.8, 4.8), (7, 7.0), ("4.8 (Medium)", 4.8), ("9.1", 9.1), (None, -1.0), (True, -1.0)],
)
def test_parse_cvss_score(value, expected):
    assert parse_cvss_score(value) == expected


def test_parse_cvss_score_bad_text():
    with pytest.raises(ValueError):
        parse_cvss_score("high")


def test_convert_to_generic_advisory():
    raw = RawAdvisory(vulnerable_versions="<=1.5.1 || >=2.0.0 <2.1.0", patched_versions="")
    advisory = convert_to_generic_advisory(raw)
    assert advisory.vulnerable_versions == ["<=1.5.1", ">=2.0.0 <2.1.0"]
    assert advisory.patched_versions == []


def test_raw_advisory_from_dict():
    raw = RawAdvisory.from_dict(_bassmaster("4.8 (Medium)"))
    assert raw.module_name == "Bassmaster"
    assert raw.cves == ["CVE-2014-7205"]
    assert raw.cvss_score == 4.8


def test_name():
    assert VulnSrc().name() == "nodejs-security-wg"