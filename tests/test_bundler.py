from pathlib import Path

import pytest

from vulnfeed.bundler import BUCKET_NAME, VulnSrc
from vulnfeed.types import DataSource, VulnerabilityDetail

DESCRIPTION = (
    "Doorkeeper::OpenidConnect (aka the OpenID Connect extension for Doorkeeper) 1.4.x and "
    "1.5.x before 1.5.4 has an open redirect via the redirect_uri field in an OAuth "
    "authorization request (that results in an error response) with the 'openid' scope and "
    "a prompt=none value. This allows phishing attacks against the authorization flow."
)
REFERENCE = (
    "https://github.com/doorkeeper-gem/doorkeeper-openid_connect/blob/master/"
    "CHANGELOG.md#v154-2019-02-15"
)

HAPPY = f"""---
gem: doorkeeper-openid_connect
cve: 2019-9837
url: {REFERENCE}
title: Doorkeeper::OpenidConnect Open Redirect
description: "{DESCRIPTION}"
cvss_v3: 6.1
unaffected_versions:
  - "< 1.4.0"
patched_versions:
  - ">= 1.5.4"
"""


def _write(root: Path, relative: str, content: str) -> None:
    path = root / "ruby-advisory-db" / "gems" / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def test_happy_path(tmp_path):
    _write(tmp_path, "doorkeeper-openid_connect/CVE-2019-9837.yml", HAPPY)
    vs = VulnSrc()
    vs.update(tmp_path)
    store = vs.store

    assert BUCKET_NAME == "rubygems::Ruby Advisory Database"
    assert DataSource.from_dict(store.get("data-source", BUCKET_NAME)) == DataSource(
        id="ruby-advisory-db",
        name="Ruby Advisory Database",
        url="https://github.com/rubysec/ruby-advisory-db",
    )
    assert store.get("advisory-detail", "CVE-2019-9837", BUCKET_NAME, "doorkeeper-openid_connect") == {
        "PatchedVersions": [">= 1.5.4"],
        "UnaffectedVersions": ["< 1.4.0"],
    }
    detail = VulnerabilityDetail.from_dict(
        store.get("vulnerability-detail", "CVE-2019-9837", "ruby-advisory-db")
    )
    assert detail == VulnerabilityDetail(
        cvss_score_v3=6.1,
        references=[REFERENCE],
        title="Doorkeeper::OpenidConnect Open Redirect",
        description=DESCRIPTION,
    )
    assert store.get("vulnerability-id", "CVE-2019-9837") == {}


def test_sad_path_rolls_back(tmp_path):
    _write(tmp_path, "broken/CVE-2019-0001.yml", "gem: [unclosed\n")
    vs = VulnSrc()
    with pytest.raises(ValueError, match="yaml unmarshal error"):
        vs.update(tmp_path)
    assert vs.store.has("data-source") is False


def test_missing_directory(tmp_path):
    with pytest.raises(FileNotFoundError):
        VulnSrc().update(tmp_path / "nowhere")


def test_name():
    assert VulnSrc().name() == "ruby-advisory-db"


def test_osvdb_files_are_skipped(tmp_path):
    _write(tmp_path, "rack/OSVDB-1234.yml", "gem: [unclosed\n")
    vs = VulnSrc()
    vs.update(tmp_path)
    assert vs.store.has("advisory-detail") is False


def test_ghsa_fallback_and_osvdb_url_blanked(tmp_path):
    content = """gem: rack
ghsa: abcd-efgh-ijkl
url: http://osvdb.org/show/osvdb/1
related:
  url:
    - https://example.com/advisory
"""
    _write(tmp_path, "rack/GHSA-abcd-efgh-ijkl.yml", content)
    vs = VulnSrc()
    vs.update(tmp_path)
    detail = vs.store.get("vulnerability-detail", "GHSA-abcd-efgh-ijkl", "ruby-advisory-db")
    assert detail == {"References": ["", "https://example.com/advisory"]}
    assert vs.store.has("advisory-detail", "GHSA-abcd-efgh-ijkl", BUCKET_NAME, "rack")


def test_advisory_without_identifier_is_ignored(tmp_path):
    _write(tmp_path, "rack/OTHER.yml", "gem: rack\ntitle: nothing\n")
    vs = VulnSrc()
    vs.update(tmp_path)
    assert vs.store.has("vulnerability-id") is False
    assert vs.store.has("data-source", BUCKET_NAME) is True