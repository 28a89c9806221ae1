from pathlib import Path

import pytest

from vulnfeed.composer import BUCKET_NAME, VulnSrc
from vulnfeed.types import DataSource, VulnerabilityDetail

HAPPY = """title: Security Misconfiguration Vulnerability in the AWS SDK for PHP
link: https://github.com/aws/aws-sdk-php/releases/tag/3.2.1
cve: CVE-2015-5723
branches:
    3.x:
        time: 2015-08-31 19:37:00
        versions: ['>=3.0.0', '<3.2.1']
reference: composer://aws/aws-sdk-php
"""


def _write(root: Path, relative: str, content: str) -> None:
    path = root / "php-security-advisories" / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def test_happy_path(tmp_path):
    _write(tmp_path, "aws/aws-sdk-php/CVE-2015-5723.yaml", HAPPY)
    vs = VulnSrc()
    vs.update(tmp_path)
    store = vs.store

    assert BUCKET_NAME == "composer::PHP Security Advisories Database"
    assert DataSource.from_dict(store.get("data-source", BUCKET_NAME)) == DataSource(
        id="php-security-advisories",
        name="PHP Security Advisories Database",
        url="https://github.com/FriendsOfPHP/security-advisories",
    )
    assert store.get("advisory-detail", "CVE-2015-5723", BUCKET_NAME, "aws/aws-sdk-php") == {
        "VulnerableVersions": [">=3.0.0, <3.2.1"]
    }
    detail = VulnerabilityDetail.from_dict(
        store.get("vulnerability-detail", "CVE-2015-5723", "php-security-advisories")
    )
    assert detail == VulnerabilityDetail(
        id="CVE-2015-5723",
        title="Security Misconfiguration Vulnerability in the AWS SDK for PHP",
        references=["https://github.com/aws/aws-sdk-php/releases/tag/3.2.1"],
    )
    assert store.get("vulnerability-id", "CVE-2015-5723") == {}


def test_missing_directory(tmp_path):
    with pytest.raises(FileNotFoundError, match="No such file or directory"):
        VulnSrc().update(tmp_path / "badPath")


def test_sad_path(tmp_path):
    _write(tmp_path, "vendor/pkg/CVE-2020-0001.yaml", "title: [unclosed\n")
    vs = VulnSrc()
    with pytest.raises(ValueError, match="yaml unmarshal error"):
        vs.update(tmp_path)
    assert vs.store.has("data-source") is False


def test_name():
    assert VulnSrc().name() == "php-security-advisories"


def test_id_from_file_name_and_multiple_branches(tmp_path):
    content = """title: Something
link: https://example.com/advisory
branches:
    1.x:
        versions: ['>=1.0.0', '<1.2.0']
    2.x:
        versions: ['>=2.0.0', '<2.0.5']
reference: composer://Vendor/Package
"""
    _write(tmp_path, "vendor/package/CVE-2019-12139.yaml", content)
    vs = VulnSrc()
    vs.update(tmp_path)
    assert vs.store.get("advisory-detail", "CVE-2019-12139", BUCKET_NAME, "vendor/package") == {
        "VulnerableVersions": [">=1.0.0, <1.2.0", ">=2.0.0, <2.0.5"]
    }


def test_files_not_named_after_cve_are_skipped(tmp_path):
    _write(tmp_path, "vendor/package/2020-01-01.yaml", "title: [unclosed\n")
    vs = VulnSrc()
    vs.update(tmp_path)
    assert vs.store.has("advisory-detail") is False
    assert vs.store.has("data-source", BUCKET_NAME) is True