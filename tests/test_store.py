import pytest

from vulnfeed.store import Store, StoreError
from vulnfeed.types import Advisories, Advisory, DataSource, Severity, VulnerabilityDetail

SOURCE = DataSource(id="chainguard", name="Chainguard Security Data", url="https://example.com/s.json")


def test_put_and_get_data_source():
    store = Store()
    store.put_data_source("chainguard", SOURCE)
    assert DataSource.from_dict(store.get("data-source", "chainguard")) == SOURCE


def test_put_advisory_detail_nests_buckets():
    store = Store()
    store.put_advisory_detail("CVE-2022-38126", "binutils", ["chainguard"], Advisory(fixed_version="2.39-r1"))
    assert store.get("advisory-detail", "CVE-2022-38126", "chainguard", "binutils") == {
        "FixedVersion": "2.39-r1"
    }
    assert store.has("advisory-detail", "CVE-2022-38126", "chainguard")


def test_put_advisories_value():
    store = Store()
    advisories = Advisories(fixed_version="1.0", entries=[Advisory(fixed_version="1.0", arches=["x86_64"])])
    store.put_advisory_detail("CVE-1", "pkg", ["Oracle Linux 8"], advisories)
    assert Advisories.from_dict(store.get("advisory-detail", "CVE-1", "Oracle Linux 8", "pkg")) == advisories


def test_vulnerability_id_is_empty_object():
    store = Store()
    store.put_vulnerability_id("CVE-2019-9837")
    assert store.get("vulnerability-id", "CVE-2019-9837") == {}


def test_vulnerability_detail_round_trip():
    store = Store()
    detail = VulnerabilityDetail(title="Title", cvss_score_v3=6.1, references=["https://example.com"])
    store.put_vulnerability_detail("CVE-1", "rubysec", detail)
    assert VulnerabilityDetail.from_dict(store.get("vulnerability-detail", "CVE-1", "rubysec")) == detail


def test_get_missing_raises_key_error():
    with pytest.raises(KeyError):
        Store().get("vulnerability-id", "CVE-0")


def test_has_reports_missing():
    store = Store()
    store.put_vulnerability_id("CVE-1")
    assert store.has("vulnerability-id", "CVE-1") is True
    assert store.has("vulnerability-id", "CVE-2") is False


def test_get_bucket_raises():
    store = Store()
    store.put_vulnerability_id("CVE-1")
    with pytest.raises(StoreError):
        store.get("vulnerability-id")


def test_put_below_value_raises():
    store = Store()
    store.put_vulnerability_id("CVE-1")
    with pytest.raises(StoreError):
        store.put_advisory_detail("x", "pkg", [], Advisory())
        store._put(["vulnerability-id", "CVE-1", "below"], {})


def test_transaction_rolls_back_on_error():
    store = Store()
    store.put_vulnerability_id("CVE-1")
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.put_vulnerability_id("CVE-2")
            raise RuntimeError("boom")
    assert store.has("vulnerability-id", "CVE-1")
    assert not store.has("vulnerability-id", "CVE-2")


def test_transaction_keeps_writes_on_success():
    store = Store()
    with store.transaction() as tx:
        tx.put_vulnerability_id("CVE-3")
    assert store.get("vulnerability-id", "CVE-3") == {}


def test_get_advisories_fills_id_and_source():
    store = Store()
    store.put_data_source("chainguard", SOURCE)
    store.put_advisory_detail("CVE-B", "binutils", ["chainguard"], Advisory(fixed_version="2"))
    store.put_advisory_detail("CVE-A", "binutils", ["chainguard"], Advisory(severity=Severity.HIGH))
    store.put_advisory_detail("CVE-C", "other", ["chainguard"], Advisory(fixed_version="9"))
    got = store.get_advisories("chainguard", "binutils")
    assert got == [
        Advisory(vulnerability_id="CVE-A", severity=Severity.HIGH, data_source=SOURCE),
        Advisory(vulnerability_id="CVE-B", fixed_version="2", data_source=SOURCE),
    ]


def test_get_advisories_without_source():
    store = Store()
    store.put_advisory_detail("CVE-A", "pkg", ["bkt"], Advisory(fixed_version="1"))
    assert store.get_advisories("bkt", "pkg") == [Advisory(vulnerability_id="CVE-A", fixed_version="1")]


def test_for_each_advisory_returns_raw_content():
    store = Store()
    store.put_data_source("bkt", SOURCE)
    store.put_advisory_detail("CVE-A", "pkg", ["bkt"], Advisory(fixed_version="1"))
    assert store.for_each_advisory(["bkt"], "pkg") == {"CVE-A": ({"FixedVersion": "1"}, SOURCE)}


def test_loaded_fixture_is_readable():
    store = Store({"advisory-detail": {"CVE-A": {"debian 10": {"alpine": '{"FixedVersion": "2.02-3.1"}'}}}})
    assert store.get_advisories("debian 10", "alpine") == [
        Advisory(vulnerability_id="CVE-A", fixed_version="2.02-3.1")
    ]


def test_broken_advisory_raises_store_error():
    store = Store({"advisory-detail": {"CVE-A": {"debian 10": {"alpine": "{broken"}}}})
    with pytest.raises(StoreError):
        store.get_advisories("debian 10", "alpine")


def test_malformed_advisory_raises_store_error():
    store = Store({"advisory-detail": {"CVE-A": {"debian 10": {"alpine": '"text"'}}}})
    with pytest.raises(StoreError):
        store.get_advisories("debian 10", "alpine")