import pytest

from vulnfeed import bucket
from vulnfeed.bucket import Ecosystem, LangBucket, OSBucket
from vulnfeed.types import DataSource

GHSA = DataSource(id="ghsa", name="GitHub Security Advisory", url="https://github.com/advisories")
GLAD = DataSource(id="glad", name="GitLab Advisory Database", url="https://gitlab.com/advisories")


def _ghsa(name):
    return DataSource(id="ghsa", name=name, url="https://github.com/advisories")


@pytest.mark.parametrize(
    "made, want",
    [
        (bucket.new_alpine("3.11"), "alpine 3.11"),
        (bucket.new_alpine(""), "alpine"),
        (bucket.new_redhat(""), "Red Hat"),
        (bucket.new_redhat("8"), "Red Hat 8"),
        (bucket.new_arch_linux(""), "archlinux"),
        (bucket.new_azure_linux("3.0"), "Azure Linux 3.0"),
        (bucket.new_mariner("2.0"), "CBL-Mariner 2.0"),
        (bucket.new_go(GHSA), "go::GitHub Security Advisory"),
        (bucket.new_npm(GLAD), "npm::GitLab Advisory Database"),
        (bucket.new_pypi(_ghsa("GitHub Security Advisory PyPI")), "pip::GitHub Security Advisory PyPI"),
        (
            bucket.new_composer(_ghsa("GitHub Security Advisory Composer")),
            "composer::GitHub Security Advisory Composer",
        ),
        (
            bucket.new_rubygems(_ghsa("GitHub Security Advisory RubyGems")),
            "rubygems::GitHub Security Advisory RubyGems",
        ),
        (bucket.new_cargo(_ghsa("GitHub Security Advisory Cargo")), "cargo::GitHub Security Advisory Cargo"),
    ],
)
def test_bucket_name(made, want):
    assert made.name() == want


@pytest.mark.parametrize("source", [GHSA, GLAD])
def test_language_bucket_returns_data_source(source):
    made = bucket.new_go(source) if source is GHSA else bucket.new_npm(source)
    assert made.data_source == source


@pytest.mark.parametrize(
    "made, want",
    [
        (bucket.new_amazon("2"), "amazon linux 2"),
        (bucket.new_oracle("8"), "Oracle Linux 8"),
        (bucket.new_photon("3.0"), "Photon OS 3.0"),
        (bucket.new_opensuse("15.5"), "openSUSE Leap 15.5"),
        (bucket.new_opensuse_tumbleweed(), "openSUSE Tumbleweed"),
        (bucket.new_opensuse_leap_micro("5.5"), "openSUSE Leap Micro 5.5"),
        (bucket.new_suse_linux_enterprise("15.5"), "SUSE Linux Enterprise 15.5"),
        (bucket.new_suse_linux_enterprise_micro("5.5"), "SUSE Linux Enterprise Micro 5.5"),
        (bucket.new_debian("10"), "debian 10"),
        (bucket.new_chainguard(""), "chainguard"),
        (bucket.new_echo(""), "echo"),
        (bucket.new_minimos(""), "minimos"),
    ],
)
def test_special_os_names(made, want):
    assert made.name() == want


def test_labelled_os_keeps_separator_without_version():
    assert bucket.new_oracle("").name() == "Oracle Linux "


@pytest.mark.parametrize(
    "factory, ecosystem",
    [
        (bucket.new_alma, Ecosystem.ALMA_LINUX),
        (bucket.new_rocky, Ecosystem.ROCKY),
        (bucket.new_ubuntu, Ecosystem.UBUNTU),
        (bucket.new_wolfi, Ecosystem.WOLFI),
        (bucket.new_opensuse, Ecosystem.SUSE),
        (bucket.new_amazon, Ecosystem.AMAZON_LINUX),
    ],
)
def test_os_bucket_ecosystem(factory, ecosystem):
    made = factory("1")
    assert isinstance(made, OSBucket)
    assert made.ecosystem is ecosystem
    assert made.name().endswith(" 1")


@pytest.mark.parametrize(
    "factory, ecosystem",
    [
        (bucket.new_bitnami, Ecosystem.BITNAMI),
        (bucket.new_cocoapods, Ecosystem.COCOAPODS),
        (bucket.new_conan, Ecosystem.CONAN),
        (bucket.new_erlang, Ecosystem.ERLANG),
        (bucket.new_julia, Ecosystem.JULIA),
        (bucket.new_kubernetes, Ecosystem.KUBERNETES),
        (bucket.new_maven, Ecosystem.MAVEN),
        (bucket.new_nuget, Ecosystem.NUGET),
        (bucket.new_pub, Ecosystem.PUB),
        (bucket.new_swift, Ecosystem.SWIFT),
    ],
)
def test_language_bucket_name_uses_ecosystem_and_source(factory, ecosystem):
    made = factory(GHSA)
    assert made.ecosystem is ecosystem
    assert made.name() == f"{ecosystem.value}::{GHSA.name}"


@pytest.mark.parametrize("factory", [bucket.new_go, bucket.new_npm, bucket.new_swift])
def test_language_bucket_rejects_empty_source(factory):
    with pytest.raises(ValueError, match="data source cannot be empty"):
        factory(DataSource())


def test_language_buckets_compare_by_value():
    assert bucket.new_cocoapods(GHSA) == LangBucket(Ecosystem.COCOAPODS, GHSA)
    assert bucket.new_cocoapods(GHSA) != bucket.new_swift(GHSA)