"""Bucket names that group advisories by ecosystem, release and data source."""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass

from .types import DataSource

SEPARATOR = "::"


class Ecosystem(str, enum.Enum):
    """Operating systems and language ecosystems known to the feeds."""

    ALMA_LINUX = "alma"
    ALPINE = "alpine"
    AMAZON_LINUX = "amazon"
    ARCH_LINUX = "archlinux"
    AZURE_LINUX = "azurelinux"
    CBL_MARINER = "cbl-mariner"
    CHAINGUARD = "chainguard"
    DEBIAN = "debian"
    ECHO = "echo"
    MINIMOS = "minimos"
    ORACLE_LINUX = "oracle"
    PHOTON_OS = "photon"
    RED_HAT = "redhat"
    ROCKY = "rocky"
    SUSE = "suse"
    UBUNTU = "ubuntu"
    WOLFI = "wolfi"

    BITNAMI = "bitnami"
    CARGO = "cargo"
    COCOAPODS = "cocoapods"
    COMPOSER = "composer"
    CONAN = "conan"
    ERLANG = "erlang"
    GO = "go"
    JULIA = "julia"
    KUBERNETES = "k8s"
    MAVEN = "maven"
    NPM = "npm"
    NUGET = "nuget"
    PIP = "pip"
    PUB = "pub"
    RUBYGEMS = "rubygems"
    SWIFT = "swift"

    def __str__(self) -> str:
        return self.value


class Bucket(ABC):
    """A named place in the store for one ecosystem's advisories."""

    ecosystem: Ecosystem

    @abstractmethod
    def name(self) -> str:
        """Return the bucket name."""


@dataclass(frozen=True)
class OSBucket(Bucket):
    """Bucket of an operating system release.

    ``label`` replaces the ecosystem name; when ``version_optional`` is false
    the version is always appended after a space, even if it is empty.
    """

    ecosystem: Ecosystem
    version: str = ""
    label: str | None = None
    version_optional: bool = True

    def name(self) -> str:
        base = self.label if self.label is not None else self.ecosystem.value
        if self.version_optional and not self.version:
            return base
        return f"{base} {self.version}"


@dataclass(frozen=True)
class LangBucket(Bucket):
    """Bucket of a language ecosystem, tied to one data source."""

    ecosystem: Ecosystem
    data_source: DataSource

    def name(self) -> str:
        return f"{self.ecosystem.value}{SEPARATOR}{self.data_source.name}"


def _new_lang(ecosystem: Ecosystem, data_source: DataSource) -> LangBucket:
    if data_source == DataSource():
        raise ValueError(f"data source cannot be empty (ecosystem: {ecosystem.value})")
    return LangBucket(ecosystem, data_source)


def _labelled(ecosystem: Ecosystem, label: str, version: str) -> OSBucket:
    return OSBucket(ecosystem, version, label=label, version_optional=False)


def new_alma(version: str) -> Bucket:
    return OSBucket(Ecosystem.ALMA_LINUX, version)


def new_alpine(version: str) -> Bucket:
    return OSBucket(Ecosystem.ALPINE, version)


def new_arch_linux(version: str) -> Bucket:
    return OSBucket(Ecosystem.ARCH_LINUX, version)


def new_chainguard(version: str) -> Bucket:
    return OSBucket(Ecosystem.CHAINGUARD, version)


def new_debian(version: str) -> Bucket:
    return OSBucket(Ecosystem.DEBIAN, version)


def new_echo(version: str) -> Bucket:
    return OSBucket(Ecosystem.ECHO, version)


def new_minimos(version: str) -> Bucket:
    return OSBucket(Ecosystem.MINIMOS, version)


def new_rocky(version: str) -> Bucket:
    return OSBucket(Ecosystem.ROCKY, version)


def new_ubuntu(version: str) -> Bucket:
    return OSBucket(Ecosystem.UBUNTU, version)


def new_wolfi(version: str) -> Bucket:
    return OSBucket(Ecosystem.WOLFI, version)


def new_amazon(version: str) -> Bucket:
    return _labelled(Ecosystem.AMAZON_LINUX, "amazon linux", version)


def new_azure_linux(version: str) -> Bucket:
    return _labelled(Ecosystem.AZURE_LINUX, "Azure Linux", version)


def new_mariner(version: str) -> Bucket:
    return _labelled(Ecosystem.CBL_MARINER, "CBL-Mariner", version)


def new_oracle(version: str) -> Bucket:
    return _labelled(Ecosystem.ORACLE_LINUX, "Oracle Linux", version)


def new_redhat(version: str) -> Bucket:
    return OSBucket(Ecosystem.RED_HAT, version, label="Red Hat")


def new_photon(version: str) -> Bucket:
    return _labelled(Ecosystem.PHOTON_OS, "Photon OS", version)


def new_opensuse(version: str) -> Bucket:
    return _labelled(Ecosystem.SUSE, "openSUSE Leap", version)


def new_opensuse_tumbleweed() -> Bucket:
    return OSBucket(Ecosystem.SUSE, "", label="openSUSE Tumbleweed")


def new_opensuse_leap_micro(version: str) -> Bucket:
    return _labelled(Ecosystem.SUSE, "openSUSE Leap Micro", version)


def new_suse_linux_enterprise(version: str) -> Bucket:
    return _labelled(Ecosystem.SUSE, "SUSE Linux Enterprise", version)


def new_suse_linux_enterprise_micro(version: str) -> Bucket:
    return _labelled(Ecosystem.SUSE, "SUSE Linux Enterprise Micro", version)


def new_bitnami(data_source: DataSource) -> LangBucket:
    return _new_lang(Ecosystem.BITNAMI, data_source)


def new_cargo(data_source: DataSource) -> LangBucket:
    return _new_lang(Ecosystem.CARGO, data_source)


def new_cocoapods(data_source: DataSource) -> LangBucket:
    return _new_lang(Ecosystem.COCOAPODS, data_source)


def new_conan(data_source: DataSource) -> LangBucket:
    return _new_lang(Ecosystem.CONAN, data_source)


def new_composer(data_source: DataSource) -> LangBucket:
    return _new_lang(Ecosystem.COMPOSER, data_source)


def new_erlang(data_source: DataSource) -> LangBucket:
    return _new_lang(Ecosystem.ERLANG, data_source)


def new_go(data_source: DataSource) -> LangBucket:
    return _new_lang(Ecosystem.GO, data_source)


def new_julia(data_source: DataSource) -> LangBucket:
    return _new_lang(Ecosystem.JULIA, data_source)


def new_kubernetes(data_source: DataSource) -> LangBucket:
    return _new_lang(Ecosystem.KUBERNETES, data_source)


def new_maven(data_source: DataSource) -> LangBucket:
    return _new_lang(Ecosystem.MAVEN, data_source)


def new_npm(data_source: DataSource) -> LangBucket:
    return _new_lang(Ecosystem.NPM, data_source)


def new_nuget(data_source: DataSource) -> LangBucket:
    return _new_lang(Ecosystem.NUGET, data_source)


def new_pub(data_source: DataSource) -> LangBucket:
    return _new_lang(Ecosystem.PUB, data_source)


def new_pypi(data_source: DataSource) -> LangBucket:
    return _new_lang(Ecosystem.PIP, data_source)


def new_rubygems(data_source: DataSource) -> LangBucket:
    return _new_lang(Ecosystem.RUBYGEMS, data_source)


def new_swift(data_source: DataSource) -> LangBucket:
    return _new_lang(Ecosystem.SWIFT, data_source)