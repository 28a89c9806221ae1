# vulnfeed

`vulnfeed` reads local copies of public vulnerability feeds and records their
advisories in one uniform store. Each feed has its own module with a `VulnSrc`
class. The class parses the feed's files on disk and writes four kinds of data
into a `vulnfeed.store.Store`:

- data sources, keyed by bucket name
- per-package advisories, keyed by vulnerability ID, bucket and package
- vulnerability details, keyed by vulnerability ID and source ID
- vulnerability IDs

## Supported feeds

`update(directory)` reads from these paths below the given directory:

| Module | Feed | Path read |
| --- | --- | --- |
| `vulnfeed.bundler` | Ruby Advisory Database (YAML) | `ruby-advisory-db/gems` |
| `vulnfeed.composer` | PHP Security Advisories Database (YAML) | `php-security-advisories` |
| `vulnfeed.node` | Node.js Ecosystem Security Working Group (JSON) | `nodejs-security-wg/vuln` |
| `vulnfeed.glad` | GitLab Advisory Database Community (Conan only) | `vuln-list/glad/conan` |
| `vulnfeed.chainguard` | Chainguard security data | `vuln-list/chainguard` |
| `vulnfeed.minimos` | MinimOS security data | `vuln-list/minimos` |
| `vulnfeed.echo` | Echo advisories | `vuln-list/echo` |
| `vulnfeed.debian` | Debian Security Tracker (CVE, DLA and DSA) | `vuln-list-debian/tracker` |
| `vulnfeed.nvd` | NVD API 2.0 CVE records | `vuln-list-nvd/api` |
| `vulnfeed.oracle_oval` | Oracle Linux OVAL definitions | `vuln-list/oval/oracle` |

Some sources also read back what they stored:

- `chainguard.VulnSrc.get(pkg_name)`, `minimos.VulnSrc.get(pkg_name)` and
  `echo.VulnSrc.get(pkg_name)`
- `debian.VulnSrc.get(release, pkg_name)`
- `oracle_oval.VulnSrc.get(release, pkg_name, arch)`, which returns only the
  entries that apply to the given arch

`debian.VulnSrc` takes an optional `put` callable that receives each gathered
`DebianAdvisory` in place of the default writer. `nvd.VulnSrc.put(cve)` stores
one decoded CVE record.

The modules also expose their helpers: version comparison for Debian
(`debian.DebianVersion`, `compare_versions`) and RPM (`oracle_oval.RpmVersion`),
CVSS v4.0 vector checking (`nvd.normalize_cvss40_vector`), and the severity and
status mappings of each feed.

`vulnfeed.bucket` builds the bucket names that advisories are stored under,
for example `"debian 10"`, `"Oracle Linux 8"` or `"npm::<data source name>"`.
The language bucket constructors raise `ValueError` for an empty data source.
`vulnfeed.types` holds the shared records: `Advisory`, `Advisories`,
`VulnerabilityDetail`, `DataSource`, `Severity` and `Status`.

## Installation

```
pip install .
```

To install the test dependencies as well:

```
pip install .[test]
```

## Usage

```python
from vulnfeed import bucket, debian, types
from vulnfeed.store import Store

store = Store()
src = debian.VulnSrc(store)
src.update("cache")

for advisory in src.get("10", "bash"):
    print(advisory.vulnerability_id, advisory.fixed_version, advisory.status)

print(store.get("vulnerability-id", "CVE-2021-33560"))  # {}

ds = types.DataSource(id="ghsa", name="GitHub Security Advisory", url="")
print(bucket.new_go(ds).name())       # go::GitHub Security Advisory
print(bucket.new_redhat("8").name())  # Red Hat 8
```

Several sources can share one `Store`. Each update runs inside
`Store.transaction()`, so a failed update leaves the store as it was.

A missing feed directory raises `FileNotFoundError`. A bad input file raises
`ValueError` whose message names the file and the step that failed, such as
`"json decode error"`, `"yaml unmarshal error"` or, for NVD, `"json unmarshal
error"`.

## What the package does not do

- It does not download feeds; the files must already be on disk.
- The `Store` lives in memory only. Nothing is written to a database file.
- There is no command-line program; the package is used as a library.

## Running the tests

```
pytest
```