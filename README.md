# vulnfeeds

`vulnfeeds` reads vulnerability data published by Linux distributions and
language ecosystems from a local cache directory and loads it into a single
keyed store. Every feed ends up in the same shape: data sources, per-package
advisories, vulnerability details and a set of known vulnerability IDs.

## Supported feeds

| Module                   | Feed                                     | Read from the cache directory                      |
|--------------------------|------------------------------------------|----------------------------------------------------|
| `vulnfeeds.photon`       | Photon OS CVE metadata                   | `vuln-list/photon/`                                |
| `vulnfeeds.nvd`          | National Vulnerability Database          | `vuln-list-nvd/feed/`                              |
| `vulnfeeds.glad`         | GitLab Advisory Database (Conan)         | `vuln-list/glad/conan/`                            |
| `vulnfeeds.mariner`      | CBL-Mariner OVAL data                    | `vuln-list/mariner/<version>/`                     |
| `vulnfeeds.node`         | Node.js Ecosystem Security Working Group | `nodejs-security-wg/vuln/`                         |
| `vulnfeeds.oracle_oval`  | Oracle Linux OVAL definitions            | `vuln-list/oval/oracle/`                           |
| `vulnfeeds.redhat`       | Red Hat security data API                | `vuln-list-redhat/api/`                            |
| `vulnfeeds.redhat_oval`  | Red Hat OVAL v2                          | `vuln-list-redhat/oval/`, `vuln-list-redhat/cpe/`  |

Each of these modules has a `VulnSrc` class that takes a `Store` and whose
`update(directory)` reads the feed below `directory` and writes it to the
store in one batch. Some feeds also offer lookups:

- `photon.VulnSrc.get(release, pkg_name)`,
  `mariner.VulnSrc.get(release, pkg_name)` and
  `oracle_oval.VulnSrc.get(release, pkg_name)` return the advisories for a
  package on a platform release;
- `redhat_oval.VulnSrc.get(pkg_name, repositories, nvrs)` returns the
  advisories for a package whose affected CPEs match those of the given
  repositories or NVRs.

`oracle_oval.VulnSrc.put` stores one vulnerability with its advisories and may
be overridden by a subclass to store them differently.

Supporting modules:

- `vulnfeeds.mariner_oval` reads CBL-Mariner OVAL definitions, tests,
  objects and states;
- `vulnfeeds.redhat_oval_types` holds the Red Hat OVAL entry records and
  resolves rpminfo tests;
- `vulnfeeds.versions` handles affected version ranges;
- `vulnfeeds.cvss` scores CVSS v3 vectors.

## The store

`vulnfeeds.store.Store` holds everything the feeds write, in memory. Writes
made inside `with store.batch_update():` are undone if the block raises.

- `put_data_source`, `put_advisory_detail`, `put_vulnerability_detail` and
  `put_vulnerability_id` write records;
- `put_redhat_repositories`, `put_redhat_nvrs`, `put_redhat_cpes`,
  `redhat_repo_to_cpes` and `redhat_nvr_to_cpes` keep the Red Hat CPE
  mappings;
- `get_advisories(bucket, pkg_name)` and `for_each_advisory(sources, pkg_name)`
  read the advisories of one package;
- `get(*keys)` returns the decoded value at a key path such as
  `("vulnerability-detail", "CVE-2019-0199", "photon")`, or `None`;
  `has_bucket(*keys)` tells whether a path is a bucket.

Records are dataclasses: `DataSource`, `Advisory` and `VulnerabilityDetail`,
with severities from the `Severity` enum and statuses from the `Status` enum.
`new_severity(name)` looks a severity up by name and `bucket_name(ecosystem,
name)` builds the bucket name used for ecosystem feeds. Problems while reading
or storing a feed are raised as `FeedError`.

## Loading a feed

```python
from vulnfeeds.store import Store
from vulnfeeds import photon

store = Store()
source = photon.VulnSrc(store)
source.update("/path/to/cache")

for advisory in source.get("3.0", "apache-tomcat"):
    print(advisory.vulnerability_id, advisory.fixed_version)
```

## Version ranges

```python
from vulnfeeds.versions import new_version_range

version_range = new_version_range("PyPI", "1.2.0")
version_range.set_fixed("1.2.5")
str(version_range)               # ">=1.2.0, <1.2.5"
version_range.contains("1.2.3")  # True
```

Versions are compared by the rules of the ecosystem: PEP 440 for PyPI,
semantic versions for npm, Go, crates.io and NuGet, and the RubyGems and Maven
orderings for those ecosystems. `set_last_affected` closes a range inclusively.

## CVSS

`vulnfeeds.cvss.cvss3_score(vector)` returns the score of a CVSS 3.0 or 3.1
vector, applying temporal metrics when present, and raises `CVSSError` for a
vector it cannot decode.

## What this package does not do

- It does not download feeds; the data must already be in the cache directory.
- The store lives in memory only; nothing is written to disk.
- There is no command-line tool.
- Only the feeds listed above are read; there is no loader for data in the
  generic OSV schema or for the Kubernetes CVE feed.