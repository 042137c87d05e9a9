"""Error taxonomy for depimpact.

- `ConfigError`: the configuration file could not be read or decoded. Raised before any work.
- `FetchError`: a `git clone` of the target or a dependent failed.
- `SubstitutionError`: a `go mod` edit or graph re-resolution failed.

All of them derive from `ImpactError` so the per-dependent boundary in `experiment` and
`cli.main` can catch the whole family. A failing test suite is never an error; it is a
`TestResult` with a non-passing status.
"""

from __future__ import annotations


class ImpactError(RuntimeError):
    pass


class ConfigError(ImpactError):
    pass


class FetchError(ImpactError):
    pass


class SubstitutionError(ImpactError):
    pass
