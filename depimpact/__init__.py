"""depimpact: regression-impact runs for a Go library across its dependents.

Given a target library with a released ref and a locally modified checkout, depimpact clones
each configured dependent, runs its test suite three times (baseline, with the released
target substituted in, with the modified target substituted in) and classifies the
released -> modified transition as UNCHANGED, REGRESSION, IMPROVEMENT or UNCHANGED-FAIL.

What depimpact provides
- A CLI entrypoint (`depimpact.cli:main`, runnable via `python -m depimpact`).
- A sequencer (`depimpact.experiment.ImpactRunner`) that owns a scratch workspace, fetches
  repositories with `git`, swaps module versions with `go mod edit -replace`, and runs
  `go test -count=1 ./...`.
- A human-readable report on stdout (`depimpact.report`).

What depimpact intentionally does not do
- Run dependents in parallel, retry flaky tests, cache results across runs, or emit
  machine-readable output.

Key exports from this module
- `__version__`: the package version string. (`__all__` is intentionally limited to this.)
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
