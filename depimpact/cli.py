"""depimpact.cli

Command-line entrypoint: evaluate the impact of a modified Go library on its dependents.

Entry points
- `depimpact.cli:main` (console script `depimpact`)
- `python3 -m depimpact ...` (delegates to this module)

Usage
- `depimpact impact.json`
- `depimpact impact.json --keep-going --fail-on-regression --test-timeout 1800`

Positional argument
- `config`: path to the JSON configuration (see `depimpact.config`).

Flags
- `--keep-going`: best-effort mode. A fetch/substitution error in one dependent is recorded
  and reported, and the run continues with the next dependent. Without it the first error
  aborts the run.
- `--fail-on-regression`: exit with status 3 when any dependent is classified REGRESSION.
  Without it a structurally successful run always exits 0, whatever the classifications.
- `--test-timeout <seconds>`: deadline for each `go test` invocation. A run that exceeds it
  is reported as ERROR (could not run). No deadline by default.
- `--go-cmd <exe>` / `--git-cmd <exe>`: executables to use (defaults: `go`, `git`).
- `--dry-run`: wire no-op git/go collaborators and a stub test runner that always passes.
  Exercises config loading, workspace handling and reporting without touching the network.
- `-v/--verbose`: print the tail of test output for failing phases.
- `--no-color`: disable ANSI colors (colors are enabled only when stdout is a TTY).

Exit status
- 0: every dependent was classified (classification is informational).
- 1: bad arguments, unreadable/malformed config, a fatal fetch/substitution error, or (with
  `--keep-going`) at least one dependent that was skipped because of such an error. An
  incomplete run takes precedence over exit status 3.
- 3: `--fail-on-regression` was given and at least one REGRESSION was found.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .config import load_config
from .errors import ConfigError, ImpactError
from .experiment import ImpactConfig, ImpactRunner
from .git_ops import DryRunGitClient, GitClient
from .gomod import DryRunGoModClient, GoModClient
from .report import ReportPrinter
from .testrun import GoTestRunner, StubTestRunner

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_REGRESSION = 3


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        self.exit(EXIT_ERROR, f"{self.prog}: error: {message}\n")


def _positive_float(value: str) -> float:
    try:
        f = float(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from e
    if f <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {value!r}")
    return f


def build_parser() -> argparse.ArgumentParser:
    p = _ArgumentParser(
        prog="depimpact",
        description="Run dependents' test suites against released and modified versions of a Go library.",
    )
    p.add_argument("config", help="Path to the JSON configuration file.")
    p.add_argument(
        "--keep-going",
        action="store_true",
        help="Continue with the next dependent after a fetch/substitution error (default: abort the run).",
    )
    p.add_argument(
        "--fail-on-regression",
        action="store_true",
        help=f"Exit with status {EXIT_REGRESSION} if any dependent regresses.",
    )
    p.add_argument(
        "--test-timeout",
        type=_positive_float,
        default=None,
        metavar="SECONDS",
        help="Deadline for each test run (default: none).",
    )
    p.add_argument("--go-cmd", default="go", help="Go executable (default: go).")
    p.add_argument("--git-cmd", default="git", help="Git executable (default: git).")
    p.add_argument(
        "--dry-run",
        action="store_true",
        help="Use no-op git/go collaborators and a stub test runner. Does not call external tools.",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Show the tail of test output for failing phases.")
    p.add_argument("--no-color", action="store_true", help="Disable ANSI colors in the report.")
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(list(sys.argv[1:] if argv is None else argv))

    try:
        config = load_config(Path(args.config))
    except ConfigError as e:
        print(f"config error: {e}", file=sys.stderr)
        return EXIT_ERROR

    printer = ReportPrinter(
        color=(not args.no_color) and sys.stdout.isatty(),
        verbose=bool(args.verbose),
    )
    if args.dry_run:
        git = DryRunGitClient(executable=args.git_cmd)
        modules = DryRunGoModClient(executable=args.go_cmd)
        tests = StubTestRunner()
    else:
        git = GitClient(executable=args.git_cmd)
        modules = GoModClient(executable=args.go_cmd)
        tests = GoTestRunner(executable=args.go_cmd, timeout=args.test_timeout)

    cfg = ImpactConfig(
        git=git,
        modules=modules,
        tests=tests,
        printer=printer,
        fail_fast=not args.keep_going,
    )

    try:
        summary = ImpactRunner(cfg).run(config)
    except ImpactError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_ERROR

    if summary.errors:
        print(f"error: {summary.errors} dependent(s) could not be evaluated", file=sys.stderr)
        return EXIT_ERROR
    if args.fail_on_regression and summary.has_regression:
        return EXIT_REGRESSION
    return EXIT_OK
