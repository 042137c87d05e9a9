"""Experiment sequencing: baseline -> released -> modified, per dependent.

Lifecycle of `ImpactRunner.run(config)`
1. Create a scratch workspace (`tempfile.mkdtemp(prefix="depimpact-")`). It is removed on every
   exit path, including fatal errors.
2. Shallow-clone the target at `released_ref` into `<workspace>/released`. Failure here is
   always fatal: no dependent can be evaluated without it.
3. For each dependent, in configuration order, clone it into its own
   `<workspace>/dependents/<NN>-<name>` directory and run three phases against
   `<checkout>/<module_path>`:
   - BASELINE: tests on the dependent's own manifest, no substitution.
   - RELEASED: substitute the target modules with the released checkout, run tests.
   - MODIFIED: substitute them with `modified_local_path`, run tests.
   The phases share one checkout and run strictly in that order. Every substitution starts with
   `GoModClient.reset`, so the MODIFIED phase never sees directives from the RELEASED phase.
4. Classify released vs. modified (baseline is informational) and print the summary.

Error boundary
Each dependent runs behind a boundary that catches `ImpactError` (`FetchError`,
`SubstitutionError`). With `fail_fast=True` (the default) the error propagates and the run
aborts; lines for completed dependents have already been printed. With `fail_fast=False` the
error is recorded on that dependent's `DependentResult` and the run continues.

Failing tests are never errors; they are `TestResult`s and feed classification.
"""

from __future__ import annotations

import shutil
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path

from .config import Config, DependentConfig, TargetConfig
from .errors import ImpactError, SubstitutionError
from .git_ops import GitClient
from .gomod import GoModClient, apply_substitution
from .report import ReportPrinter
from .results import DependentResult, Phase, RunSummary, classify
from .testrun import SuiteRunner, TestResult


@dataclass(frozen=True)
class ImpactConfig:
    git: GitClient
    modules: GoModClient
    tests: SuiteRunner
    printer: ReportPrinter
    fail_fast: bool = True
    workspace_parent: Path | None = None


class ImpactRunner:
    def __init__(self, cfg: ImpactConfig) -> None:
        self.cfg = cfg

    def run(self, config: Config) -> RunSummary:
        parent = str(self.cfg.workspace_parent) if self.cfg.workspace_parent is not None else None
        workspace = Path(tempfile.mkdtemp(prefix="depimpact-", dir=parent)).resolve()
        try:
            return self._run_in_workspace(config=config, workspace=workspace)
        finally:
            shutil.rmtree(workspace, ignore_errors=True)
            print(f"[depimpact] removed workspace {workspace}", file=sys.stderr)

    def _run_in_workspace(self, *, config: Config, workspace: Path) -> RunSummary:
        printer = self.cfg.printer
        printer.workspace(workspace)

        target = config.target
        released_path = workspace / "released"
        self.cfg.git.clone_shallow(url=target.repo_url, ref=target.released_ref, dest=released_path)
        commit = self.cfg.git.head_commit(cwd=released_path)
        printer.released_checkout(ref=target.released_ref, path=released_path, commit=commit)

        summary = RunSummary()
        for idx, dep in enumerate(config.dependents, start=1):
            printer.dependent_header(dep)
            result = DependentResult(dependent=dep)
            checkout = workspace / "dependents" / dependent_checkout_name(idx, dep)
            try:
                self.run_dependent(result=result, target=target, checkout=checkout, released_path=released_path)
            except ImpactError as exc:
                if self.cfg.fail_fast:
                    raise
                result.error = str(exc)
                printer.dependent_error(dep, result.error)
            summary.results.append(result)

        printer.run_summary(summary)
        return summary

    def run_dependent(
        self,
        *,
        result: DependentResult,
        target: TargetConfig,
        checkout: Path,
        released_path: Path,
    ) -> DependentResult:
        dep = result.dependent
        self.cfg.git.clone_shallow(url=dep.repo_url, ref=dep.ref, dest=checkout)
        module_dir = checkout / dep.module_path if dep.module_path else checkout

        self.cfg.printer.phase(Phase.BASELINE)
        result.results[Phase.BASELINE] = self._run_tests(module_dir)

        self.cfg.printer.phase(Phase.RELEASED)
        self._substitute(module_dir=module_dir, source_path=released_path, target=target)
        result.results[Phase.RELEASED] = self._run_tests(module_dir)

        self.cfg.printer.phase(Phase.MODIFIED)
        self._substitute(module_dir=module_dir, source_path=modified_source(target), target=target)
        result.results[Phase.MODIFIED] = self._run_tests(module_dir)

        result.outcome = classify(result.results[Phase.RELEASED].passed, result.results[Phase.MODIFIED].passed)
        self.cfg.printer.dependent_summary(result)
        return result

    def _run_tests(self, module_dir: Path) -> TestResult:
        res = self.cfg.tests.run(module_dir)
        self.cfg.printer.test_result(res)
        return res

    def _substitute(self, *, module_dir: Path, source_path: Path, target: TargetConfig) -> None:
        report = apply_substitution(
            self.cfg.modules,
            module_dir=module_dir,
            source_path=source_path,
            module_prefix=target.module_prefix,
            module_root=target.effective_module_root,
        )
        self.cfg.printer.substitution(report)


def modified_source(target: TargetConfig) -> Path:
    """Absolute path of the modified target checkout (relative paths resolve against cwd)."""
    if not target.modified_local_path:
        raise SubstitutionError("target.modified_local_path is empty")
    path = Path(target.modified_local_path).expanduser().resolve()
    if not path.is_dir():
        raise SubstitutionError(f"modified target path is not a directory: {path}")
    return path


def dependent_checkout_name(idx: int, dep: DependentConfig) -> str:
    return f"{idx:02d}-{dep.name}"
