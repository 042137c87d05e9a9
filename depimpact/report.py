"""Human-readable report lines on stdout.

The printer is purely observational: the sequencer calls it as phases complete, so lines for
finished dependents are already on screen if a later dependent aborts the run. Diagnostics
(commands being run, cleanup) go to stderr with a `[depimpact]` prefix instead.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TextIO

from .config import DependentConfig
from .gomod import SubstitutionReport
from .results import DependentResult, Outcome, Phase, RunSummary
from .testrun import TestResult, TestStatus

RULE = "=" * 48


class ReportPrinter:
    ANSI_COLORS = {
        "red": "31",
        "green": "32",
        "yellow": "33",
        "magenta": "35",
    }
    OUTCOME_COLORS = {
        Outcome.UNCHANGED: "green",
        Outcome.REGRESSION: "red",
        Outcome.IMPROVEMENT: "magenta",
        Outcome.UNCHANGED_FAIL: "yellow",
    }

    def __init__(
        self,
        *,
        stream: TextIO | None = None,
        color: bool = False,
        verbose: bool = False,
        tail_lines: int = 20,
    ) -> None:
        self.stream = stream
        self.color = color
        self.verbose = verbose
        self.tail_lines = tail_lines

    def _out(self, line: str = "") -> None:
        stream = self.stream if self.stream is not None else sys.stdout
        stream.write(line + "\n")
        stream.flush()

    def _colorize(self, *, text: str, color: str) -> str:
        code = self.ANSI_COLORS.get(color)
        if not self.color or code is None:
            return text
        return f"\033[{code}m{text}\033[0m"

    def workspace(self, path: Path) -> None:
        self._out(f"Workspace: {path}")

    def released_checkout(self, *, ref: str, path: Path, commit: str) -> None:
        self._out(f"Released : {ref} ({commit}) -> {path}")

    def dependent_header(self, dep: DependentConfig) -> None:
        self._out()
        self._out(RULE)
        self._out(f"Dependent: {dep.repo_url}")
        self._out(f"Module   : {dep.module_path or '.'}")
        self._out(RULE)

    def phase(self, phase: Phase) -> None:
        self._out()
        self._out(f"--- {phase.label} ---")

    def substitution(self, report: SubstitutionReport) -> None:
        self._out(f"Applying replacements for prefix: {report.module_prefix}")
        for r in report.replaced:
            self._out(f"  replace {r.module} => {r.local_path}")
        for module in report.skipped:
            self._out(f"  skip {module} (no go.mod under {report.source_path})")
        warning = report.warning
        if warning:
            self._out(self._colorize(text=f"  WARNING: {warning}", color="yellow"))

    def test_result(self, result: TestResult) -> None:
        if result.status == TestStatus.PASSED:
            self._out(self._colorize(text="✔ PASS", color="green"))
        elif result.status == TestStatus.FAILED:
            self._out(self._colorize(text="✘ FAIL", color="red"))
        else:
            self._out(self._colorize(text="✘ ERROR (could not run)", color="red"))
        self._out(f"Duration: {format_duration(result.duration)}")
        if self.verbose and not result.passed and result.output.strip():
            for line in result.output.rstrip().splitlines()[-self.tail_lines :]:
                self._out(f"  | {line}")

    def dependent_summary(self, result: DependentResult) -> None:
        self._out()
        self._out("Summary:")
        for phase in Phase:
            res = result.results.get(phase)
            label = f"{phase.label:<9}:"
            self._out(f"{label} {status_label(res) if res is not None else '-'}")
        if result.outcome is not None:
            self._out(f"Outcome  : {self.outcome_label(result.outcome)}")
        if result.tooling_error:
            self._out(self._colorize(text="  WARNING: a phase could not run its tests; outcome may not reflect a behavior change", color="yellow"))

    def dependent_error(self, dep: DependentConfig, error: str) -> None:
        self._out()
        self._out(self._colorize(text=f"ERROR: {dep.repo_url}: {error}", color="red"))

    def run_summary(self, summary: RunSummary) -> None:
        self._out()
        self._out(RULE)
        self._out("Results:")
        for r in summary.results:
            if r.outcome is not None:
                text, color = r.outcome.value, self.OUTCOME_COLORS[r.outcome]
            else:
                text, color = "ERROR", "red"
            # pad before colorizing; escape codes would count towards the width
            verdict = self._colorize(text=text, color=color) + " " * max(14 - len(text), 0)
            self._out(f"  {verdict} {r.dependent.repo_url} ({r.dependent.module_path or '.'})")
        counts = ", ".join(f"{o.value}={summary.count(o)}" for o in Outcome)
        self._out(f"Totals   : {counts}, ERROR={summary.errors}")
        self._out(RULE)

    def outcome_label(self, outcome: Outcome) -> str:
        return self._colorize(text=outcome.value, color=self.OUTCOME_COLORS[outcome])


def status_label(result: TestResult) -> str:
    if result.status == TestStatus.PASSED:
        return "PASS"
    if result.status == TestStatus.FAILED:
        return "FAIL"
    return "ERROR"


def format_duration(seconds: float) -> str:
    """Round to whole seconds and render like `1h2m3s`, `4m5s`, `6s`."""
    total = int(round(max(seconds, 0.0)))
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"
