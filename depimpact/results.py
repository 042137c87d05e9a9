"""Result model: experiment phases, outcome classification, and per-run aggregation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .config import DependentConfig
from .testrun import TestResult, TestStatus


class Phase(str, Enum):
    BASELINE = "baseline"
    RELEASED = "released"
    MODIFIED = "modified"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class Outcome(str, Enum):
    UNCHANGED = "UNCHANGED"
    REGRESSION = "REGRESSION"
    IMPROVEMENT = "IMPROVEMENT"
    UNCHANGED_FAIL = "UNCHANGED-FAIL"


def classify(released_passed: bool, modified_passed: bool) -> Outcome:
    """Classify the released -> modified transition. Baseline never participates."""
    if released_passed and modified_passed:
        return Outcome.UNCHANGED
    if released_passed:
        return Outcome.REGRESSION
    if modified_passed:
        return Outcome.IMPROVEMENT
    return Outcome.UNCHANGED_FAIL


@dataclass
class DependentResult:
    dependent: DependentConfig
    results: dict[Phase, TestResult] = field(default_factory=dict)
    outcome: Outcome | None = None
    error: str | None = None

    @property
    def tooling_error(self) -> bool:
        """True when any phase could not run its tests at all."""
        return any(r.status == TestStatus.ERROR for r in self.results.values())


@dataclass
class RunSummary:
    results: list[DependentResult] = field(default_factory=list)

    def count(self, outcome: Outcome) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)

    @property
    def errors(self) -> int:
        return sum(1 for r in self.results if r.error is not None)

    @property
    def has_regression(self) -> bool:
        return self.count(Outcome.REGRESSION) > 0
