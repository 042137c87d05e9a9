"""Test execution for a dependent module.

`GoTestRunner.run(module_dir)` runs `go test -count=1 ./...` in `module_dir`. `-count=1`
disables Go's test result cache: a substitution changes the module graph but not
necessarily the package sources, so cached results could otherwise be replayed.

The result is three-valued:
- `PASSED`: exit code 0.
- `FAILED`: exit code 1, which is what `go test` returns for failing tests.
- `ERROR`:  the suite could not be run at all (missing executable, any other exit code,
  or the optional deadline expired).

`go test` runs in its own session. When the deadline expires the whole process group is
killed, including the compiled test binaries `go` spawned, so nothing keeps running against the
checkout while the next phase rewrites its `go.mod`.

`run()` never raises; a failing suite is a normal, reportable result.
"""

from __future__ import annotations

import os
import signal
import subprocess
import sys
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol


class TestStatus(str, Enum):
    __test__ = False

    PASSED = "passed"
    FAILED = "failed"
    ERROR = "error"


@dataclass(frozen=True)
class TestResult:
    __test__ = False

    status: TestStatus
    duration: float
    output: str = ""

    @property
    def passed(self) -> bool:
        return self.status == TestStatus.PASSED


class SuiteRunner(Protocol):
    def run(self, module_dir: Path) -> TestResult: ...


class GoTestRunner:
    def __init__(self, *, executable: str = "go", timeout: float | None = None) -> None:
        self.executable = executable
        self.timeout = timeout

    def run(self, module_dir: Path) -> TestResult:
        cmd = [self.executable, "test", "-count=1", "./..."]
        print(f"[depimpact] {' '.join(cmd)} (in {module_dir})", file=sys.stderr)
        start = time.monotonic()
        try:
            p = subprocess.Popen(
                cmd,
                cwd=module_dir,
                text=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError as e:
            return TestResult(status=TestStatus.ERROR, duration=time.monotonic() - start, output=f"cannot run tests: {e}")

        try:
            out, _ = p.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            _kill_group(p)
            out, _ = p.communicate()
            output = _as_text(out) + f"\n[depimpact] test run exceeded deadline of {self.timeout}s\n"
            return TestResult(status=TestStatus.ERROR, duration=time.monotonic() - start, output=output)
        except BaseException:
            _kill_group(p)
            p.wait()
            raise

        duration = time.monotonic() - start
        if p.returncode == 0:
            status = TestStatus.PASSED
        elif p.returncode == 1:
            status = TestStatus.FAILED
        else:
            status = TestStatus.ERROR
        return TestResult(status=status, duration=duration, output=_as_text(out))


class StubTestRunner:
    """Returns a fixed status instantly; used by `--dry-run`."""

    def __init__(self, *, status: TestStatus = TestStatus.PASSED) -> None:
        self.status = status

    def run(self, module_dir: Path) -> TestResult:
        _ = module_dir
        return TestResult(status=self.status, duration=0.0, output="(stub) no tests executed")


def _kill_group(p: subprocess.Popen[str]) -> None:
    """SIGKILL `go` and every process it started (same session, pgid == pid)."""
    try:
        os.killpg(p.pid, signal.SIGKILL)
    except ProcessLookupError:
        # group already exited
        return


def _as_text(out: str | bytes | None) -> str:
    if out is None:
        return ""
    if isinstance(out, bytes):
        return out.decode("utf-8", errors="replace")
    return out
