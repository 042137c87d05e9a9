"""Go module substitution: point a dependent's module graph at a local checkout of the target.

`GoModClient` wraps the `go` command; every method maps to a single invocation so callers can
reason about side effects:

- `replaces(module_dir)`          `go mod edit -json`, returns the current `replace` directives
- `drop_replaces(module_dir, ds)` `go mod edit -dropreplace=<old>[@v] ...`
- `add_replace(module_dir, m, p)` `go mod edit -replace=<m>=<p>`
- `tidy(module_dir)`              `go mod tidy`
- `list_modules(module_dir)`      `go list -m -json all`, parsed from a stream of JSON objects

`reset(module_dir)` drops every local replace directive (one whose replacement carries no
version, i.e. a filesystem path) and re-tidies. It is the clean-state primitive that makes
`apply_substitution` idempotent: redirects left behind by an earlier phase are removed before
new ones are added, so the MODIFIED phase never inherits directives from the RELEASED phase.

`apply_substitution(...)`
1. `reset` (fails if the graph cannot be resolved even without substitutions).
2. List the resolved graph. The main module is never a candidate.
3. For each module whose path starts with `module_prefix`, strip `module_root` from its path
   and look for `<source_path>/<rest>/go.mod`. When present, add a replace directive to that
   directory; otherwise record the module as skipped.
4. Nothing replaced is a warning on the returned report, not an error.
5. `tidy` again to fold the new directives into the graph.

Any failing `go` invocation raises `SubstitutionError` carrying the command and its stderr.
"""

from __future__ import annotations

import json
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import SubstitutionError


@dataclass(frozen=True)
class GoModule:
    path: str
    version: str = ""
    main: bool = False


@dataclass(frozen=True)
class ReplaceDirective:
    old_path: str
    new_path: str
    old_version: str = ""
    new_version: str = ""

    @property
    def is_local(self) -> bool:
        return not self.new_version

    @property
    def drop_arg(self) -> str:
        return f"{self.old_path}@{self.old_version}" if self.old_version else self.old_path


@dataclass(frozen=True)
class Replacement:
    module: str
    local_path: Path


@dataclass(frozen=True)
class SubstitutionReport:
    module_prefix: str
    source_path: Path
    matched: list[str] = field(default_factory=list)
    replaced: list[Replacement] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def warning(self) -> str | None:
        if not self.matched:
            return f"no modules matched prefix: {self.module_prefix}"
        if not self.replaced:
            return (
                f"{len(self.matched)} module(s) matched prefix {self.module_prefix} "
                f"but none has a go.mod under {self.source_path}"
            )
        return None


class GoModClient:
    def __init__(self, *, executable: str = "go") -> None:
        self.executable = executable

    def replaces(self, *, module_dir: Path) -> list[ReplaceDirective]:
        out = self._go(["mod", "edit", "-json"], cwd=module_dir)
        try:
            raw = json.loads(out)
        except json.JSONDecodeError as e:
            raise SubstitutionError(f"go mod edit -json returned invalid JSON in {module_dir}: {e}") from e
        if not isinstance(raw, dict):
            raise SubstitutionError(f"go mod edit -json returned {type(raw).__name__}, expected an object")

        result: list[ReplaceDirective] = []
        for it in raw.get("Replace") or []:
            old = it.get("Old") or {}
            new = it.get("New") or {}
            result.append(
                ReplaceDirective(
                    old_path=str(old.get("Path") or ""),
                    old_version=str(old.get("Version") or ""),
                    new_path=str(new.get("Path") or ""),
                    new_version=str(new.get("Version") or ""),
                )
            )
        return result

    def drop_replaces(self, *, module_dir: Path, directives: list[ReplaceDirective]) -> None:
        if not directives:
            return
        self._go(["mod", "edit", *[f"-dropreplace={d.drop_arg}" for d in directives]], cwd=module_dir)

    def add_replace(self, *, module_dir: Path, module: str, local_path: Path) -> None:
        self._go(["mod", "edit", f"-replace={module}={local_path}"], cwd=module_dir)

    def tidy(self, *, module_dir: Path) -> None:
        self._go(["mod", "tidy"], cwd=module_dir)

    def list_modules(self, *, module_dir: Path) -> list[GoModule]:
        out = self._go(["list", "-m", "-json", "all"], cwd=module_dir)
        return parse_module_stream(out)

    def reset(self, *, module_dir: Path) -> list[ReplaceDirective]:
        """Drop all local replace directives and re-resolve; returns what was dropped."""
        local = [d for d in self.replaces(module_dir=module_dir) if d.is_local]
        self.drop_replaces(module_dir=module_dir, directives=local)
        self.tidy(module_dir=module_dir)
        return local

    def _go(self, args: list[str], *, cwd: Path) -> str:
        cmd_str = " ".join([self.executable, *args])
        print(f"[depimpact] {cmd_str} (in {cwd})", file=sys.stderr)
        try:
            p = subprocess.run(
                [self.executable, *args],
                cwd=cwd,
                text=True,
                check=True,
                capture_output=True,
            )
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            raise SubstitutionError(f"`{cmd_str}` failed in {cwd} with exit code {e.returncode}: {stderr}") from e
        except OSError as e:
            raise SubstitutionError(f"cannot run {self.executable}: {e}") from e
        return p.stdout


class DryRunGoModClient(GoModClient):
    """A no-op module client: an empty graph, no directives, nothing executed."""

    def replaces(self, *, module_dir: Path) -> list[ReplaceDirective]:  # type: ignore[override]
        return []

    def drop_replaces(self, *, module_dir: Path, directives: list[ReplaceDirective]) -> None:  # type: ignore[override]
        return

    def add_replace(self, *, module_dir: Path, module: str, local_path: Path) -> None:  # type: ignore[override]
        return

    def tidy(self, *, module_dir: Path) -> None:  # type: ignore[override]
        return

    def list_modules(self, *, module_dir: Path) -> list[GoModule]:  # type: ignore[override]
        return []


def parse_module_stream(text: str) -> list[GoModule]:
    """Parse `go list -m -json` output: concatenated JSON objects, not an array."""
    decoder = json.JSONDecoder()
    modules: list[GoModule] = []
    idx = 0
    n = len(text)
    while True:
        while idx < n and text[idx].isspace():
            idx += 1
        if idx >= n:
            break
        try:
            obj, idx = decoder.raw_decode(text, idx)
        except json.JSONDecodeError as e:
            raise SubstitutionError(f"cannot parse go list output: {e}") from e
        if not isinstance(obj, dict):
            raise SubstitutionError(f"unexpected go list record: {obj!r}")
        modules.append(_module_from_dict(obj))
    return modules


def _module_from_dict(d: dict[str, Any]) -> GoModule:
    return GoModule(
        path=str(d.get("Path") or ""),
        version=str(d.get("Version") or ""),
        main=bool(d.get("Main", False)),
    )


def local_module_dir(source_path: Path, module: str, *, module_root: str) -> Path:
    """Map a module path to its directory inside a checkout of the target repository."""
    rel = module.removeprefix(module_root).lstrip("/")
    return source_path / rel if rel else source_path


def apply_substitution(
    modules: GoModClient,
    *,
    module_dir: Path,
    source_path: Path,
    module_prefix: str,
    module_root: str | None = None,
) -> SubstitutionReport:
    root = module_root or module_prefix
    source_path = source_path.resolve()

    modules.reset(module_dir=module_dir)

    matched: list[str] = []
    replaced: list[Replacement] = []
    skipped: list[str] = []
    for mod in modules.list_modules(module_dir=module_dir):
        if mod.main or not mod.path.startswith(module_prefix):
            continue
        matched.append(mod.path)
        local = local_module_dir(source_path, mod.path, module_root=root)
        if not (local / "go.mod").is_file():
            skipped.append(mod.path)
            continue
        modules.add_replace(module_dir=module_dir, module=mod.path, local_path=local)
        replaced.append(Replacement(module=mod.path, local_path=local))

    modules.tidy(module_dir=module_dir)
    return SubstitutionReport(
        module_prefix=module_prefix,
        source_path=source_path,
        matched=matched,
        replaced=replaced,
        skipped=skipped,
    )
