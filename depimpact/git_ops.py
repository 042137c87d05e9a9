"""Repository fetching for depimpact.

Two implementations share the same public surface:

- `GitClient`: shells out to `git` via `subprocess`.
- `DryRunGitClient`: a no-op used by `--dry-run`; it creates the destination directory
  and reports a placeholder commit, but never touches the network.

GitClient API
- `clone_shallow(url, ref, dest)`
  Runs `git clone --depth 1 --branch <ref> <url> <dest>`. Only refs git can fetch by name
  (branches, tags) are supported; arbitrary commit SHAs are not. git's progress output is
  passed through to the console. `dest` must not exist or must be an empty directory.
  Raises `FetchError` on an empty url/ref, a non-empty destination, a missing `git`
  executable, or a non-zero exit. There is no retry.
- `head_commit(cwd)`
  Returns the commit SHA checked out at `cwd` (used for report traceability).
"""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path

from .errors import FetchError


class GitClient:
    def __init__(self, *, executable: str = "git") -> None:
        self.executable = executable

    def clone_shallow(self, *, url: str, ref: str, dest: Path) -> None:
        if not url:
            raise FetchError(f"cannot clone into {dest}: repository URL is empty")
        if not ref:
            raise FetchError(f"cannot clone {url}: ref is empty")
        if dest.exists() and (not dest.is_dir() or any(dest.iterdir())):
            raise FetchError(f"clone destination is not empty: {dest}")

        cmd = [self.executable, "clone", "--depth", "1", "--branch", ref, url, str(dest)]
        print(f"[depimpact] clone {url}@{ref} -> {dest}", file=sys.stderr)
        try:
            p = subprocess.run(cmd, check=False)
        except OSError as e:
            raise FetchError(f"cannot run {self.executable}: {e}") from e
        if p.returncode != 0:
            raise FetchError(f"git clone of {url}@{ref} failed with exit code {p.returncode}")

    def head_commit(self, *, cwd: Path) -> str:
        try:
            return self._git(["rev-parse", "HEAD"], cwd=cwd).strip()
        except subprocess.CalledProcessError as e:
            raise FetchError(f"git rev-parse HEAD failed in {cwd}: {(e.stderr or '').strip()}") from e
        except OSError as e:
            raise FetchError(f"cannot run {self.executable}: {e}") from e

    def _git(self, args: list[str], *, cwd: Path) -> str:
        p = subprocess.run(
            [self.executable, *args],
            cwd=cwd,
            text=True,
            check=True,
            capture_output=True,
        )
        return p.stdout


class DryRunGitClient(GitClient):
    """A no-op Git client for smoke testing without network or git state."""

    def clone_shallow(self, *, url: str, ref: str, dest: Path) -> None:  # type: ignore[override]
        dest.mkdir(parents=True, exist_ok=True)

    def head_commit(self, *, cwd: Path) -> str:  # type: ignore[override]
        return "DRYRUN"
