"""Module entrypoint for ``python -m depimpact``.

A thin wrapper around :func:`depimpact.cli.main`: argument parsing and the run itself live in
the CLI module, and its return code becomes the process exit status via ``SystemExit``.
"""

from __future__ import annotations

from .cli import main

if __name__ == "__main__":
    raise SystemExit(main())
