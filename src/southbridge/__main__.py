"""Module entrypoint for `python -m southbridge`."""

from __future__ import annotations

from southbridge.cli import run

if __name__ == "__main__":
    raise SystemExit(run())
