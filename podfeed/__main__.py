"""Entry point for `python -m podfeed`.

Usage:
    python -m podfeed watch
    python -m podfeed serve --port 9090
"""

from __future__ import annotations

from podfeed.cli import cli

cli(prog_name="podfeed")
