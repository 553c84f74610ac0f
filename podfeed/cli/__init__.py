"""podfeed command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``podfeed`` script).
"""

from podfeed.cli.main import cli

__all__ = ["cli"]
