"""Command-line interface for celltype-concordance.

Example Usage
-------------
    # From command line:
    celltype-concordance --help
    celltype-concordance run --matrix data/ --annotations ann.csv --out out/
    celltype-concordance reconcile --matrix data/ --annotations ann.csv
    celltype-concordance rewrite 1_x_E13bm_AACCTTGG
"""

from .main import cli, main

__all__ = [
    "cli",
    "main",
]
