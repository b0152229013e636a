"""CSV output for concordance tables and per-cell records."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Union

import pandas as pd

PathLike = Union[str, Path]


def ensure_output_dir(path: PathLike) -> Path:
    """Create the directory at path if it does not exist and return it."""
    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def write_dataframe(df: pd.DataFrame, path: PathLike, *, index: bool = False) -> Path:
    """Write DataFrame to path ensuring the parent directory exists.

    Parameters
    ----------
    df : pd.DataFrame
        DataFrame to write.
    path : PathLike
        Output path.
    index : bool
        Whether to write row index (default: False).

    Returns
    -------
    Path
        The output path.
    """
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, index=index)
    return output_path


def write_concordance(report, out_dir: PathLike) -> Dict[str, Path]:
    """Write the coarse and fine tables of a ConcordanceReport.

    Returns
    -------
    Dict[str, Path]
        "coarse" and "fine" output paths
    """
    out_dir = ensure_output_dir(out_dir)
    return {
        "coarse": write_dataframe(
            report.coarse, out_dir / f"concordance_{report.run_name}_coarse.csv", index=True
        ),
        "fine": write_dataframe(
            report.fine, out_dir / f"concordance_{report.run_name}_fine.csv", index=True
        ),
    }


def write_cells(cells, path: PathLike) -> Path:
    """Write a CellTable with ``cell_id`` as the first column."""
    return write_dataframe(cells.to_frame(), path, index=False)
