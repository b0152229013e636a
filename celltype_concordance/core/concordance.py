"""Concordance tables between published and predicted labels (Stage F).

Two contingency tables are produced per classifier run: coarse
(published x predicted malignant/stromal) and fine (published cell type x
predicted cell type). Rows and columns are in lexicographic order, with
no-calls in a trailing column.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from ..config import OutputConfig
from .cells import (
    COARSE_CLASSES,
    COARSE_PREDICTED,
    COARSE_PUBLISHED,
    PREDICTED_LABEL,
    PUBLISHED_LABEL,
    CellTable,
)

TOTAL_LABEL = "Total"


def _as_labels(values: pd.Series, no_call_label: str) -> List[str]:
    return [no_call_label if pd.isna(value) else str(value) for value in values.tolist()]


def _label_order(labels: Sequence[str], no_call_label: str) -> List[str]:
    present = set(labels)
    order = sorted(present - {no_call_label})
    if no_call_label in present:
        order.append(no_call_label)
    return order


def contingency_table(
    rows: pd.Series,
    cols: pd.Series,
    no_call_label: str = "<no call>",
    row_order: Optional[Sequence[str]] = None,
    col_order: Optional[Sequence[str]] = None,
    margins: bool = False,
) -> pd.DataFrame:
    """Cross-tabulate two label columns.

    Parameters
    ----------
    rows : pd.Series
        Row labels, one per cell
    cols : pd.Series
        Column labels, aligned with ``rows``
    no_call_label : str
        Label shown for missing values
    row_order, col_order : Sequence[str], optional
        Fixed category order; defaults to sorted observed labels
    margins : bool
        Append a "Total" row and column

    Returns
    -------
    pd.DataFrame
        Integer counts; the body sums to ``len(rows)``
    """
    if len(rows) != len(cols):
        raise ValueError(f"Row and column labels differ in length: {len(rows)} vs {len(cols)}")

    row_labels = _as_labels(rows, no_call_label)
    col_labels = _as_labels(cols, no_call_label)
    row_order = list(row_order) if row_order is not None else _label_order(row_labels, no_call_label)
    col_order = list(col_order) if col_order is not None else _label_order(col_labels, no_call_label)

    counts = pd.DataFrame(0, index=pd.Index(row_order), columns=pd.Index(col_order), dtype=np.int64)
    if row_labels:
        observed = (
            pd.DataFrame({"row": row_labels, "col": col_labels})
            .groupby(["row", "col"])
            .size()
            .unstack(fill_value=0)
        )
        counts = counts.add(observed, fill_value=0).reindex(
            index=row_order, columns=col_order, fill_value=0
        )
    counts = counts.fillna(0).astype(np.int64)

    counts.index.name = rows.name
    counts.columns.name = cols.name

    if margins:
        counts[TOTAL_LABEL] = counts.sum(axis=1)
        counts.loc[TOTAL_LABEL] = counts.sum(axis=0)
    return counts


def body_total(table: pd.DataFrame) -> int:
    """Sum of the table body, excluding any margins."""
    body = table.drop(index=TOTAL_LABEL, columns=TOTAL_LABEL, errors="ignore")
    return int(body.to_numpy().sum())


@dataclass
class ConcordanceReport:
    """Concordance tables for one classifier run.

    Attributes
    ----------
    run_name : str
        Classifier run name
    coarse : pd.DataFrame
        coarse_published x coarse_predicted counts
    fine : pd.DataFrame
        published_label x predicted_label counts
    n_cells : int
        Retained cells tabulated
    """

    run_name: str
    coarse: pd.DataFrame
    fine: pd.DataFrame
    n_cells: int = 0

    @property
    def agreement(self) -> float:
        """Fraction of cells whose coarse labels agree."""
        if self.n_cells == 0:
            return 0.0
        agree = sum(
            int(self.coarse.loc[label, label])
            for label in COARSE_CLASSES
            if label in self.coarse.index and label in self.coarse.columns
        )
        return agree / self.n_cells

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for reporting."""
        return {
            "run_name": self.run_name,
            "n_cells": self.n_cells,
            "coarse_agreement": round(self.agreement, 4),
            "coarse": {
                str(row): {str(col): int(v) for col, v in values.items()}
                for row, values in self.coarse.to_dict(orient="index").items()
            },
        }


def build_concordance(
    table: CellTable,
    run_name: str = "default",
    config: Optional[OutputConfig] = None,
) -> ConcordanceReport:
    """Tabulate coarse and fine agreement for relabeled cells."""
    config = config or OutputConfig()
    coarse = contingency_table(
        table.column(COARSE_PUBLISHED),
        table.column(COARSE_PREDICTED),
        no_call_label=config.no_call_label,
        row_order=COARSE_CLASSES,
        col_order=COARSE_CLASSES,
        margins=config.margins,
    )
    fine = contingency_table(
        table.column(PUBLISHED_LABEL),
        table.column(PREDICTED_LABEL),
        no_call_label=config.no_call_label,
        margins=config.margins,
    )
    return ConcordanceReport(run_name=run_name, coarse=coarse, fine=fine, n_cells=len(table))


def format_table(table: pd.DataFrame, title: Optional[str] = None) -> str:
    """Render a contingency table for the console."""
    text = table.to_string()
    if title:
        return f"{title}\n{'-' * len(title)}\n{text}"
    return text
