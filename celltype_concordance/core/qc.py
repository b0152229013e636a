"""Cell-level QC statistics and label-presence filtering (Stage C).

Per-cell feature count, total count and mitochondrial fraction are
computed from the raw counts. The executed filter keeps exactly the cells
that carry a published label. The numeric count and mitochondrial bounds
in :class:`~celltype_concordance.config.QCConfig` are reported for
inspection and are not applied.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd
from scipy import sparse

from ..config import QCConfig
from .cells import (
    FEATURE_COUNT,
    MITO_FRACTION,
    PUBLISHED_LABEL,
    TOTAL_COUNT,
    UNLABELED,
    CellTable,
)

THRESHOLD_KEYS = [
    "below_min_counts",
    "above_max_counts",
    "above_max_mito_fraction",
    "outside_any",
]


def mito_gene_mask(gene_names, prefix: str = "mt-") -> np.ndarray:
    """Boolean mask of mitochondrial genes (case-sensitive prefix match)."""
    names = pd.Index(gene_names).astype(str)
    return np.asarray(names.str.startswith(prefix), dtype=bool)


def compute_qc_stats(adata, mito_prefix: str = "mt-", layer: Optional[str] = None) -> pd.DataFrame:
    """Compute per-cell QC statistics from raw counts.

    Parameters
    ----------
    adata : AnnData
        Cells x genes counts (dense or scipy sparse)
    mito_prefix : str
        Case-sensitive prefix of mitochondrial gene names
    layer : str, optional
        Layer to read instead of ``X``

    Returns
    -------
    pd.DataFrame
        ``feature_count``, ``total_count`` and ``mito_fraction`` indexed
        by cell id. ``mito_fraction`` is 0 for cells with no counts.
    """
    X = adata.layers[layer] if layer else adata.X
    mito_mask = mito_gene_mask(adata.var_names, mito_prefix)

    if sparse.issparse(X):
        X = sparse.csr_matrix(X)
        feature_count = np.asarray((X > 0).sum(axis=1)).ravel()
        total = np.asarray(X.sum(axis=1)).ravel()
        mito = np.asarray(X[:, mito_mask].sum(axis=1)).ravel()
    else:
        X = np.asarray(X)
        feature_count = (X > 0).sum(axis=1)
        total = X.sum(axis=1)
        mito = X[:, mito_mask].sum(axis=1)

    total = total.astype(float)
    fraction = np.zeros(len(total), dtype=float)
    nonzero = total > 0
    fraction[nonzero] = mito[nonzero] / total[nonzero]

    return pd.DataFrame(
        {
            FEATURE_COUNT: feature_count.astype(np.int64),
            TOTAL_COUNT: np.rint(total).astype(np.int64),
            MITO_FRACTION: np.clip(fraction, 0.0, 1.0),
        },
        index=pd.Index(adata.obs_names.astype(str), name="cell_id"),
    )


def filter_labeled(table: CellTable, unlabeled: str = UNLABELED) -> CellTable:
    """Keep the cells whose published label is not the sentinel."""
    labels = table.column(PUBLISHED_LABEL)
    return table.subset(labels.notna() & (labels != unlabeled))


def summarize_thresholds(table: CellTable, config: Optional[QCConfig] = None) -> Dict[str, int]:
    """Count cells outside the inspection bounds.

    Nothing is removed; the counts describe what a threshold filter would
    have done.
    """
    config = config or QCConfig()
    total = table.column(TOTAL_COUNT)
    mito = table.column(MITO_FRACTION)

    flags = pd.DataFrame(
        {
            "below_min_counts": total < config.min_counts,
            "above_max_counts": total > config.max_counts,
            "above_max_mito_fraction": mito > config.max_mito_fraction,
        }
    )
    flags["outside_any"] = flags.any(axis=1)

    report = {key: int(flags[key].sum()) for key in THRESHOLD_KEYS}
    report["n_cells"] = len(table)
    return report


@dataclass
class QCResult:
    """Result from QC filtering one sample.

    Attributes
    ----------
    cells_total : int
        Cells before filtering
    cells_retained : int
        Cells with a published label
    retained : CellTable
        Retained cells with all derived columns carried over
    adata : AnnData
        Column subset of the input matrix for the retained cells
    threshold_report : Dict[str, int]
        Cells outside each inspection bound, over all cells
    """

    cells_total: int = 0
    cells_retained: int = 0
    retained: Optional[CellTable] = None
    adata: Any = None
    threshold_report: Dict[str, int] = field(default_factory=dict)

    @property
    def cells_removed(self) -> int:
        return self.cells_total - self.cells_retained

    @property
    def removal_fraction(self) -> float:
        return self.cells_removed / self.cells_total if self.cells_total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for reporting."""
        result: Dict[str, Any] = {
            "cells_total": self.cells_total,
            "cells_retained": self.cells_retained,
            "cells_removed": self.cells_removed,
            "removal_fraction": round(self.removal_fraction, 4),
        }
        for key in THRESHOLD_KEYS:
            result[f"guide_{key}"] = self.threshold_report.get(key, 0)
        return result


class CellQC:
    """QC statistics and label-presence filter.

    Parameters
    ----------
    config : QCConfig, optional
        QC configuration
    unlabeled : str
        Published-label sentinel for cells without an annotation
    logger : logging.Logger, optional
        Logger instance

    Example
    -------
    >>> qc = CellQC(QCConfig(mito_prefix="mt-"))
    >>> cells = qc.compute_stats(adata)
    >>> result = qc.filter_sample(adata, cells.with_columns(published_label=labels))
    """

    def __init__(
        self,
        config: Optional[QCConfig] = None,
        unlabeled: str = UNLABELED,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or QCConfig()
        self.unlabeled = unlabeled
        self.logger = logger or logging.getLogger(__name__)

    def compute_stats(self, adata, layer: Optional[str] = None) -> CellTable:
        """Per-cell QC statistics as a new :class:`CellTable`."""
        stats = compute_qc_stats(adata, self.config.mito_prefix, layer=layer)
        n_mito = int(mito_gene_mask(adata.var_names, self.config.mito_prefix).sum())
        if n_mito == 0:
            self.logger.warning(
                "No genes start with '%s'; mitochondrial fraction is 0 for every cell",
                self.config.mito_prefix,
            )
        return CellTable(stats)

    def filter_sample(self, adata, table: CellTable) -> QCResult:
        """Keep labeled cells and subset the matrix to them.

        Parameters
        ----------
        adata : AnnData
            Matrix whose cells are the rows of ``table``
        table : CellTable
            Cells with QC statistics and published labels

        Returns
        -------
        QCResult
            Retained cells and the matching matrix subset
        """
        result = QCResult(cells_total=len(table))
        result.threshold_report = summarize_thresholds(table, self.config)

        retained = filter_labeled(table, self.unlabeled)
        result.retained = retained
        result.cells_retained = len(retained)
        # boolean mask: an empty id list is not a valid AnnData index
        keep = adata.obs_names.astype(str).isin(retained.cell_ids)
        result.adata = adata[keep].copy()

        self.logger.info(
            "Kept %d/%d cells with a published label", result.cells_retained, result.cells_total
        )
        self.logger.info(
            "Guide bounds (not applied): %d cells < %d counts, %d > %d counts, "
            "%d above %.0f%% mitochondrial",
            result.threshold_report["below_min_counts"], self.config.min_counts,
            result.threshold_report["above_max_counts"], self.config.max_counts,
            result.threshold_report["above_max_mito_fraction"],
            self.config.max_mito_fraction * 100,
        )
        return result
