"""Data loading for the concordance pipeline (Stage A).

Loads a 10x Genomics count matrix into AnnData and the published
annotation CSV into a DataFrame, with validation.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd
import scanpy as sc

from ..config import IngestConfig
from ..exceptions import InputValidationError

PathLike = Union[str, Path]


@dataclass
class IngestResult:
    """Result from loading one sample.

    Attributes
    ----------
    adata : AnnData
        Cells x genes counts, genes already filtered by detection
    annotations : pd.DataFrame
        Published annotation table
    n_genes_loaded : int
        Genes in the raw matrix
    n_genes_kept : int
        Genes left after the min-cells filter
    issues : List[str]
        Non-fatal problems found while loading
    """

    adata: Any
    annotations: pd.DataFrame
    n_genes_loaded: int = 0
    n_genes_kept: int = 0
    issues: List[str] = field(default_factory=list)

    @property
    def n_cells(self) -> int:
        return int(self.adata.n_obs)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for reporting."""
        return {
            "n_cells": self.n_cells,
            "n_genes_loaded": self.n_genes_loaded,
            "n_genes_kept": self.n_genes_kept,
            "n_annotations": len(self.annotations),
            "issues": ";".join(self.issues) if self.issues else "",
        }


class DataLoader:
    """Loader for the count matrix and the published annotations.

    Parameters
    ----------
    config : IngestConfig, optional
        Loader configuration
    logger : logging.Logger, optional
        Logger instance

    Example
    -------
    >>> loader = DataLoader(IngestConfig(min_cells_per_gene=5))
    >>> result = loader.load("filtered_feature_bc_matrix/", "annotations.csv")
    >>> result.adata.n_obs
    """

    def __init__(
        self,
        config: Optional[IngestConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or IngestConfig()
        self.logger = logger or logging.getLogger(__name__)

    def read_matrix(self, path: PathLike):
        """Read a 10x matrix directory or ``.h5`` file without filtering.

        Parameters
        ----------
        path : PathLike
            Directory holding matrix/features/barcodes, or an HDF5 file

        Returns
        -------
        AnnData
            Cells x genes raw counts
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Count matrix not found: {path}")

        if path.is_file() and path.suffix == ".h5":
            adata = sc.read_10x_h5(str(path))
        else:
            adata = sc.read_10x_mtx(path, var_names=self.config.var_names, cache=False)

        adata.var_names_make_unique()
        if adata.n_obs == 0:
            raise InputValidationError(f"Count matrix has no cells: {path}")
        return adata

    def filter_genes(self, adata):
        """Drop genes detected in fewer than ``min_cells_per_gene`` cells.

        Returns a new AnnData; the input is left unchanged.
        """
        adata = adata.copy()
        sc.pp.filter_genes(adata, min_cells=self.config.min_cells_per_gene)
        return adata

    def prepare(self, adata):
        """Gene-filter a raw matrix and keep its counts in ``layers[counts_layer]``.

        An existing counts layer is kept as is.
        """
        n_loaded = adata.n_vars
        adata = self.filter_genes(adata)
        if self.config.counts_layer not in adata.layers:
            adata.layers[self.config.counts_layer] = adata.X.copy()
        self.logger.debug(
            "Kept %d/%d genes detected in >= %d cells",
            adata.n_vars, n_loaded, self.config.min_cells_per_gene,
        )
        return adata

    def load_matrix(self, path: PathLike):
        """Read and gene-filter the count matrix."""
        return self.prepare(self.read_matrix(path))

    def load_annotations(self, path: PathLike) -> pd.DataFrame:
        """Load the published annotation CSV.

        Parameters
        ----------
        path : PathLike
            Path to CSV file

        Returns
        -------
        pd.DataFrame
            Annotation rows in file order, identifier and label as strings

        Raises
        ------
        InputValidationError
            If the identifier or label column is missing
        """
        df = pd.read_csv(path)
        id_col = self.config.annotation_id_col
        label_col = self.config.annotation_label_col

        missing = [col for col in (id_col, label_col) if col not in df.columns]
        if missing:
            raise InputValidationError(
                f"Annotation table {path} missing columns: {missing}"
            )

        n_unlabeled = int(df[label_col].isna().sum())
        if n_unlabeled:
            self.logger.warning(
                "Dropping %d annotation rows without a '%s' value", n_unlabeled, label_col
            )
            df = df[df[label_col].notna()]

        df = df.reset_index(drop=True)
        df[id_col] = df[id_col].astype(str)
        df[label_col] = df[label_col].astype(str)
        return df

    def load(self, matrix_path: PathLike, annotation_path: PathLike) -> IngestResult:
        """Load the matrix and the annotation table for one sample."""
        return self.from_data(
            self.read_matrix(matrix_path), self.load_annotations(annotation_path)
        )

    def from_data(self, raw, annotations: pd.DataFrame) -> IngestResult:
        """Prepare an in-memory raw matrix and annotation table.

        Parameters
        ----------
        raw : AnnData
            Cells x genes raw counts
        annotations : pd.DataFrame
            Published annotation rows

        Returns
        -------
        IngestResult
            Gene-filtered matrix, annotations and any ingestion issues
        """
        missing = [
            col
            for col in (self.config.annotation_id_col, self.config.annotation_label_col)
            if col not in annotations.columns
        ]
        if missing:
            raise InputValidationError(f"Annotation table missing columns: {missing}")

        n_loaded = raw.n_vars
        adata = self.prepare(raw)
        result = IngestResult(
            adata=adata,
            annotations=annotations,
            n_genes_loaded=n_loaded,
            n_genes_kept=adata.n_vars,
        )

        if adata.n_vars == 0:
            result.issues.append("no_genes_after_filter")
        if annotations.empty:
            result.issues.append("annotations_empty")
        n_dup_ids = int(annotations[self.config.annotation_id_col].duplicated().sum())
        if n_dup_ids:
            result.issues.append(f"duplicate_annotation_ids:{n_dup_ids}")

        self.logger.info(
            "Loaded %d cells x %d genes (%d before gene filter), %d annotation rows",
            result.n_cells, result.n_genes_kept, n_loaded, len(annotations),
        )
        for issue in result.issues:
            self.logger.warning("Ingestion issue: %s", issue)
        return result
