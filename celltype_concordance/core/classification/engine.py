"""Classification engine (Stage D).

Normalizes the retained cells, runs each configured classifier run
through the injected predictor and attaches the predicted labels.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pandas as pd
import scanpy as sc

from ...config import ClassificationConfig, ClassifierRunConfig
from ..cells import PREDICTED_LABEL, CellTable
from .base import LabelPredictor, attach_predictions, prediction_summary
from .reference import ReferencePanel
from .singler_backend import SingleRPredictor


@dataclass
class ClassificationResult:
    """Result from one classifier run.

    Attributes
    ----------
    run_name : str
        Classifier run name
    cells : CellTable
        Retained cells with ``predicted_label``
    label_counts : Dict[str, int]
        Cells per predicted label, no-calls included
    """

    run_name: str
    cells: CellTable
    label_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def n_cells(self) -> int:
        return len(self.cells)

    @property
    def n_no_call(self) -> int:
        return int(self.cells.column(PREDICTED_LABEL).isna().sum())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for reporting."""
        return {
            "run_name": self.run_name,
            "n_cells": self.n_cells,
            "n_no_call": self.n_no_call,
            "label_counts": dict(self.label_counts),
        }


class ClassificationEngine:
    """Run reference classification over the retained cells.

    Parameters
    ----------
    config : ClassificationConfig, optional
        Classification configuration
    predictor : LabelPredictor, optional
        Classifier; defaults to :class:`SingleRPredictor`
    reference : ReferencePanel, optional
        Reference panel; fetched from celldex on first use when omitted
    counts_layer : str
        Layer with raw counts to normalize
    logger : logging.Logger, optional
        Logger instance

    Example
    -------
    >>> engine = ClassificationEngine(predictor=StaticPredictor(labels))
    >>> results = engine.run_all(qc_result.adata, qc_result.retained)
    >>> results["tuned"].n_no_call
    """

    def __init__(
        self,
        config: Optional[ClassificationConfig] = None,
        predictor: Optional[LabelPredictor] = None,
        reference: Optional[ReferencePanel] = None,
        counts_layer: str = "counts",
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or ClassificationConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.predictor = predictor or SingleRPredictor(
            num_threads=self.config.num_threads, logger=self.logger
        )
        self.reference = reference
        self.counts_layer = counts_layer

    def resolve_reference(self) -> Optional[ReferencePanel]:
        """Return the reference panel, fetching it for SingleR if needed."""
        if self.reference is None and isinstance(self.predictor, SingleRPredictor):
            self.logger.info(
                "Fetching reference '%s' (%s)",
                self.config.reference, self.config.reference_version,
            )
            self.reference = ReferencePanel.from_celldex(
                self.config.reference,
                self.config.reference_version,
                self.config.label_column,
            )
        return self.reference

    def prepare_matrix(self, adata):
        """Library-size normalize and log1p-transform a copy of the counts."""
        adata = adata.copy()
        if self.counts_layer in adata.layers:
            adata.X = adata.layers[self.counts_layer].copy()
        sc.pp.normalize_total(adata, target_sum=self.config.target_sum)
        sc.pp.log1p(adata)
        return adata

    def classify(
        self,
        adata,
        cells: CellTable,
        run: ClassifierRunConfig,
        normalized: bool = False,
    ) -> ClassificationResult:
        """Run one classifier configuration.

        Parameters
        ----------
        adata : AnnData
            Matrix restricted to ``cells``
        cells : CellTable
            Retained cells
        run : ClassifierRunConfig
            Classifier options
        normalized : bool
            Whether ``adata`` is already normalized

        Returns
        -------
        ClassificationResult
            New cell table with predictions attached
        """
        if not normalized:
            adata = self.prepare_matrix(adata)
        predictions = self.predictor.predict(adata, self.resolve_reference(), run)
        labelled = attach_predictions(
            cells, predictions, strict=self.config.strict, log=self.logger
        )
        result = ClassificationResult(
            run_name=run.name,
            cells=labelled,
            label_counts=prediction_summary(labelled),
        )
        self.logger.info(
            "Run '%s' (prune=%s, quantile=%.2f): %d cells, %d no-calls",
            run.name, run.prune, run.quantile, result.n_cells, result.n_no_call,
        )
        return result

    def _no_cells(self, cells: CellTable, run: ClassifierRunConfig) -> ClassificationResult:
        empty = pd.Series([], index=pd.Index([], name="cell_id"), dtype=object)
        return ClassificationResult(
            run_name=run.name,
            cells=cells.with_columns(**{PREDICTED_LABEL: empty}),
        )

    def run_all(
        self,
        adata,
        cells: CellTable,
        runs: Optional[List[ClassifierRunConfig]] = None,
    ) -> Dict[str, ClassificationResult]:
        """Run classifier configurations on one normalized matrix.

        Parameters
        ----------
        adata : AnnData
            Matrix restricted to ``cells``
        cells : CellTable
            Retained cells
        runs : List[ClassifierRunConfig], optional
            Runs to evaluate (default: all configured)

        Returns
        -------
        Dict[str, ClassificationResult]
            Result per run name. With no retained cells the predictor is
            not called and every result is empty.
        """
        runs = runs if runs is not None else self.config.runs
        if len(cells) == 0:
            self.logger.warning(
                "No cells carry a published label; skipping classification"
            )
            return {run.name: self._no_cells(cells, run) for run in runs}

        normalized = self.prepare_matrix(adata)
        return {
            run.name: self.classify(normalized, cells, run, normalized=True)
            for run in runs
        }
