"""Label predictor interface and prediction attachment.

Classifiers are injected: the pipeline only needs an object with
``predict(adata, reference, options)`` returning one label per cell id,
with None marking a no-call.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

import pandas as pd

from ...config import ClassifierRunConfig
from ...exceptions import ClassifierContractError, InputValidationError
from ..cells import PREDICTED_LABEL, CellTable
from .reference import ReferencePanel

# Backend strings meaning "no label"
NO_CALL_TOKENS = frozenset({"", "NA", "NaN", "nan", "None"})

logger = logging.getLogger(__name__)


def normalize_no_calls(predictions: pd.Series) -> pd.Series:
    """Replace missing values and NA-like strings with None."""
    values = [
        None if (pd.isna(value) or str(value) in NO_CALL_TOKENS) else str(value)
        for value in predictions.tolist()
    ]
    index = pd.Index(predictions.index.astype(str), name="cell_id")
    return pd.Series(values, index=index, dtype=object, name=PREDICTED_LABEL)


class LabelPredictor(ABC):
    """Abstract reference-based label predictor.

    Subclasses implement :meth:`predict`. Cells the predictor cannot call
    must be present in the output with a None value; cells absent from
    the output are treated as a contract violation.
    """

    name: str = "base"

    @abstractmethod
    def predict(
        self,
        adata,
        reference: Optional[ReferencePanel],
        options: ClassifierRunConfig,
    ) -> pd.Series:
        """Predict a label for every cell of ``adata``.

        Parameters
        ----------
        adata : AnnData
            Normalized cells x genes expression
        reference : ReferencePanel, optional
            Labelled reference profiles
        options : ClassifierRunConfig
            Pruning and scoring options

        Returns
        -------
        pd.Series
            Label per cell id; None is a no-call
        """


class StaticPredictor(LabelPredictor):
    """Predictor returning a fixed cell id -> label mapping.

    Used with precomputed classifier output and in tests. Cells missing
    from the mapping are left out of the prediction.

    Parameters
    ----------
    labels : Mapping[str, Optional[str]]
        Label per cell id
    """

    name = "static"

    def __init__(self, labels: Mapping[str, Optional[str]]):
        self.labels = {str(k): v for k, v in labels.items()}

    @classmethod
    def from_csv(
        cls,
        path: Union[str, Path],
        id_col: str = "cell_id",
        label_col: str = "predicted_label",
    ) -> "StaticPredictor":
        """Load precomputed predictions from a CSV file."""
        df = pd.read_csv(path, keep_default_na=True)
        missing = [col for col in (id_col, label_col) if col not in df.columns]
        if missing:
            raise InputValidationError(f"Prediction table {path} missing columns: {missing}")
        series = pd.Series(df[label_col].tolist(), index=df[id_col].astype(str))
        return cls(normalize_no_calls(series).to_dict())

    def predict(self, adata, reference, options) -> pd.Series:
        cell_ids = [c for c in adata.obs_names.astype(str) if c in self.labels]
        return pd.Series(
            [self.labels[c] for c in cell_ids],
            index=pd.Index(cell_ids, name="cell_id"),
            dtype=object,
        )


def attach_predictions(
    table: CellTable,
    predictions: pd.Series,
    strict: bool = True,
    log: Optional[logging.Logger] = None,
) -> CellTable:
    """Join predicted labels onto cells by cell id.

    Parameters
    ----------
    table : CellTable
        Retained cells
    predictions : pd.Series
        Label per cell id (None or NA = no-call)
    strict : bool
        Raise when a cell has no prediction; otherwise attach a no-call

    Returns
    -------
    CellTable
        New table with a ``predicted_label`` column

    Raises
    ------
    ClassifierContractError
        If ``strict`` and a retained cell is missing from ``predictions``
    """
    log = log or logger
    predictions = normalize_no_calls(predictions)
    if predictions.index.has_duplicates:
        raise ClassifierContractError(
            predictions.index[predictions.index.duplicated()].unique().tolist(),
            message="returned more than one prediction for",
        )

    missing = [c for c in table.cell_ids if c not in predictions.index]
    if missing:
        if strict:
            raise ClassifierContractError(missing)
        log.warning(
            "%d retained cell(s) missing from classifier output; recorded as no-call",
            len(missing),
        )

    extra = predictions.index.difference(pd.Index(table.cell_ids))
    if len(extra):
        log.debug("Ignoring %d prediction(s) for cells outside the table", len(extra))

    aligned = predictions.reindex(pd.Index(table.cell_ids))
    aligned = pd.Series(
        [None if pd.isna(value) else value for value in aligned.tolist()],
        index=aligned.index,
        dtype=object,
    )
    return table.with_columns(**{PREDICTED_LABEL: aligned})


def prediction_summary(table: CellTable) -> Dict[str, int]:
    """Label counts including no-calls, most frequent first."""
    labels = table.column(PREDICTED_LABEL)
    counts = labels.fillna("<no call>").value_counts()
    return {str(label): int(n) for label, n in counts.items()}
