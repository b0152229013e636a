"""SingleR reference classification via the BiocPy ``singler`` package."""

import logging
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from ...config import ClassifierRunConfig
from ...exceptions import InputValidationError
from .base import LabelPredictor
from .reference import ReferencePanel

# Scale factor turning a MAD into a normal-consistent standard deviation
MAD_SCALE = 1.4826


def prune_delta_outliers(
    labels: Sequence[Optional[str]],
    deltas: Sequence[float],
    nmads: float = 3.0,
) -> List[Optional[str]]:
    """Replace low-confidence assignments with no-calls.

    Confidence is the ``delta`` column of ``singler.annotate_single``: the
    gap between the best and the second-best label score after
    fine-tuning. This is not the max-minus-median score gap that R
    SingleR's ``pruneScores`` uses, so pruned sets can differ from R
    output. Within each assigned label, a cell is pruned when its delta
    lies more than ``nmads`` scaled MADs below the label's median delta.
    Missing or negative deltas are always pruned.

    Parameters
    ----------
    labels : Sequence[str]
        Best label per cell
    deltas : Sequence[float]
        Delta per cell
    nmads : float
        Outlier width in MADs

    Returns
    -------
    List[Optional[str]]
        Labels with pruned cells set to None
    """
    labels = list(labels)
    deltas = np.asarray(deltas, dtype=float)
    if len(labels) != len(deltas):
        raise ValueError(f"{len(labels)} labels but {len(deltas)} deltas")

    keep = np.isfinite(deltas) & (deltas >= 0)
    label_array = np.asarray([str(label) for label in labels], dtype=object)
    for label in pd.unique(label_array):
        in_label = (label_array == label) & keep
        if not in_label.any():
            continue
        values = deltas[in_label]
        median = float(np.median(values))
        mad = float(np.median(np.abs(values - median))) * MAD_SCALE
        keep &= ~((label_array == label) & (deltas < median - nmads * mad))

    return [label if k else None for label, k in zip(labels, keep)]


class SingleRPredictor(LabelPredictor):
    """Spearman-correlation reference classifier (SingleR).

    Parameters
    ----------
    num_threads : int
        Threads for the singler backend
    logger : logging.Logger, optional
        Logger instance

    Example
    -------
    >>> reference = ReferencePanel.from_celldex("blueprint_encode")
    >>> predictor = SingleRPredictor(num_threads=4)
    >>> labels = predictor.predict(adata, reference, ClassifierRunConfig(prune=True))
    """

    name = "singler"

    def __init__(self, num_threads: int = 1, logger: Optional[logging.Logger] = None):
        self.num_threads = num_threads
        self.logger = logger or logging.getLogger(__name__)

    def _import_backend(self):
        try:
            import singler
        except ImportError as e:
            raise RuntimeError(
                "Reference classification requires singler. Install with: "
                "pip install 'celltype-concordance[singler]'"
            ) from e
        return singler

    def predict(
        self,
        adata,
        reference: Optional[ReferencePanel],
        options: ClassifierRunConfig,
    ) -> pd.Series:
        if reference is None:
            raise InputValidationError("SingleR needs a reference panel")
        singler = self._import_backend()

        test_features = [str(g) for g in adata.var_names]
        shared = len(set(test_features) & set(reference.features))
        self.logger.info(
            "SingleR run '%s': %d cells, %d genes shared with reference '%s' (%d labels)",
            options.name, adata.n_obs, shared, reference.name, len(reference.label_set),
        )
        if shared == 0:
            raise InputValidationError(
                f"No genes shared between the sample and reference '{reference.name}'"
            )

        results = singler.annotate_single(
            test_data=adata.X.T,
            test_features=test_features,
            ref_data=reference.data,
            ref_labels=reference.labels,
            ref_features=reference.features,
            classify_args={
                "quantile": options.quantile,
                "use_fine_tune": options.fine_tune,
                "fine_tune_threshold": options.fine_tune_threshold,
            },
            num_threads=self.num_threads,
        )

        labels: List[Optional[str]] = [str(label) for label in results.column("best")]
        if options.prune:
            deltas = np.asarray(results.column("delta"), dtype=float)
            labels = prune_delta_outliers(labels, deltas, nmads=options.nmads)
            n_pruned = sum(1 for label in labels if label is None)
            self.logger.info("Pruned %d/%d low-confidence calls", n_pruned, len(labels))

        return pd.Series(
            labels,
            index=pd.Index(adata.obs_names.astype(str), name="cell_id"),
            dtype=object,
        )
