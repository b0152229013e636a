"""Coarse malignant/stromal re-labeling (Stage E).

Each label source has exactly one fine label counted as malignant; every
other value, a no-call included, is stromal.
"""

from typing import Optional

import pandas as pd

from ..config import RelabelConfig
from .cells import (
    COARSE_PREDICTED,
    COARSE_PUBLISHED,
    MALIGNANT,
    PREDICTED_LABEL,
    PUBLISHED_LABEL,
    STROMAL,
    CellTable,
)


def coarse_label(label: Optional[str], malignant_label: str) -> str:
    """Map a fine label to "malignant" or "stromal".

    >>> coarse_label("MTCs", "MTCs")
    'malignant'
    >>> coarse_label(None, "Melanocytes")
    'stromal'
    """
    if label is None or (pd.api.types.is_scalar(label) and pd.isna(label)):
        return STROMAL
    return MALIGNANT if label == malignant_label else STROMAL


def coarse_labels(labels: pd.Series, malignant_label: str) -> pd.Series:
    """Vectorised :func:`coarse_label`."""
    return pd.Series(
        [coarse_label(label, malignant_label) for label in labels.tolist()],
        index=labels.index,
        dtype=object,
    )


def relabel(table: CellTable, config: Optional[RelabelConfig] = None) -> CellTable:
    """Add ``coarse_published`` and ``coarse_predicted`` to a new table.

    Parameters
    ----------
    table : CellTable
        Cells with ``published_label`` and ``predicted_label``
    config : RelabelConfig, optional
        Malignant label of each source

    Returns
    -------
    CellTable
        New table with both coarse columns
    """
    config = config or RelabelConfig()
    return table.with_columns(
        **{
            COARSE_PUBLISHED: coarse_labels(
                table.column(PUBLISHED_LABEL), config.published_malignant
            ),
            COARSE_PREDICTED: coarse_labels(
                table.column(PREDICTED_LABEL), config.predicted_malignant
            ),
        }
    )
