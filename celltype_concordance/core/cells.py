"""Per-cell record collection shared by every pipeline stage.

A :class:`CellTable` wraps a pandas DataFrame indexed by cell id. Stages
never modify a table they receive; they return a new table built with
:meth:`CellTable.with_columns` or :meth:`CellTable.subset`.
"""

from dataclasses import dataclass, fields
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

# Column names
CELL_ID = "cell_id"
FEATURE_COUNT = "feature_count"
TOTAL_COUNT = "total_count"
MITO_FRACTION = "mito_fraction"
PUBLISHED_LABEL = "published_label"
PREDICTED_LABEL = "predicted_label"
COARSE_PUBLISHED = "coarse_published"
COARSE_PREDICTED = "coarse_predicted"

QC_COLUMNS = [FEATURE_COUNT, TOTAL_COUNT, MITO_FRACTION]

# Label values
UNLABELED = "unlabeled"
MALIGNANT = "malignant"
STROMAL = "stromal"
COARSE_CLASSES = (MALIGNANT, STROMAL)


@dataclass(frozen=True)
class CellRecord:
    """One sequenced cell.

    Attributes
    ----------
    cell_id : str
        ``<barcode>-<suffix>`` identifier, unique within the sample
    feature_count : int
        Number of genes with a non-zero count
    total_count : int
        Sum of all gene counts
    mito_fraction : float
        Fraction of ``total_count`` from mitochondrial genes
    published_label : str
        Published cell type, or ``"unlabeled"``
    predicted_label : str, optional
        Classifier label; None is a no-call
    coarse_published : str, optional
        "malignant" or "stromal" from the published label
    coarse_predicted : str, optional
        "malignant" or "stromal" from the predicted label
    """

    cell_id: str
    feature_count: int = 0
    total_count: int = 0
    mito_fraction: float = 0.0
    published_label: str = UNLABELED
    predicted_label: Optional[str] = None
    coarse_published: Optional[str] = None
    coarse_predicted: Optional[str] = None


def _clean(value: Any) -> Any:
    """Turn pandas missing values into None and numpy scalars into Python ones."""
    if value is None:
        return None
    if isinstance(value, float) and np.isnan(value):
        return None
    if value is pd.NA:
        return None
    if isinstance(value, np.generic):
        return value.item()
    return value


class CellTable:
    """Immutable collection of :class:`CellRecord` rows.

    Parameters
    ----------
    frame : pd.DataFrame
        Per-cell columns indexed by cell id. The frame is copied.

    Raises
    ------
    ValueError
        If the index contains duplicate cell ids
    """

    def __init__(self, frame: pd.DataFrame):
        frame = frame.copy()
        frame.index = frame.index.astype(str)
        frame.index.name = CELL_ID
        if frame.index.has_duplicates:
            dups = frame.index[frame.index.duplicated()].unique().tolist()
            raise ValueError(f"Duplicate cell ids: {dups[:5]}")
        self._frame = frame

    @classmethod
    def from_records(cls, records: Iterable[CellRecord]) -> "CellTable":
        """Build a table from records."""
        rows = [
            {f.name: getattr(record, f.name) for f in fields(CellRecord)}
            for record in records
        ]
        frame = pd.DataFrame(rows, columns=[f.name for f in fields(CellRecord)])
        return cls(frame.set_index(CELL_ID))

    @classmethod
    def from_cell_ids(cls, cell_ids: Sequence[str]) -> "CellTable":
        """Build an empty-column table holding only cell ids."""
        return cls(pd.DataFrame(index=pd.Index([str(c) for c in cell_ids])))

    @property
    def frame(self) -> pd.DataFrame:
        """Copy of the underlying DataFrame."""
        return self._frame.copy()

    @property
    def cell_ids(self) -> List[str]:
        return self._frame.index.tolist()

    @property
    def columns(self) -> List[str]:
        return self._frame.columns.tolist()

    def __len__(self) -> int:
        return len(self._frame)

    def __contains__(self, cell_id: object) -> bool:
        return cell_id in self._frame.index

    def __repr__(self) -> str:
        return f"CellTable(n_cells={len(self)}, columns={self.columns})"

    def column(self, name: str) -> pd.Series:
        """Copy of one column."""
        if name not in self._frame.columns:
            raise KeyError(f"Column '{name}' not present (have {self.columns})")
        return self._frame[name].copy()

    def has_column(self, name: str) -> bool:
        return name in self._frame.columns

    def with_columns(self, **columns: Union[pd.Series, Any]) -> "CellTable":
        """Return a new table with columns added or replaced.

        Series values are aligned on cell id; ids absent from a Series
        become missing values. Scalars are broadcast.
        """
        frame = self._frame.copy()
        for name, values in columns.items():
            if isinstance(values, pd.Series):
                values = values.copy()
                values.index = values.index.astype(str)
                frame[name] = values.reindex(frame.index)
            else:
                frame[name] = values
        return CellTable(frame)

    def subset(self, selector: Union[pd.Series, Sequence[str]]) -> "CellTable":
        """Return a new table restricted to some cells.

        Parameters
        ----------
        selector : pd.Series or Sequence[str]
            Boolean mask aligned on cell id, or a list of cell ids
        """
        if isinstance(selector, pd.Series) and selector.dtype == bool:
            mask = selector.reindex(self._frame.index, fill_value=False)
            return CellTable(self._frame.loc[mask.to_numpy()])
        ids = [str(c) for c in selector]
        missing = [c for c in ids if c not in self._frame.index]
        if missing:
            raise KeyError(f"Unknown cell ids: {missing[:5]}")
        return CellTable(self._frame.loc[ids])

    def records(self) -> Iterator[CellRecord]:
        """Iterate over rows as :class:`CellRecord` objects."""
        known = [f.name for f in fields(CellRecord) if f.name != CELL_ID]
        present = [name for name in known if name in self._frame.columns]
        # column-wise access keeps each column's dtype (iterrows upcasts ints)
        for row in self._frame.reset_index().to_dict("records"):
            values: Dict[str, Any] = {name: _clean(row[name]) for name in present}
            yield CellRecord(cell_id=str(row[CELL_ID]), **values)

    def to_frame(self) -> pd.DataFrame:
        """DataFrame with ``cell_id`` as a regular column, for export."""
        return self._frame.reset_index()
