"""Reference panels consumed by the label predictors."""

from dataclasses import dataclass, field
from typing import Any, List, Optional

import numpy as np

from ...exceptions import InputValidationError


@dataclass
class ReferencePanel:
    """Labelled reference expression profiles.

    Attributes
    ----------
    name : str
        Panel name (e.g. "blueprint_encode")
    data : Any
        Genes x reference cells log-expression matrix, or a
        SummarizedExperiment the backend accepts directly
    features : List[str]
        Gene names for the rows of ``data``
    labels : List[str]
        Label of each reference cell
    version : str, optional
        Panel version
    """

    name: str
    data: Any
    features: List[str] = field(default_factory=list)
    labels: List[str] = field(default_factory=list)
    version: Optional[str] = None

    def __post_init__(self) -> None:
        n_ref = self.n_reference_cells
        if n_ref is not None and len(self.labels) != n_ref:
            raise InputValidationError(
                f"Reference '{self.name}' has {n_ref} profiles but {len(self.labels)} labels"
            )

    @property
    def n_reference_cells(self) -> Optional[int]:
        shape = getattr(self.data, "shape", None)
        return int(shape[1]) if shape is not None else None

    @property
    def label_set(self) -> List[str]:
        return sorted(set(self.labels))

    @classmethod
    def from_celldex(
        cls,
        name: str = "blueprint_encode",
        version: str = "2024-02-26",
        label_column: str = "label.main",
    ) -> "ReferencePanel":
        """Fetch a panel from celldex.

        Raises
        ------
        RuntimeError
            If celldex is not installed
        """
        try:
            import celldex
        except ImportError as e:
            raise RuntimeError(
                "Reference download requires celldex. Install with: "
                "pip install 'celltype-concordance[singler]'"
            ) from e

        ref = celldex.fetch_reference(name, version, realize_assays=True)
        labels = [str(label) for label in ref.get_column_data().column(label_column)]
        features = [str(gene) for gene in ref.get_row_names()]
        return cls(
            name=name,
            data=ref.assay("logcounts"),
            features=features,
            labels=labels,
            version=version,
        )

    @classmethod
    def from_anndata(
        cls,
        adata,
        label_key: str,
        name: str = "custom",
        layer: Optional[str] = None,
    ) -> "ReferencePanel":
        """Build a panel from a cells x genes AnnData with a label column."""
        if label_key not in adata.obs.columns:
            raise InputValidationError(f"Reference label column '{label_key}' not in obs")
        X = adata.layers[layer] if layer else adata.X
        if hasattr(X, "toarray"):
            X = X.toarray()
        return cls(
            name=name,
            data=np.asarray(X, dtype=float).T,
            features=[str(g) for g in adata.var_names],
            labels=[str(label) for label in adata.obs[label_key]],
        )
