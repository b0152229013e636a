"""celltype-concordance: agreement between published and predicted cell types.

This package provides tools for:
- Loading 10x Genomics count matrices with published per-cell annotations
- Reconciling annotation identifiers with matrix barcodes
- Per-cell QC statistics and a label-presence filter
- Reference-based classification (SingleR) behind a pluggable predictor
- Coarse malignant/stromal re-labeling and concordance tables

Example usage:
    >>> from celltype_concordance.config import ConcordanceConfig
    >>> from celltype_concordance.pipeline import ConcordancePipeline
    >>>
    >>> pipeline = ConcordancePipeline(ConcordanceConfig.default())
    >>> result = pipeline.run("filtered_feature_bc_matrix/", "annotations.csv")
    >>> result.reports["tuned"].coarse
"""

__version__ = "0.1.0"
