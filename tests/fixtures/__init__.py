"""Test fixtures for celltype-concordance.

Provides synthetic count data generators and test utilities.
"""

from .mock_counts import (
    MITO_GENES,
    RARE_GENE,
    SAMPLE_PREDICTED,
    SAMPLE_PUBLISHED,
    create_annotation_frame,
    create_count_adata,
    create_sample,
    make_barcodes,
    write_10x_mtx,
)

__all__ = [
    "MITO_GENES",
    "RARE_GENE",
    "SAMPLE_PREDICTED",
    "SAMPLE_PUBLISHED",
    "create_annotation_frame",
    "create_count_adata",
    "create_sample",
    "make_barcodes",
    "write_10x_mtx",
]
