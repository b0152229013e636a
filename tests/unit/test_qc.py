"""Unit tests for QC statistics and the label-presence filter."""

import logging

import numpy as np
import pandas as pd
import pytest

from celltype_concordance.config import QCConfig
from celltype_concordance.core.cells import (
    MITO_FRACTION,
    PUBLISHED_LABEL,
    TOTAL_COUNT,
    CellTable,
)
from celltype_concordance.core.qc import (
    CellQC,
    compute_qc_stats,
    filter_labeled,
    mito_gene_mask,
    summarize_thresholds,
)


class TestQCStats:
    """Tests for per-cell QC statistics."""

    def test_mito_gene_mask(self):
        """Test the prefix match is case-sensitive."""
        mask = mito_gene_mask(["mt-Co1", "MT-CO1", "Gene1", "mt-Nd1"])
        assert mask.tolist() == [True, False, False, True]

    def test_columns_and_index(self, count_adata):
        """Test output shape."""
        stats = compute_qc_stats(count_adata)
        assert list(stats.columns) == ["feature_count", "total_count", "mito_fraction"]
        assert stats.index.tolist() == count_adata.obs_names.tolist()

    def test_sparse_matches_dense(self, count_adata):
        """Test sparse and dense inputs give identical statistics."""
        dense = count_adata.copy()
        dense.X = count_adata.X.toarray()
        pd.testing.assert_frame_equal(compute_qc_stats(count_adata), compute_qc_stats(dense))

    def test_values(self, count_adata):
        """Test statistics against a direct computation."""
        X = count_adata.X.toarray()
        mito = np.array([name.startswith("mt-") for name in count_adata.var_names])
        stats = compute_qc_stats(count_adata)

        np.testing.assert_array_equal(stats["feature_count"], (X > 0).sum(axis=1))
        np.testing.assert_array_equal(stats["total_count"], X.sum(axis=1))
        np.testing.assert_allclose(
            stats["mito_fraction"], X[:, mito].sum(axis=1) / X.sum(axis=1)
        )

    def test_mito_fraction_bounds(self, count_adata):
        """Test the fraction lies in [0, 1] and is 0 for empty cells."""
        adata = count_adata.copy()
        X = adata.X.toarray()
        X[0, :] = 0
        adata.X = X

        stats = compute_qc_stats(adata)
        assert stats[TOTAL_COUNT].iloc[0] == 0
        assert stats[MITO_FRACTION].iloc[0] == 0.0
        assert stats[MITO_FRACTION].between(0.0, 1.0).all()

    def test_reads_layer(self, count_adata):
        """Test statistics come from the named layer."""
        adata = count_adata.copy()
        adata.layers["counts"] = adata.X.copy()
        adata.X = adata.X * 0
        stats = compute_qc_stats(adata, layer="counts")
        assert (stats[TOTAL_COUNT] > 0).all()

    def test_no_mito_genes_warns(self, count_adata, caplog):
        """Test a warning when no gene has the prefix."""
        qc = CellQC(QCConfig(mito_prefix="MT-"), logger=logging.getLogger("test.qc"))
        with caplog.at_level(logging.WARNING, logger="test.qc"):
            cells = qc.compute_stats(count_adata)
        assert "No genes start with 'MT-'" in caplog.text
        assert (cells.column(MITO_FRACTION) == 0).all()


class TestLabelFilter:
    """Tests for the label-presence filter."""

    def _table(self):
        frame = pd.DataFrame(
            {
                TOTAL_COUNT: [100, 20000, 3000, 50],
                MITO_FRACTION: [0.5, 0.01, 0.02, 0.0],
                PUBLISHED_LABEL: ["MTCs", "unlabeled", "PC-1", "B-c1"],
            },
            index=["A-1", "B-1", "C-1", "D-1"],
        )
        return CellTable(frame)

    def test_keeps_only_labeled_cells(self):
        """Test every retained cell carries a published label."""
        retained = filter_labeled(self._table())
        assert retained.cell_ids == ["A-1", "C-1", "D-1"]
        assert (retained.column(PUBLISHED_LABEL) != "unlabeled").all()

    def test_thresholds_are_not_applied(self):
        """Test cells outside the guide bounds are still retained."""
        retained = filter_labeled(self._table())
        assert "A-1" in retained  # 50% mitochondrial, 100 counts
        assert "D-1" in retained  # 50 counts

    def test_threshold_report(self):
        """Test counts of cells outside each guide bound."""
        report = summarize_thresholds(self._table(), QCConfig())
        assert report == {
            "below_min_counts": 2,
            "above_max_counts": 1,
            "above_max_mito_fraction": 1,
            "outside_any": 3,
            "n_cells": 4,
        }

    def test_input_table_unchanged(self):
        """Test filtering returns a new table."""
        table = self._table()
        filter_labeled(table)
        assert len(table) == 4


class TestCellQC:
    """Tests for CellQC.filter_sample."""

    def test_filter_sample(self, sample_adata):
        """Test the matrix subset follows the retained cells."""
        qc = CellQC()
        cells = qc.compute_stats(sample_adata)
        labels = pd.Series(
            ["MTCs"] * 5 + ["unlabeled"] * 7, index=sample_adata.obs_names
        )
        result = qc.filter_sample(sample_adata, cells.with_columns(published_label=labels))

        assert result.cells_total == 12
        assert result.cells_retained == 5
        assert result.cells_removed == 7
        assert result.adata.obs_names.tolist() == result.retained.cell_ids
        assert result.retained.cell_ids == sample_adata.obs_names[:5].tolist()

    def test_to_dict(self, sample_adata):
        """Test reporting keys."""
        qc = CellQC()
        cells = qc.compute_stats(sample_adata).with_columns(published_label="MTCs")
        summary = qc.filter_sample(sample_adata, cells).to_dict()
        assert summary["cells_retained"] == 12
        assert summary["removal_fraction"] == pytest.approx(0.0)
        assert "guide_below_min_counts" in summary
