"""Unit tests for pipeline orchestration."""

import logging

import pandas as pd
import pytest
import yaml

from celltype_concordance.config import ConcordanceConfig, ReconciliationConfig
from celltype_concordance.core.cells import (
    COARSE_CLASSES,
    COARSE_PREDICTED,
    COARSE_PUBLISHED,
    PUBLISHED_LABEL,
)
from celltype_concordance.core.classification import StaticPredictor
from celltype_concordance.core.concordance import body_total
from celltype_concordance.exceptions import ClassifierContractError, IdentifierMismatchError
from celltype_concordance.pipeline import ConcordancePipeline, PipelineLogger, StageRunner


@pytest.fixture
def pipeline_logger(tmp_path):
    logger = PipelineLogger(tmp_path / "logs", log_level="DEBUG", console=False)
    logger.setup()
    yield logger
    logger.close()


class TestStageRunner:
    """Tests for StageRunner."""

    def test_execution_order(self):
        """Test dependencies run first."""
        runner = StageRunner()
        runner.register_stage("C", lambda **kw: "c", depends_on=["B"])
        runner.register_stage("A", lambda **kw: "a")
        runner.register_stage("B", lambda **kw: "b", depends_on=["A"])
        assert runner.get_execution_order() == ["A", "B", "C"]

    def test_results_passed_on(self):
        """Test each stage sees earlier results."""
        runner = StageRunner()
        runner.register_stage("A", lambda x, stage_results: x + 1)
        runner.register_stage(
            "B", lambda x, stage_results: stage_results["A"] * 10, depends_on=["A"]
        )
        results = runner.run(x=1)
        assert results == {"A": 2, "B": 20}
        assert runner.completed_stages == ["A", "B"]
        assert set(runner.durations) == {"A", "B"}

    def test_cycle_detected(self):
        runner = StageRunner()
        runner.register_stage("A", lambda **kw: None, depends_on=["B"])
        runner.register_stage("B", lambda **kw: None, depends_on=["A"])
        with pytest.raises(ValueError, match="Circular"):
            runner.get_execution_order()

    def test_unknown_dependency(self):
        runner = StageRunner()
        runner.register_stage("A", lambda **kw: None, depends_on=["Z"])
        with pytest.raises(ValueError, match="unknown"):
            runner.get_execution_order()

    def test_duplicate_registration(self):
        runner = StageRunner()
        runner.register_stage("A", lambda **kw: None)
        with pytest.raises(ValueError):
            runner.register_stage("A", lambda **kw: None)

    def test_failure_is_logged_and_raised(self, pipeline_logger):
        """Test a failing stage stops the run."""

        def fail(**kwargs):
            raise RuntimeError("boom")

        runner = StageRunner(pipeline_logger)
        runner.register_stage("A", fail)
        runner.register_stage("B", lambda **kw: None, depends_on=["A"])
        with pytest.raises(RuntimeError, match="boom"):
            runner.run()
        assert runner.completed_stages == []
        assert "Stage A failed: boom" in pipeline_logger.log_file.read_text()


class TestConcordancePipeline:
    """End-to-end tests with precomputed predictions."""

    def test_run_from_files(self, matrix_dir, annotation_csv, sample_predictions, pipeline_logger):
        """Test the whole pipeline on a 10x directory."""
        pipeline = ConcordancePipeline(
            predictor=StaticPredictor(sample_predictions), logger=pipeline_logger
        )
        result = pipeline.run(matrix_dir, annotation_csv)

        assert result.qc.cells_total == 12
        assert result.qc.cells_retained == 8
        assert result.reconciliation.n_duplicates == 1
        assert set(result.reports) == {"default", "tuned"}

        report = result.reports["default"]
        assert body_total(report.coarse) == 8
        assert body_total(report.fine) == 8
        assert report.coarse.loc["malignant", "malignant"] == 2
        assert report.coarse.loc["malignant", "stromal"] == 2
        assert report.coarse.loc["stromal", "malignant"] == 1
        assert report.coarse.loc["stromal", "stromal"] == 3
        assert report.fine.loc["MTCs", "<no call>"] == 1
        assert report.fine.loc["Macrophages", "<no call>"] == 1
        assert report.fine.columns[-1] == "<no call>"

    def test_cell_invariants(self, sample_adata, sample_annotations, sample_predictions):
        """Test retained cells are labeled and coarse labels are total."""
        pipeline = ConcordancePipeline(
            predictor=StaticPredictor(sample_predictions),
            logger=PipelineLogger(console=False),
        )
        result = pipeline.run_from_data(sample_adata, sample_annotations)
        for cells in result.cells.values():
            assert len(cells) == 8
            assert (cells.column(PUBLISHED_LABEL) != "unlabeled").all()
            for column in (COARSE_PUBLISHED, COARSE_PREDICTED):
                assert set(cells.column(column)) <= set(COARSE_CLASSES)

    def test_input_not_modified(self, sample_adata, sample_annotations, sample_predictions):
        """Test in-memory inputs are left as they were."""
        n_vars = sample_adata.n_vars
        annotations = sample_annotations.copy()
        ConcordancePipeline(
            predictor=StaticPredictor(sample_predictions),
            logger=PipelineLogger(console=False),
        ).run_from_data(sample_adata, sample_annotations)
        assert sample_adata.n_vars == n_vars
        assert "counts" not in sample_adata.layers
        assert sample_annotations.equals(annotations)

    def test_selected_runs(self, sample_adata, sample_annotations, sample_predictions):
        pipeline = ConcordancePipeline(
            predictor=StaticPredictor(sample_predictions),
            logger=PipelineLogger(console=False),
        )
        result = pipeline.run_from_data(sample_adata, sample_annotations, runs=["tuned"])
        assert list(result.reports) == ["tuned"]

    def test_unknown_run(self, sample_adata, sample_annotations, sample_predictions):
        pipeline = ConcordancePipeline(
            predictor=StaticPredictor(sample_predictions),
            logger=PipelineLogger(console=False),
        )
        with pytest.raises(KeyError):
            pipeline.run_from_data(sample_adata, sample_annotations, runs=["missing"])

    def test_missing_prediction_aborts(self, sample_adata, sample_annotations, sample_predictions):
        """Test a classifier skipping a retained cell fails the run."""
        predictions = dict(sample_predictions)
        predictions.pop(sample_adata.obs_names[0])
        pipeline = ConcordancePipeline(
            predictor=StaticPredictor(predictions), logger=PipelineLogger(console=False)
        )
        with pytest.raises(ClassifierContractError):
            pipeline.run_from_data(sample_adata, sample_annotations)

    def test_mismatch_error_policy(self, sample_adata, sample_annotations, sample_predictions):
        config = ConcordanceConfig(reconciliation=ReconciliationConfig(on_mismatch="error"))
        pipeline = ConcordancePipeline(
            config,
            predictor=StaticPredictor(sample_predictions),
            logger=PipelineLogger(console=False),
        )
        with pytest.raises(IdentifierMismatchError):
            pipeline.run_from_data(sample_adata, sample_annotations)

    def test_no_labeled_cells(self, sample_adata, sample_predictions, tmp_output_dir):
        """Test a sample where no annotation joins yields empty tables."""
        annotations = pd.DataFrame(
            {"orig_row_names": ["1_E13bm_TTTTTTTTTTTTTTTT"], "Cell_Type": ["MTCs"]}
        )
        pipeline = ConcordancePipeline(
            predictor=StaticPredictor(sample_predictions),
            logger=PipelineLogger(console=False),
        )
        result = pipeline.run_from_data(sample_adata, annotations, out_dir=tmp_output_dir)

        assert result.qc.cells_total == 12
        assert result.qc.cells_retained == 0
        assert set(result.reports) == {"default", "tuned"}
        for report in result.reports.values():
            assert report.coarse.shape == (2, 2)
            assert report.coarse.index.tolist() == list(COARSE_CLASSES)
            assert body_total(report.coarse) == 0
            assert body_total(report.fine) == 0
        for cells in result.cells.values():
            assert len(cells) == 0
        assert (tmp_output_dir / "concordance_default_coarse.csv").exists()

    def test_write_outputs(self, sample_adata, sample_annotations, sample_predictions, tmp_output_dir):
        """Test tables, cells and summary are written."""
        pipeline = ConcordancePipeline(
            predictor=StaticPredictor(sample_predictions),
            logger=PipelineLogger(console=False),
        )
        pipeline.run_from_data(sample_adata, sample_annotations, out_dir=tmp_output_dir)

        for run in ("default", "tuned"):
            assert (tmp_output_dir / f"concordance_{run}_coarse.csv").exists()
            assert (tmp_output_dir / f"concordance_{run}_fine.csv").exists()
            assert (tmp_output_dir / f"cells_{run}.csv").exists()

        summary = yaml.safe_load((tmp_output_dir / "summary.yaml").read_text())
        assert summary["qc"]["cells_retained"] == 8
        assert summary["concordance"]["default"]["n_cells"] == 8
        assert set(summary["durations_s"]) == {"A", "B", "C", "D", "E", "F"}


class TestPipelineLogger:
    """Tests for PipelineLogger."""

    def test_log_file(self, pipeline_logger):
        """Test stage events reach the timestamped log file."""
        pipeline_logger.log_stage_start("B", "Barcode reconciliation")
        pipeline_logger.log_stage_complete("B", 1.25)
        text = pipeline_logger.log_file.read_text()
        assert pipeline_logger.log_file.name.startswith("concordance_")
        assert "Starting Stage B: Barcode reconciliation" in text
        assert "Stage B completed successfully in 1.2s" in text

    @pytest.mark.parametrize(
        "seconds,expected",
        [(45.2, "45.2s"), (83, "1m 23s"), (8100, "2h 15m")],
    )
    def test_format_duration(self, seconds, expected):
        assert PipelineLogger.format_duration(seconds) == expected
