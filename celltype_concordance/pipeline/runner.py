"""In-memory pipeline execution.

:class:`StageRunner` runs registered stage functions in dependency order,
timing and logging each one. :class:`ConcordancePipeline` registers the
six concordance stages (A-F) on a runner.
"""

import time
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import pandas as pd

from ..config import ConcordanceConfig
from ..core.cells import PUBLISHED_LABEL, CellTable
from ..core.classification import (
    ClassificationEngine,
    ClassificationResult,
    LabelPredictor,
    ReferencePanel,
)
from ..core.concordance import ConcordanceReport, build_concordance
from ..core.ingest import DataLoader, IngestResult
from ..core.qc import CellQC, QCResult
from ..core.reconciliation import BarcodeReconciler, ReconciliationResult
from ..core.relabel import relabel
from ..io.logging import log_yaml
from ..io.tables import ensure_output_dir, write_cells, write_concordance
from .logger import PipelineLogger

PathLike = Union[str, Path]


class StageRunner:
    """Run stage functions in dependency order.

    Each stage function is called with the runner's keyword arguments
    plus ``stage_results``, the results of the stages already run. A
    failing stage is logged and its exception re-raised.

    Parameters
    ----------
    logger : PipelineLogger, optional
        Logger instance

    Example
    -------
    >>> runner = StageRunner()
    >>> runner.register_stage("A", load, name="Ingestion")
    >>> runner.register_stage("B", reconcile, depends_on=["A"])
    >>> results = runner.run(matrix_path="data/")
    """

    def __init__(self, logger: Optional[PipelineLogger] = None):
        self.logger = logger
        self.stages: Dict[str, Dict[str, Any]] = {}
        self.completed_stages: List[str] = []
        self.durations: Dict[str, float] = {}

    def register_stage(
        self,
        stage_id: str,
        func: Callable,
        depends_on: Optional[List[str]] = None,
        name: Optional[str] = None,
    ) -> None:
        """Register a stage function."""
        if stage_id in self.stages:
            raise ValueError(f"Stage '{stage_id}' already registered")
        self.stages[stage_id] = {
            "func": func,
            "depends_on": depends_on or [],
            "name": name or stage_id,
        }

    def get_execution_order(self) -> List[str]:
        """Topological order of the registered stages (Kahn's algorithm).

        Raises
        ------
        ValueError
            On unknown dependencies or cycles
        """
        for stage_id, stage in self.stages.items():
            unknown = [dep for dep in stage["depends_on"] if dep not in self.stages]
            if unknown:
                raise ValueError(f"Stage '{stage_id}' depends on unknown stage(s) {unknown}")

        in_degree = {sid: len(stage["depends_on"]) for sid, stage in self.stages.items()}
        queue = deque(sid for sid, degree in in_degree.items() if degree == 0)
        order: List[str] = []

        while queue:
            stage_id = queue.popleft()
            order.append(stage_id)
            for other_id, other in self.stages.items():
                if stage_id in other["depends_on"]:
                    in_degree[other_id] -= 1
                    if in_degree[other_id] == 0:
                        queue.append(other_id)

        if len(order) != len(self.stages):
            raise ValueError("Circular dependency detected")
        return order

    def run(self, **kwargs) -> Dict[str, Any]:
        """Execute all registered stages.

        Returns
        -------
        Dict[str, Any]
            Map of stage_id to stage result
        """
        results: Dict[str, Any] = {}
        for stage_id in self.get_execution_order():
            stage = self.stages[stage_id]
            if self.logger:
                self.logger.log_stage_start(stage_id, stage["name"])

            start_time = time.time()
            try:
                results[stage_id] = stage["func"](**kwargs, stage_results=results)
            except Exception as e:
                if self.logger:
                    self.logger.log_stage_error(stage_id, str(e))
                raise

            self.durations[stage_id] = time.time() - start_time
            self.completed_stages.append(stage_id)
            if self.logger:
                self.logger.log_stage_complete(stage_id, self.durations[stage_id])

        return results


@dataclass
class PipelineResult:
    """Everything one concordance run produced.

    Attributes
    ----------
    ingest : IngestResult
        Loaded matrix and annotations
    reconciliation : ReconciliationResult
        Published label join summary
    qc : QCResult
        Retained cells and matrix subset
    classifications : Dict[str, ClassificationResult]
        Predictions per classifier run
    cells : Dict[str, CellTable]
        Fully derived cell records per classifier run
    reports : Dict[str, ConcordanceReport]
        Contingency tables per classifier run
    durations : Dict[str, float]
        Seconds spent per stage
    """

    ingest: IngestResult
    reconciliation: ReconciliationResult
    qc: QCResult
    classifications: Dict[str, ClassificationResult] = field(default_factory=dict)
    cells: Dict[str, CellTable] = field(default_factory=dict)
    reports: Dict[str, ConcordanceReport] = field(default_factory=dict)
    durations: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Summary suitable for YAML output."""
        return {
            "ingest": self.ingest.to_dict(),
            "reconciliation": self.reconciliation.to_dict(),
            "qc": self.qc.to_dict(),
            "classification": {
                name: result.to_dict() for name, result in self.classifications.items()
            },
            "concordance": {name: report.to_dict() for name, report in self.reports.items()},
            "durations_s": {k: round(v, 3) for k, v in self.durations.items()},
        }


class ConcordancePipeline:
    """Ingestion -> reconciliation -> QC -> classification -> relabel -> concordance.

    Parameters
    ----------
    config : ConcordanceConfig, optional
        Pipeline configuration
    predictor : LabelPredictor, optional
        Classifier; SingleR when omitted
    reference : ReferencePanel, optional
        Reference panel; fetched from celldex when needed
    logger : PipelineLogger, optional
        Logger; console-only INFO logging when omitted

    Example
    -------
    >>> pipeline = ConcordancePipeline(ConcordanceConfig.default())
    >>> result = pipeline.run("filtered_feature_bc_matrix/", "annotations.csv")
    >>> print(result.reports["tuned"].coarse)
    """

    STAGE_NAMES = {
        "A": "Ingestion",
        "B": "Barcode reconciliation",
        "C": "QC statistics and label filter",
        "D": "Reference classification",
        "E": "Coarse re-labeling",
        "F": "Concordance tables",
    }

    def __init__(
        self,
        config: Optional[ConcordanceConfig] = None,
        predictor: Optional[LabelPredictor] = None,
        reference: Optional[ReferencePanel] = None,
        logger: Optional[PipelineLogger] = None,
    ):
        self.config = config or ConcordanceConfig.default()
        if logger is None:
            logger = PipelineLogger()
            logger.setup()
        self.logger = logger
        log = logger.logger

        self.loader = DataLoader(self.config.ingest, logger=log)
        self.reconciler = BarcodeReconciler(
            self.config.reconciliation,
            id_col=self.config.ingest.annotation_id_col,
            label_col=self.config.ingest.annotation_label_col,
            logger=log,
        )
        self.qc = CellQC(
            self.config.qc, unlabeled=self.config.reconciliation.unlabeled, logger=log
        )
        self.classifier = ClassificationEngine(
            self.config.classification,
            predictor=predictor,
            reference=reference,
            counts_layer=self.config.ingest.counts_layer,
            logger=log,
        )

    # Stage functions --------------------------------------------------------

    def _ingest(self, matrix_path=None, annotation_path=None, adata=None,
                annotations=None, stage_results=None, **_):
        if adata is None:
            ingested = self.loader.load(matrix_path, annotation_path)
        else:
            ingested = self.loader.from_data(adata, annotations)
        cells = self.qc.compute_stats(ingested.adata, layer=self.config.ingest.counts_layer)
        self.logger.log_stage_summary("A", ingested.to_dict())
        return {"ingest": ingested, "cells": cells}

    def _reconcile(self, stage_results=None, **_):
        ingested = stage_results["A"]["ingest"]
        result = self.reconciler.reconcile(
            ingested.adata.obs_names.astype(str).tolist(), ingested.annotations
        )
        cells = stage_results["A"]["cells"].with_columns(**{PUBLISHED_LABEL: result.labels})
        self.logger.log_stage_summary("B", result.to_dict())
        return {"reconciliation": result, "cells": cells}

    def _filter(self, stage_results=None, **_):
        adata = stage_results["A"]["ingest"].adata
        result = self.qc.filter_sample(adata, stage_results["B"]["cells"])
        self.logger.log_stage_summary("C", result.to_dict())
        return result

    def _classify(self, runs=None, stage_results=None, **_):
        qc_result = stage_results["C"]
        selected = [self.config.get_run(name) for name in runs] if runs else None
        return self.classifier.run_all(qc_result.adata, qc_result.retained, runs=selected)

    def _relabel(self, stage_results=None, **_):
        return {
            name: relabel(result.cells, self.config.relabel)
            for name, result in stage_results["D"].items()
        }

    def _tabulate(self, stage_results=None, **_):
        reports = {
            name: build_concordance(cells, run_name=name, config=self.config.output)
            for name, cells in stage_results["E"].items()
        }
        for name, report in reports.items():
            self.logger.logger.info(
                "Run '%s': coarse agreement %.1f%% over %d cells",
                name, report.agreement * 100, report.n_cells,
            )
        return reports

    def build_runner(self) -> StageRunner:
        """Register the six stages on a new :class:`StageRunner`."""
        runner = StageRunner(self.logger)
        stages = [
            ("A", self._ingest, []),
            ("B", self._reconcile, ["A"]),
            ("C", self._filter, ["B"]),
            ("D", self._classify, ["C"]),
            ("E", self._relabel, ["D"]),
            ("F", self._tabulate, ["E"]),
        ]
        for stage_id, func, depends_on in stages:
            runner.register_stage(
                stage_id, func, depends_on=depends_on, name=self.STAGE_NAMES[stage_id]
            )
        return runner

    # Entry points -----------------------------------------------------------

    def _execute(self, out_dir: Optional[PathLike] = None, **kwargs) -> PipelineResult:
        runner = self.build_runner()
        results = runner.run(**kwargs)
        result = PipelineResult(
            ingest=results["A"]["ingest"],
            reconciliation=results["B"]["reconciliation"],
            qc=results["C"],
            classifications=results["D"],
            cells=results["E"],
            reports=results["F"],
            durations=dict(runner.durations),
        )
        if out_dir is not None:
            self.write_outputs(result, out_dir)
        return result

    def run(
        self,
        matrix_path: PathLike,
        annotation_path: PathLike,
        out_dir: Optional[PathLike] = None,
        runs: Optional[Sequence[str]] = None,
    ) -> PipelineResult:
        """Run the pipeline on files.

        Parameters
        ----------
        matrix_path : PathLike
            10x matrix directory or ``.h5`` file
        annotation_path : PathLike
            Published annotation CSV
        out_dir : PathLike, optional
            Write tables and a YAML summary here
        runs : Sequence[str], optional
            Classifier runs to evaluate (default: all configured)
        """
        return self._execute(
            out_dir=out_dir,
            matrix_path=matrix_path,
            annotation_path=annotation_path,
            runs=runs,
        )

    def run_from_data(
        self,
        adata,
        annotations: pd.DataFrame,
        out_dir: Optional[PathLike] = None,
        runs: Optional[Sequence[str]] = None,
    ) -> PipelineResult:
        """Run the pipeline on an in-memory count matrix and annotation table."""
        return self._execute(out_dir=out_dir, adata=adata, annotations=annotations, runs=runs)

    def write_outputs(self, result: PipelineResult, out_dir: PathLike) -> Dict[str, Path]:
        """Write concordance tables, per-cell records and a YAML summary."""
        out_dir = ensure_output_dir(out_dir)
        written: Dict[str, Path] = {}
        for name, report in result.reports.items():
            for kind, path in write_concordance(report, out_dir).items():
                written[f"{name}_{kind}"] = path
            if self.config.output.write_cells:
                written[f"{name}_cells"] = write_cells(
                    result.cells[name], out_dir / f"cells_{name}.csv"
                )
        summary_path = out_dir / "summary.yaml"
        log_yaml(summary_path, result.to_dict(), logger=self.logger.logger)
        written["summary"] = summary_path
        self.logger.logger.info("Wrote %d output files to %s", len(written), out_dir)
        return written
