"""Configuration classes for the concordance pipeline.

Every stage reads its parameters from one dataclass section. Defaults
describe the single embryonic bone-marrow sample the pipeline was written
for; a YAML file can override any field.
"""

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


@dataclass
class IngestConfig:
    """Configuration for loading the count matrix and annotations (Stage A).

    Attributes
    ----------
    min_cells_per_gene : int
        Genes detected in fewer cells are dropped at load time
    var_names : str
        10x feature column used for gene names ("gene_symbols" or "gene_ids")
    counts_layer : str
        Layer holding the raw counts after normalization
    annotation_id_col : str
        Identifier column of the published annotation CSV
    annotation_label_col : str
        Cell-type column of the published annotation CSV
    """

    min_cells_per_gene: int = 5
    var_names: str = "gene_symbols"
    counts_layer: str = "counts"
    annotation_id_col: str = "orig_row_names"
    annotation_label_col: str = "Cell_Type"


@dataclass
class ReconciliationConfig:
    """Configuration for barcode reconciliation (Stage B).

    Attributes
    ----------
    marker : str
        Substring ending the publication prefix; everything up to and
        including it is stripped from annotation identifiers
    suffix : str
        Per-sample suffix appended to the extracted barcode
    on_mismatch : str
        What to do with identifiers lacking the marker: "ignore", "warn"
        or "error"
    unlabeled : str
        Label given to matrix cells without a published annotation
    """

    marker: str = "E13bm_"
    suffix: str = "-1"
    on_mismatch: str = "warn"
    unlabeled: str = "unlabeled"

    def __post_init__(self) -> None:
        if self.on_mismatch not in ("ignore", "warn", "error"):
            raise ValueError(
                f"on_mismatch must be 'ignore', 'warn' or 'error', got '{self.on_mismatch}'"
            )


@dataclass
class QCConfig:
    """Configuration for QC statistics (Stage C).

    The numeric bounds are reported for inspection only. The executed
    filter keeps the cells that carry a published label.

    Attributes
    ----------
    mito_prefix : str
        Case-sensitive gene-name prefix of mitochondrial genes
    min_counts : int
        Lower total-count guide
    max_counts : int
        Upper total-count guide
    max_mito_fraction : float
        Upper mitochondrial-fraction guide
    """

    mito_prefix: str = "mt-"
    min_counts: int = 500
    max_counts: int = 9000
    max_mito_fraction: float = 0.10


@dataclass
class ClassifierRunConfig:
    """One configuration of the reference classifier.

    Attributes
    ----------
    name : str
        Run name used in logs and output file names
    prune : bool
        Turn low-confidence assignments into no-calls
    quantile : float
        Correlation quantile used for per-label scores
    nmads : float
        Width, in MADs, of the low-delta outlier cut used for pruning
    fine_tune : bool
        Enable fine-tuning among the top-scoring labels
    fine_tune_threshold : float
        Score window for fine-tuning candidates
    """

    name: str = "default"
    prune: bool = False
    quantile: float = 0.8
    nmads: float = 3.0
    fine_tune: bool = True
    fine_tune_threshold: float = 0.05


def _default_runs() -> List[ClassifierRunConfig]:
    return [
        ClassifierRunConfig(name="default", prune=False, quantile=0.8),
        ClassifierRunConfig(name="tuned", prune=True, quantile=0.85),
    ]


@dataclass
class ClassificationConfig:
    """Configuration for reference-based classification (Stage D).

    Attributes
    ----------
    reference : str
        celldex reference name
    reference_version : str
        celldex reference version
    label_column : str
        Reference column data field holding the labels
    target_sum : float, optional
        Library size used by ``normalize_total`` (None = median)
    strict : bool
        Abort when a retained cell has no prediction
    num_threads : int
        Threads passed to the classifier backend
    runs : List[ClassifierRunConfig]
        Classifier configurations to evaluate
    """

    reference: str = "blueprint_encode"
    reference_version: str = "2024-02-26"
    label_column: str = "label.main"
    target_sum: Optional[float] = 1e4
    strict: bool = True
    num_threads: int = 1
    runs: List[ClassifierRunConfig] = field(default_factory=_default_runs)


@dataclass
class RelabelConfig:
    """Configuration for coarse re-labeling (Stage E).

    Attributes
    ----------
    published_malignant : str
        The one published label counted as malignant
    predicted_malignant : str
        The one reference label counted as malignant
    """

    published_malignant: str = "MTCs"
    predicted_malignant: str = "Melanocytes"


@dataclass
class OutputConfig:
    """Configuration for concordance tables (Stage F).

    Attributes
    ----------
    margins : bool
        Append row and column totals
    no_call_label : str
        Column heading used for no-call predictions
    write_cells : bool
        Also write the per-cell table when an output directory is given
    """

    margins: bool = False
    no_call_label: str = "<no call>"
    write_cells: bool = True


@dataclass
class ConcordanceConfig:
    """Master configuration for the concordance pipeline."""

    ingest: IngestConfig = field(default_factory=IngestConfig)
    reconciliation: ReconciliationConfig = field(default_factory=ReconciliationConfig)
    qc: QCConfig = field(default_factory=QCConfig)
    classification: ClassificationConfig = field(default_factory=ClassificationConfig)
    relabel: RelabelConfig = field(default_factory=RelabelConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConcordanceConfig":
        """Build configuration from a (possibly partial) dictionary."""
        if "concordance" in data:
            data = data["concordance"] or {}

        classification = dict(data.get("classification", {}))
        runs = classification.pop("runs", None)
        if runs is None:
            run_configs = _default_runs()
        else:
            run_configs = [ClassifierRunConfig(**run) for run in runs]

        return cls(
            ingest=IngestConfig(**data.get("ingest", {})),
            reconciliation=ReconciliationConfig(**data.get("reconciliation", {})),
            qc=QCConfig(**data.get("qc", {})),
            classification=ClassificationConfig(runs=run_configs, **classification),
            relabel=RelabelConfig(**data.get("relabel", {})),
            output=OutputConfig(**data.get("output", {})),
        )

    @classmethod
    def from_yaml(cls, path: Path) -> "ConcordanceConfig":
        """Load configuration from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    @classmethod
    def default(cls) -> "ConcordanceConfig":
        """Create default configuration."""
        return cls()

    def get_run(self, name: str) -> ClassifierRunConfig:
        """Return the classifier run called ``name``."""
        for run in self.classification.runs:
            if run.name == name:
                return run
        known = [run.name for run in self.classification.runs]
        raise KeyError(f"Unknown classifier run '{name}' (known: {known})")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)
