"""Pytest configuration and shared fixtures for celltype-concordance tests."""

import logging
import sys
from pathlib import Path

import pytest
import pandas as pd

# Add package to path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Import synthetic data generators
from tests.fixtures import (
    create_count_adata,
    create_sample,
    write_10x_mtx,
)


# ============================================================================
# Count Data Fixtures
# ============================================================================


@pytest.fixture
def count_adata():
    """Raw counts for 12 cells with two mt- genes and one rare gene."""
    return create_count_adata()


@pytest.fixture
def sample():
    """Counts, published annotations and predictions for a 12-cell sample."""
    return create_sample()


@pytest.fixture
def sample_adata(sample):
    return sample[0]


@pytest.fixture
def sample_annotations(sample) -> pd.DataFrame:
    return sample[1]


@pytest.fixture
def sample_predictions(sample) -> dict:
    return sample[2]


# ============================================================================
# Path Fixtures
# ============================================================================


@pytest.fixture
def tmp_output_dir(tmp_path: Path) -> Path:
    """Create a temporary output directory for tests."""
    output_dir = tmp_path / "output"
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


@pytest.fixture
def matrix_dir(tmp_path: Path, sample_adata) -> Path:
    """Cell Ranger v3 matrix directory holding the sample counts."""
    return write_10x_mtx(sample_adata, tmp_path / "filtered_feature_bc_matrix")


@pytest.fixture
def annotation_csv(tmp_path: Path, sample_annotations) -> Path:
    """Published annotation CSV for the sample."""
    path = tmp_path / "annotations.csv"
    sample_annotations.to_csv(path, index=False)
    return path


@pytest.fixture
def predictions_csv(tmp_path: Path, sample_predictions) -> Path:
    """Precomputed predictions CSV; no-calls written as empty fields."""
    path = tmp_path / "predictions.csv"
    pd.DataFrame(
        {
            "cell_id": list(sample_predictions),
            "predicted_label": list(sample_predictions.values()),
        }
    ).to_csv(path, index=False)
    return path


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def sample_config_yaml(tmp_path) -> Path:
    """Create sample concordance configuration file."""
    import yaml

    config = {
        "concordance": {
            "ingest": {"min_cells_per_gene": 3},
            "reconciliation": {"on_mismatch": "ignore"},
            "qc": {"min_counts": 200},
            "classification": {
                "reference": "blueprint_encode",
                "runs": [
                    {"name": "strict", "prune": True, "quantile": 0.9},
                ],
            },
            "output": {"margins": True},
        },
    }

    path = tmp_path / "concordance.yaml"
    with open(path, "w") as f:
        yaml.dump(config, f)

    return path


@pytest.fixture
def quiet_logger() -> logging.Logger:
    """Logger for engines under test."""
    return logging.getLogger("celltype_concordance.tests")
