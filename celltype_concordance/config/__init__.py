"""Configuration for celltype-concordance.

Example
-------
>>> from celltype_concordance.config import ConcordanceConfig
>>> config = ConcordanceConfig.from_yaml("concordance.yaml")
>>> config.reconciliation.marker
'E13bm_'
>>> [run.name for run in config.classification.runs]
['default', 'tuned']
"""

from .settings import (
    ClassificationConfig,
    ClassifierRunConfig,
    ConcordanceConfig,
    IngestConfig,
    OutputConfig,
    QCConfig,
    ReconciliationConfig,
    RelabelConfig,
)

__all__ = [
    "ConcordanceConfig",
    "IngestConfig",
    "ReconciliationConfig",
    "QCConfig",
    "ClassifierRunConfig",
    "ClassificationConfig",
    "RelabelConfig",
    "OutputConfig",
]
