"""Pipeline orchestration module.

Runs the concordance stages in order with per-stage timing and
structured logging.

Example Usage
-------------
>>> from celltype_concordance.pipeline import ConcordancePipeline, PipelineLogger
>>> logger = PipelineLogger("out/logs")
>>> logger.setup()
>>> pipeline = ConcordancePipeline(logger=logger)
>>> result = pipeline.run("matrix/", "annotations.csv", out_dir="out/")
"""

from .logger import ColoredFormatter, PipelineLogger
from .runner import ConcordancePipeline, PipelineResult, StageRunner

__all__ = [
    # Logging
    "ColoredFormatter",
    "PipelineLogger",
    # Execution
    "StageRunner",
    "ConcordancePipeline",
    "PipelineResult",
]
