"""I/O utilities for celltype-concordance.

Provides log path helpers, YAML run summaries and CSV table output.
"""

from .logging import get_timestamped_log_path, log_yaml
from .tables import ensure_output_dir, write_cells, write_concordance, write_dataframe

__all__ = [
    # Logging
    "get_timestamped_log_path",
    "log_yaml",
    # CSV output
    "ensure_output_dir",
    "write_dataframe",
    "write_concordance",
    "write_cells",
]
