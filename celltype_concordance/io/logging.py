"""Logging helpers: timestamped log paths and YAML run summaries."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Union

import yaml

PathLike = Union[str, Path]


def get_timestamped_log_path(log_path: PathLike) -> Path:
    """Add a timestamp to a log file name.

    Example: concordance.log -> concordance_20261018_080530.log

    Parameters
    ----------
    log_path : PathLike
        Base log file path.

    Returns
    -------
    Path
        Timestamped log path in the same directory.
    """
    log_path = Path(log_path)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    suffix = log_path.suffix or ".log"
    return log_path.parent / f"{log_path.stem}_{timestamp}{suffix}"


def log_yaml(
    log_path: PathLike,
    record: dict[str, Any],
    *,
    logger: logging.Logger | None = None,
) -> None:
    """Write a run summary as a YAML document.

    Parameters
    ----------
    log_path : PathLike
        Destination file; overwritten.
    record : dict
        Summary to serialize.
    logger : logging.Logger, optional
        If provided, also emit the document at DEBUG level.
    """
    yaml_text = yaml.safe_dump(record, sort_keys=False)
    if logger is not None:
        logger.debug("Run summary:\n%s", yaml_text.rstrip("\n"))

    path = Path(log_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        handle.write(yaml_text)
