"""Structured logging for pipeline execution."""

import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..io.logging import get_timestamped_log_path


class ColoredFormatter(logging.Formatter):
    """Custom formatter with color support for console output."""

    def __init__(self, fmt: str, datefmt: str, colors: dict):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.colors = colors

    def format(self, record):
        levelname = record.levelname
        color = self.colors.get(levelname, self.colors["RESET"])
        reset = self.colors["RESET"]
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{color}{levelname}{reset}"
        return super().format(record)


class PipelineLogger:
    """Structured logging for a concordance run.

    Console output is colored; when ``log_dir`` is given a detailed,
    timestamped log file is written as well. Stage start, completion and
    failure are logged as separate events.

    Parameters
    ----------
    log_dir : str or Path, optional
        Directory for the run log file; console only when omitted
    log_level : str
        Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    log_name : str, optional
        Logger name. Default: "celltype_concordance"
    console : bool
        Attach a console handler

    Example
    -------
    >>> logger = PipelineLogger("out/logs", log_level="INFO")
    >>> logger.setup()
    >>> logger.log_stage_start("B", "Barcode reconciliation")
    >>> logger.log_stage_complete("B", 1.3)
    """

    COLORS = {
        "DEBUG": "\033[0;36m",  # Cyan
        "INFO": "\033[0;34m",  # Blue
        "WARNING": "\033[1;33m",  # Yellow
        "ERROR": "\033[0;31m",  # Red
        "CRITICAL": "\033[1;31m",  # Bold Red
        "RESET": "\033[0m",
    }

    def __init__(
        self,
        log_dir: Optional[Union[str, Path]] = None,
        log_level: str = "INFO",
        log_name: str = "celltype_concordance",
        console: bool = True,
    ):
        self.log_dir = Path(log_dir) if log_dir is not None else None
        self.log_file: Optional[Path] = None
        if self.log_dir is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self.log_file = get_timestamped_log_path(self.log_dir / "concordance.log")

        self.console = console
        self.log_level = getattr(logging, log_level.upper())
        self.logger = logging.getLogger(log_name)
        self.logger.setLevel(self.log_level)
        self.logger.handlers = []

    def setup(self) -> None:
        """Attach the file and console handlers."""
        if self.log_file is not None:
            file_handler = logging.FileHandler(self.log_file, mode="w", encoding="utf-8")
            file_handler.setLevel(self.log_level)
            file_handler.setFormatter(
                logging.Formatter(
                    fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
            self.logger.addHandler(file_handler)

        if self.console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(self.log_level)
            console_handler.setFormatter(
                ColoredFormatter(
                    fmt="%(asctime)s - %(levelname)s - %(message)s",
                    datefmt="%H:%M:%S",
                    colors=self.COLORS,
                )
            )
            self.logger.addHandler(console_handler)

    def close(self) -> None:
        """Detach and close all handlers."""
        for handler in list(self.logger.handlers):
            handler.close()
            self.logger.removeHandler(handler)

    def log_stage_start(self, stage_id: str, stage_name: str) -> None:
        separator = "=" * 80
        self.logger.info(separator)
        self.logger.info(f"Starting Stage {stage_id}: {stage_name}")
        self.logger.info(separator)

    def log_stage_complete(self, stage_id: str, duration: float) -> None:
        self.logger.info(
            f"Stage {stage_id} completed successfully in {self.format_duration(duration)}"
        )

    def log_stage_error(self, stage_id: str, error: str) -> None:
        self.logger.error(f"Stage {stage_id} failed: {error}")

    def log_stage_summary(self, stage_id: str, summary: Dict[str, Any]) -> None:
        """Log the key/value summary a stage reports."""
        for key, value in summary.items():
            self.logger.info(f"  [{stage_id}] {key}: {value}")

    @staticmethod
    def format_duration(seconds: float) -> str:
        """Format duration in seconds to human-readable string.

        Returns
        -------
        str
            Formatted string (e.g., "45.2s", "1m 23s", "2h 15m")
        """
        if seconds < 60:
            return f"{seconds:.1f}s"
        elif seconds < 3600:
            mins = int(seconds // 60)
            secs = int(seconds % 60)
            return f"{mins}m {secs}s"
        else:
            hours = int(seconds // 3600)
            mins = int((seconds % 3600) // 60)
            return f"{hours}h {mins}m"
