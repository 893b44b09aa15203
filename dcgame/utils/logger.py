"""
Logging utilities for data-center game runs.
"""

import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Optional

# Global logger registry
_loggers = {}


def setup_logger(
    name: str,
    log_dir: Optional[str] = None,
    level: int = logging.INFO,
    console: bool = True,
    file: bool = True
) -> logging.Logger:
    """
    Set up a logger with console and file handlers.

    Args:
        name: Logger name (usually the experiment or strategy name)
        log_dir: Directory for log files (default: results/logs)
        level: Logging level
        console: Whether to log to console
        file: Whether to log to file

    Returns:
        Configured logger
    """
    if name in _loggers:
        return _loggers[name]

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers = []  # Clear existing handlers

    formatter = logging.Formatter(
        '[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if file:
        if log_dir is None:
            log_dir = "results/logs"
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        safe_name = name.replace(" ", "_").replace("/", "_")
        log_file = log_path / f"{safe_name}_{timestamp}.log"

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    _loggers[name] = logger
    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get an existing logger or create a console-only one.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    if name in _loggers:
        return _loggers[name]
    return setup_logger(name, file=False)


class ProgressLogger:
    """
    Helper for logging best-response progress.

    Usage:
        progress = ProgressLogger(logger, total_iterations=20, log_every=5)
        result = game.run(progress=progress)
    """

    def __init__(
        self,
        logger: logging.Logger,
        total_iterations: int,
        log_every: int = 1
    ):
        self.logger = logger
        self.total_iterations = total_iterations
        self.log_every = max(log_every, 1)
        self.start_time = datetime.now()

    def log(self, iteration_idx: int, **metrics):
        """Log progress if at a logging interval (``iteration_idx`` is 0-based)."""
        if iteration_idx % self.log_every == 0 or iteration_idx == self.total_iterations - 1:
            metric_strs = [f"{k}={v:.4f}" if isinstance(v, float) else f"{k}={v}"
                           for k, v in metrics.items()]

            self.logger.info(
                f"Iteration {iteration_idx + 1}/{self.total_iterations} | "
                f"{' | '.join(metric_strs)}"
            )

    def finish(self, **final_metrics):
        """Log final results."""
        elapsed = (datetime.now() - self.start_time).total_seconds()

        metric_strs = [f"{k}={v:.4f}" if isinstance(v, float) else f"{k}={v}"
                       for k, v in final_metrics.items()]

        self.logger.info(
            f"Run completed in {elapsed:.2f}s | "
            f"{' | '.join(metric_strs)}"
        )
