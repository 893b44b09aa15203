"""
Utilities: logging, seeding, metrics and result export.
"""

from .logger import setup_logger, get_logger, ProgressLogger
from .seed import set_seed, get_rng
from .metrics import MetricsCalculator
from .results import ResultManager, ExperimentTracker

__all__ = [
    "setup_logger",
    "get_logger",
    "ProgressLogger",
    "set_seed",
    "get_rng",
    "MetricsCalculator",
    "ResultManager",
    "ExperimentTracker"
]
