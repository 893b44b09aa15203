"""
Random seed utilities for reproducibility.
"""

import random
import numpy as np


def set_seed(seed: int = 42):
    """
    Seed the global ``random`` and numpy generators.

    Game components take an explicit RandomState; this only covers code
    that falls back to the global generators.

    Args:
        seed: Random seed value
    """
    random.seed(seed)
    np.random.seed(seed)


def get_rng(seed: int = None) -> np.random.RandomState:
    """
    Get a numpy RandomState for reproducible random operations.

    Args:
        seed: Optional seed (fresh entropy if None)

    Returns:
        numpy RandomState instance
    """
    if seed is None:
        seed = int(np.random.default_rng().integers(0, 2**31))
    return np.random.RandomState(seed)
