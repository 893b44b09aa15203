"""
System metrics for data-center game runs.
"""

import numpy as np
from typing import Optional, Sequence

from ..datacenter.server import Server


class MetricsCalculator:
    """
    Load-distribution and welfare metrics.

    Load balance and utilization are taken over servers with ``active`` set;
    a failed server that is still switched on counts with its (zero) load.
    """

    @staticmethod
    def server_loads(allocations: Sequence[np.ndarray], n_servers: int) -> np.ndarray:
        """Total load per server summed over all followers."""
        loads = np.zeros(n_servers)
        for allocation in allocations:
            loads += allocation
        return loads

    @staticmethod
    def load_balance(loads: np.ndarray, servers: Sequence[Server]) -> Optional[float]:
        """
        Mean-to-peak load ratio over active servers, in percent.

        Returns:
            Balance in [0, 100], or None with no active server or zero peak
        """
        active = [loads[i] for i, s in enumerate(servers) if s.active]
        if not active:
            return None
        peak = max(active)
        if peak == 0:
            return None
        return float(np.mean(active) / peak * 100)

    @staticmethod
    def average_utilization(loads: np.ndarray, servers: Sequence[Server]) -> Optional[float]:
        """
        Mean capped utilization over active servers, in percent.

        Returns:
            Utilization in [0, 100], or None with no active server
        """
        utils = [s.utilization(loads[i]) for i, s in enumerate(servers) if s.active]
        if not utils:
            return None
        return float(np.mean(utils) * 100)

    @staticmethod
    def efficiency(social_welfare: float, profit: float) -> float:
        """Social welfare as a percentage of profit; 0 unless profit is positive."""
        if profit > 0:
            return social_welfare / profit * 100
        return 0.0

    @staticmethod
    def format_percent(value: Optional[float]) -> str:
        """``12.3%`` or ``N/A``."""
        if value is None:
            return "N/A"
        return f"{value:.1f}%"
