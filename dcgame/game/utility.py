"""
Utility and Cost Functions for the Data-Center Stackelberg Game

Follower (scheduler) utility:
    U_f = L × r × (1 + 0.1 × [priority > 0.8])
          - Σ_i [ P_i(x_i) × c_e + (x_i / μ_i) × 1000 × c_sla ]

where L is the follower's current load, x_i its allocation to server i and
μ_i the server capacity. Only servers with x_i > 0 contribute cost.

Greedy marginal cost (used by the best-response allocation):
    MC_i(ℓ) = P_i(ℓ) × 0.12 + (ℓ / μ_i) × 1000 × 0.05

The 0.12 / 0.05 coefficients are fixed and do not follow the run's
economic parameters.

Leader profit estimate for an activation:
    Π = Σ_f L_f × r - Σ_{i active} P_idle,i × c_e
"""

import numpy as np
from typing import Sequence

from ..datacenter.server import Server


GREEDY_ENERGY_COST = 0.12
GREEDY_SLA_PENALTY = 0.05

PRIORITY_BONUS_THRESHOLD = 0.8
PRIORITY_BONUS_RATE = 0.1


def marginal_cost(server: Server, load: float) -> float:
    """
    Marginal cost of placing ``load`` on ``server`` for the greedy best response.

    Args:
        server: Candidate server
        load: Combined load (other followers + own partial allocation)

    Returns:
        Marginal cost
    """
    energy = server.utilization_power(load) * GREEDY_ENERGY_COST
    return energy + server.response_time_ms(load) * GREEDY_SLA_PENALTY


class UtilityCalculator:
    """
    Calculate utilities for followers, servers and the leader.

    Usage:
        calc = UtilityCalculator(energy_cost=0.12, sla_penalty=0.05, revenue_per_task=0.5)
        u = calc.follower_utility(servers, allocation, current_load=100.0, priority=0.9)
    """

    def __init__(
        self,
        energy_cost: float = 0.12,
        sla_penalty: float = 0.05,
        revenue_per_task: float = 0.5
    ):
        """
        Args:
            energy_cost: Cost per Watt
            sla_penalty: Penalty per ms of response time
            revenue_per_task: Revenue per served task
        """
        self.energy_cost = energy_cost
        self.sla_penalty = sla_penalty
        self.revenue_per_task = revenue_per_task

    def serving_cost(self, server: Server, load: float) -> float:
        """Energy plus SLA cost of running ``load`` on ``server``."""
        energy = server.utilization_power(load) * self.energy_cost
        sla = server.response_time_ms(load) * self.sla_penalty
        return energy + sla

    def follower_utility(
        self,
        servers: Sequence[Server],
        allocation: np.ndarray,
        current_load: float,
        priority: float
    ) -> float:
        """
        Compute a follower's utility for an allocation vector.

        Revenue is earned on the follower's full current load, not on the
        allocated part.

        Args:
            servers: Full server pool
            allocation: Load assigned to each server
            current_load: Follower's current load
            priority: Follower priority in [0.5, 1.0]

        Returns:
            Utility value
        """
        revenue = current_load * self.revenue_per_task

        total_cost = 0.0
        for server, x in zip(servers, allocation):
            if x > 0:
                total_cost += self.serving_cost(server, x)

        priority_bonus = revenue * PRIORITY_BONUS_RATE if priority > PRIORITY_BONUS_THRESHOLD else 0.0

        return revenue + priority_bonus - total_cost

    def server_utility(self, server: Server, load: float) -> float:
        """Compute server utility at the run's economic parameters."""
        return server.calculate_utility(
            load, self.energy_cost, self.sla_penalty, self.revenue_per_task
        )

    def leader_profit(
        self,
        servers: Sequence[Server],
        total_follower_load: float
    ) -> float:
        """
        Estimate the leader's profit for the current activation.

        Π = total_load × r - Σ_{active} P_idle × c_e
        """
        revenue = total_follower_load * self.revenue_per_task
        cost = sum(s.idle_power * self.energy_cost for s in servers if s.active)
        return revenue - cost
