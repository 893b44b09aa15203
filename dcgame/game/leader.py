"""
Leader Strategy Selector

The leader (data-center operator) commits first by choosing which servers
are powered on. Seven activation policies are available:

    Energy Efficient:   ascending idle power, ceil(ΣL / 100) servers
    Load Balanced:      descending capacity, 70% of the pool
    Profit Maximizing:  random search over activations, best profit kept
    QoS Focused:        descending capacity × reliability, ceil(ΣL / 80)
    Adaptive:           picks one of the above from the mean follower load
    Conservative:       ceil(ΣL / 70) + 2 servers in pool order
    Aggressive:         ceil(ΣL / 120) servers in pool order

Sorting never reorders the pool itself: a policy ranks server indices and
toggles ``active`` on the servers it ranks first. Sorting is stable, so
ties keep pool order.
"""

import math
import time
import numpy as np
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from ..datacenter.server import Server
from .follower import Follower
from .utility import UtilityCalculator


ENERGY_EFFICIENT_LOAD_PER_SERVER = 100.0
QOS_LOAD_PER_SERVER = 80.0
CONSERVATIVE_LOAD_PER_SERVER = 70.0
CONSERVATIVE_MARGIN = 2
AGGRESSIVE_LOAD_PER_SERVER = 120.0
LOAD_BALANCED_FRACTION = 0.7
PROFIT_SEARCH_TRIALS = 100
ADAPTIVE_LOW_LOAD = 50.0
ADAPTIVE_HIGH_LOAD = 100.0

PEAK_START_HOUR = 9
PEAK_END_HOUR = 17
PEAK_ENERGY_MULTIPLIER = 1.5
PEAK_SLA_MULTIPLIER = 1.2
OFF_PEAK_ENERGY_MULTIPLIER = 0.8


class LeaderStrategy(Enum):
    """Server activation policies."""
    ENERGY_EFFICIENT = "Energy Efficient"
    LOAD_BALANCED = "Load Balanced"
    PROFIT_MAXIMIZING = "Profit Maximizing"
    QOS_FOCUSED = "QoS Focused"
    ADAPTIVE = "Adaptive"
    CONSERVATIVE = "Conservative"
    AGGRESSIVE = "Aggressive"


class OptimizationGoal(Enum):
    """Operator goal, reported alongside the leader decision."""
    COST_MINIMIZATION = "Cost Minimization"
    PROFIT_MAXIMIZATION = "Profit Maximization"
    QOS_MAXIMIZATION = "QoS Maximization"
    ENERGY_MINIMIZATION = "Energy Minimization"
    BALANCED = "Balanced"


@dataclass
class LeaderDecision:
    """
    Result of one leader decision.

    Attributes:
        strategy: Policy that was requested
        applied: Policy that actually set the activation (differs for Adaptive)
        n_activated: Number of servers with ``active`` set
        lines: Decision rationale for the step report
        expected_profit: Best profit found (Profit Maximizing only)
    """
    strategy: LeaderStrategy
    applied: LeaderStrategy
    n_activated: int
    lines: List[str] = field(default_factory=list)
    expected_profit: Optional[float] = None


def total_load(followers: Sequence[Follower]) -> float:
    return float(sum(f.current_load for f in followers))


def servers_needed(load: float, load_per_server: float) -> int:
    return int(math.ceil(load / load_per_server))


def activate_ranked(servers: Sequence[Server], order: Sequence[int], count: int) -> None:
    """Set ``active`` on the first ``count`` servers of ``order``, clear the rest."""
    for rank, idx in enumerate(order):
        servers[idx].active = rank < count


class LeaderStrategySelector:
    """
    Applies a leader policy to the server pool.

    Usage:
        selector = LeaderStrategySelector(rng=np.random.RandomState(0))
        decision = selector.decide(LeaderStrategy.ADAPTIVE, servers, followers, calculator)
    """

    def __init__(self, rng: Optional[np.random.RandomState] = None):
        """
        Args:
            rng: Random source for the profit-maximizing search
        """
        self.rng = rng if rng is not None else np.random.RandomState()

    def decide(
        self,
        strategy: LeaderStrategy,
        servers: Sequence[Server],
        followers: Sequence[Follower],
        calculator: UtilityCalculator
    ) -> LeaderDecision:
        """
        Apply ``strategy`` to the pool.

        Args:
            strategy: Activation policy
            servers: Full server pool (mutated in place)
            followers: All followers
            calculator: Current economic parameters

        Returns:
            LeaderDecision
        """
        lines: List[str] = []
        expected_profit = None
        applied = strategy

        if strategy is LeaderStrategy.ENERGY_EFFICIENT:
            self._energy_efficient(servers, followers, lines)
        elif strategy is LeaderStrategy.LOAD_BALANCED:
            self._load_balanced(servers, lines)
        elif strategy is LeaderStrategy.PROFIT_MAXIMIZING:
            expected_profit = self._profit_maximizing(servers, followers, calculator, lines)
        elif strategy is LeaderStrategy.QOS_FOCUSED:
            self._qos_focused(servers, followers, lines)
        elif strategy is LeaderStrategy.ADAPTIVE:
            applied = self._adaptive(servers, followers, lines)
        elif strategy is LeaderStrategy.CONSERVATIVE:
            self._conservative(servers, followers, lines)
        elif strategy is LeaderStrategy.AGGRESSIVE:
            self._aggressive(servers, followers, lines)
        else:
            raise ValueError(f"Unknown leader strategy: {strategy}")

        return LeaderDecision(
            strategy=strategy,
            applied=applied,
            n_activated=sum(1 for s in servers if s.active),
            lines=lines,
            expected_profit=expected_profit
        )

    def _energy_efficient(self, servers, followers, lines):
        needed = min(servers_needed(total_load(followers), ENERGY_EFFICIENT_LOAD_PER_SERVER), len(servers))
        order = sorted(range(len(servers)), key=lambda i: servers[i].idle_power)
        activate_ranked(servers, order, needed)

        lines.append(f"Decision: Activate {needed} most energy-efficient servers")
        lines.append("Criterion: Minimize total energy consumption")

    def _load_balanced(self, servers, lines):
        count = int(len(servers) * LOAD_BALANCED_FRACTION)
        order = sorted(range(len(servers)), key=lambda i: -servers[i].capacity)
        activate_ranked(servers, order, count)

        lines.append(f"Decision: Activate 70% of servers ({count})")
        lines.append("Criterion: Balance load across multiple servers")

    def _profit_maximizing(self, servers, followers, calculator, lines) -> float:
        n = len(servers)
        n_trials = min(PROFIT_SEARCH_TRIALS, 1 << n)
        load = total_load(followers)

        max_profit = -np.inf
        best_config = [False] * n

        for trial in range(n_trials):
            for i, server in enumerate(servers):
                coin = self.rng.randint(2) == 1
                server.active = coin or (trial == 0 and i < n // 2)

            profit = calculator.leader_profit(servers, load)
            if profit > max_profit:
                max_profit = profit
                best_config = [s.active for s in servers]

        for server, active in zip(servers, best_config):
            server.active = active

        lines.append(f"Decision: Activate {sum(best_config)} servers")
        lines.append(f"Expected Profit: ${max_profit:.2f}")
        lines.append("Criterion: Maximize system profit")
        return float(max_profit)

    def _qos_focused(self, servers, followers, lines):
        needed = servers_needed(total_load(followers), QOS_LOAD_PER_SERVER)
        order = sorted(
            range(len(servers)),
            key=lambda i: -(servers[i].capacity * servers[i].reliability)
        )
        activate_ranked(servers, order, needed)

        lines.append(f"Decision: Activate {needed} high-QoS servers")
        lines.append("Criterion: Maximize reliability and minimize response time")

    def _adaptive(self, servers, followers, lines) -> LeaderStrategy:
        avg_load = total_load(followers) / max(len(followers), 1)

        if avg_load < ADAPTIVE_LOW_LOAD:
            self._energy_efficient(servers, followers, lines)
            lines.append("Adaptive: Low load → Energy efficient mode")
            return LeaderStrategy.ENERGY_EFFICIENT
        if avg_load > ADAPTIVE_HIGH_LOAD:
            self._qos_focused(servers, followers, lines)
            lines.append("Adaptive: High load → QoS focused mode")
            return LeaderStrategy.QOS_FOCUSED
        self._load_balanced(servers, lines)
        lines.append("Adaptive: Medium load → Load balanced mode")
        return LeaderStrategy.LOAD_BALANCED

    def _conservative(self, servers, followers, lines):
        needed = servers_needed(total_load(followers), CONSERVATIVE_LOAD_PER_SERVER)
        needed = min(len(servers), needed + CONSERVATIVE_MARGIN)
        activate_ranked(servers, range(len(servers)), needed)

        lines.append(f"Decision: Activate {needed} servers (conservative)")
        lines.append("Criterion: Ensure capacity margin for unexpected load")

    def _aggressive(self, servers, followers, lines):
        needed = servers_needed(total_load(followers), AGGRESSIVE_LOAD_PER_SERVER)
        activate_ranked(servers, range(len(servers)), needed)

        lines.append(f"Decision: Activate {needed} servers (aggressive)")
        lines.append("Criterion: Minimize costs, accept higher utilization")


class DynamicPricing:
    """
    Time-of-day price adjustment.

    Peak hours (UTC 09:00-17:59): energy cost × 1.5, SLA penalty × 1.2
    Off-peak:                     energy cost × 0.8

    Multipliers apply to whatever values they are given, so repeated calls
    compound.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        """
        Args:
            clock: Returns seconds since the epoch
        """
        self.clock = clock

    def current_hour(self) -> int:
        return int(self.clock() // 3600) % 24

    def is_peak(self) -> bool:
        return PEAK_START_HOUR <= self.current_hour() <= PEAK_END_HOUR

    def apply(
        self,
        energy_cost: float,
        sla_penalty: float
    ) -> Tuple[float, float, List[str]]:
        """
        Adjust prices for the current hour.

        Returns:
            (energy_cost, sla_penalty, report lines)
        """
        if self.is_peak():
            return (
                energy_cost * PEAK_ENERGY_MULTIPLIER,
                sla_penalty * PEAK_SLA_MULTIPLIER,
                ["Peak hours detected: Higher costs applied"]
            )
        return (
            energy_cost * OFF_PEAK_ENERGY_MULTIPLIER,
            sla_penalty,
            ["Off-peak hours: Reduced energy costs"]
        )
