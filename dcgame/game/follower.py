"""
Follower (Load Scheduler) Model

Each follower owns a stream of tasks and decides how to split it across
the active servers. Its load varies with a load pattern evaluated at a
time step t:

    Uniform:     L = λ
    Bursty:      L = λ × (1 + 0.5 sin(0.5 t))
    Peak Hours:  L = λ × (0.5 + 1.5 sin²(π h)),  h = (t mod 24) / 24
    Random:      L = λ × (0.5 + U[0, 1))
    Decreasing:  L = λ × exp(-0.1 t)
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence
from enum import Enum

from ..datacenter.server import Server
from .allocation import AllocationAlgorithm, allocate
from .utility import UtilityCalculator


class LoadPattern(Enum):
    """Time-varying load patterns."""
    UNIFORM = "Uniform"
    BURSTY = "Bursty"
    PEAK_HOURS = "Peak Hours"
    RANDOM = "Random"
    DECREASING = "Decreasing"


def pattern_load(
    pattern: LoadPattern,
    base_rate: float,
    time_step: int = 0,
    rng: Optional[np.random.RandomState] = None
) -> float:
    """
    Evaluate a load pattern.

    Args:
        pattern: Load pattern
        base_rate: Nominal arrival rate λ
        time_step: Time step t
        rng: Random source (Random pattern only)

    Returns:
        Current load
    """
    if pattern is LoadPattern.UNIFORM:
        return base_rate
    if pattern is LoadPattern.BURSTY:
        return base_rate * (1.0 + 0.5 * np.sin(time_step * 0.5))
    if pattern is LoadPattern.PEAK_HOURS:
        hour = (time_step % 24) / 24.0
        return base_rate * (0.5 + 1.5 * np.sin(np.pi * hour) ** 2)
    if pattern is LoadPattern.RANDOM:
        if rng is None:
            rng = np.random.RandomState()
        return base_rate * (0.5 + rng.random_sample())
    if pattern is LoadPattern.DECREASING:
        return base_rate * np.exp(-time_step * 0.1)
    raise ValueError(f"Unknown load pattern: {pattern}")


@dataclass
class Follower:
    """
    A load-scheduling agent.

    Attributes:
        follower_id: Position of the follower in the run
        base_rate: Nominal arrival rate (tasks/s)
        allocation: Load assigned to each server in the full pool
        priority: QoS priority in [0.5, 1.0]
        load_pattern: Pattern driving ``current_load``
        current_load: Load to place this step (defaults to ``base_rate``)
        utility: Last computed utility
    """
    follower_id: int
    base_rate: float
    allocation: np.ndarray
    priority: float = 0.5
    load_pattern: LoadPattern = LoadPattern.UNIFORM
    current_load: Optional[float] = None
    utility: float = 0.0

    def __post_init__(self):
        self.allocation = np.asarray(self.allocation, dtype=float)
        if self.current_load is None:
            self.current_load = self.base_rate

    @property
    def total_allocated(self) -> float:
        return float(self.allocation.sum())

    @property
    def unmet_load(self) -> float:
        """Load left unplaced because no eligible server remained."""
        return max(0.0, self.current_load - self.total_allocated)

    def update_load(
        self,
        time_step: int = 0,
        rng: Optional[np.random.RandomState] = None
    ) -> float:
        """Refresh ``current_load`` from the load pattern."""
        self.current_load = pattern_load(self.load_pattern, self.base_rate, time_step, rng)
        return self.current_load

    def observed_loads(self, followers: Sequence['Follower']) -> np.ndarray:
        """
        Load every other follower currently places on each server.

        Reads the live allocation vectors, so a follower updated earlier in
        the same pass is seen with its new allocation.
        """
        loads = np.zeros(len(self.allocation))
        for other in followers:
            if other is not self:
                loads += other.allocation
        return loads

    def best_response(
        self,
        servers: Sequence[Server],
        followers: Sequence['Follower'],
        algorithm: AllocationAlgorithm,
        rng: Optional[np.random.RandomState] = None
    ) -> np.ndarray:
        """
        Recompute this follower's allocation against the others.

        Args:
            servers: Full server pool
            followers: All followers in the run (self included)
            algorithm: Allocation algorithm
            rng: Random source

        Returns:
            The new allocation vector
        """
        server_loads = self.observed_loads(followers)
        self.allocation = allocate(
            algorithm, servers, server_loads, self.current_load, self.allocation, rng
        )
        return self.allocation

    def calculate_utility(
        self,
        servers: Sequence[Server],
        energy_cost: float,
        sla_penalty: float,
        revenue_per_task: float
    ) -> float:
        """Recompute and store the follower's utility."""
        calc = UtilityCalculator(energy_cost, sla_penalty, revenue_per_task)
        self.utility = calc.follower_utility(
            servers, self.allocation, self.current_load, self.priority
        )
        return self.utility

    def allocation_summary(self, min_load: float = 1.0) -> List[str]:
        """Entries like ``S3:40`` for servers holding more than ``min_load``."""
        return [
            f"S{i}:{x:.0f}"
            for i, x in enumerate(self.allocation)
            if x > min_load
        ]

    def to_dict(self) -> Dict:
        """Convert to dictionary for serialization."""
        return {
            "follower_id": self.follower_id,
            "base_rate": self.base_rate,
            "current_load": self.current_load,
            "priority": self.priority,
            "load_pattern": self.load_pattern.value,
            "allocation": self.allocation.tolist(),
            "utility": self.utility,
        }


def create_followers(
    n_followers: int,
    n_servers: int,
    load_pattern: LoadPattern = LoadPattern.UNIFORM,
    rng: Optional[np.random.RandomState] = None,
    rate_range: Sequence[int] = (40, 100)
) -> List[Follower]:
    """
    Create followers with random arrival rates and priorities.

    base_rate = integer in [rate_range[0], rate_range[1])
    priority  = 0.5 + 0.5 × U[0, 1)

    Args:
        n_followers: Number of followers
        n_servers: Server pool size (allocation vector length)
        load_pattern: Load pattern shared by all followers
        rng: Random source
        rate_range: Half-open range of base arrival rates

    Returns:
        List of Follower
    """
    if rng is None:
        rng = np.random.RandomState()

    lo, hi = rate_range
    followers = []
    for i in range(n_followers):
        base_rate = float(lo + rng.randint(hi - lo))
        priority = 0.5 + rng.random_sample() * 0.5
        followers.append(Follower(
            follower_id=i,
            base_rate=base_rate,
            allocation=np.zeros(n_servers),
            priority=priority,
            load_pattern=load_pattern
        ))
    return followers
