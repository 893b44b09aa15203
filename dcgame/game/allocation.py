"""
Follower Load-Allocation Algorithms

Each algorithm splits a follower's current load across the server pool,
given ``server_loads`` (the load other followers already place on each
server). Only eligible servers (active and not failed) receive load.

- Best Response:     greedy, increments of 10 to the lowest marginal cost
- Proportional Fair: share proportional to spare capacity
- Water Filling:     increments of 5 to the lowest utilization below 0.9
- Min-Max Fair:      unit increments to the least loaded server
- Random:            unit increments to a uniformly random server

Every algorithm returns a fresh allocation vector of pool length. The only
exception is Proportional Fair with no spare capacity anywhere, which hands
back the previous allocation unchanged.
"""

import numpy as np
from enum import Enum
from typing import List, Optional, Sequence

from ..datacenter.server import Server
from .utility import marginal_cost


MIN_REMAINING = 0.01
GREEDY_STEP = 10.0
WATER_FILLING_STEP = 5.0
WATER_FILLING_CAP = 0.9
UNIT_STEP = 1.0


class AllocationAlgorithm(Enum):
    """Allocation algorithms available to followers."""
    BEST_RESPONSE = "Best Response"
    PROPORTIONAL_FAIR = "Proportional Fair"
    WATER_FILLING = "Water Filling"
    MIN_MAX_FAIR = "Min-Max Fair"
    RANDOM = "Random"


def eligible_indices(servers: Sequence[Server]) -> List[int]:
    """Indices of servers that may receive load."""
    return [i for i, s in enumerate(servers) if s.is_eligible]


def greedy_best_response(
    servers: Sequence[Server],
    server_loads: np.ndarray,
    current_load: float
) -> np.ndarray:
    """
    Greedy best response.

    Repeatedly place min(remaining, 10) on the eligible server with the
    lowest marginal cost. Ties go to the lowest index.
    """
    allocation = np.zeros(len(servers))
    remaining = current_load

    while remaining > MIN_REMAINING:
        best_server = -1
        min_cost = np.inf

        for i, server in enumerate(servers):
            if not server.is_eligible:
                continue
            cost = marginal_cost(server, server_loads[i] + allocation[i])
            if cost < min_cost:
                min_cost = cost
                best_server = i

        if best_server == -1:
            break

        increment = min(remaining, GREEDY_STEP)
        allocation[best_server] += increment
        remaining -= increment

    return allocation


def proportional_fair(
    servers: Sequence[Server],
    server_loads: np.ndarray,
    current_load: float,
    previous: np.ndarray
) -> np.ndarray:
    """
    Split the load in proportion to each eligible server's spare capacity.

    spare_i = max(0, μ_i - server_loads_i)
    x_i = L × spare_i / Σ spare

    With zero total spare capacity the previous allocation is kept.
    """
    spare = np.zeros(len(servers))
    for i in eligible_indices(servers):
        spare[i] = max(0.0, servers[i].capacity - server_loads[i])

    total_spare = spare.sum()
    if total_spare <= 0:
        return previous.copy()

    return current_load * (spare / total_spare)


def water_filling(
    servers: Sequence[Server],
    server_loads: np.ndarray,
    current_load: float
) -> np.ndarray:
    """
    Fill the least utilized eligible server in steps of 5.

    A server only qualifies while its utilization is below 0.9. Load that
    does not fit under the cap stays unallocated.
    """
    allocation = np.zeros(len(servers))
    remaining = current_load

    while remaining > MIN_REMAINING:
        lowest_server = -1
        lowest_level = np.inf

        for i, server in enumerate(servers):
            if not server.is_eligible:
                continue
            level = (server_loads[i] + allocation[i]) / server.capacity
            if level < lowest_level and level < WATER_FILLING_CAP:
                lowest_level = level
                lowest_server = i

        if lowest_server == -1:
            break

        increment = min(remaining, WATER_FILLING_STEP)
        allocation[lowest_server] += increment
        remaining -= increment

    return allocation


def min_max_fair(
    servers: Sequence[Server],
    server_loads: np.ndarray,
    current_load: float
) -> np.ndarray:
    """
    Minimize the peak load with floor(L) unit steps.

    Each unit goes to the eligible server with the lowest combined load;
    ties go to the lowest index.
    """
    allocation = np.zeros(len(servers))
    candidates = eligible_indices(servers)
    if not candidates:
        return allocation

    n_steps = int(np.floor(current_load / UNIT_STEP))
    for _ in range(n_steps):
        target = min(candidates, key=lambda i: server_loads[i] + allocation[i])
        allocation[target] += UNIT_STEP

    return allocation


def random_allocation(
    servers: Sequence[Server],
    current_load: float,
    rng: np.random.RandomState
) -> np.ndarray:
    """Place unit increments on uniformly random eligible servers."""
    allocation = np.zeros(len(servers))
    candidates = eligible_indices(servers)
    if not candidates:
        return allocation

    assigned = 0.0
    while assigned < current_load:
        target = candidates[rng.randint(len(candidates))]
        allocation[target] += UNIT_STEP
        assigned += UNIT_STEP

    return allocation


def allocate(
    algorithm: AllocationAlgorithm,
    servers: Sequence[Server],
    server_loads: np.ndarray,
    current_load: float,
    previous: np.ndarray,
    rng: Optional[np.random.RandomState] = None
) -> np.ndarray:
    """
    Run an allocation algorithm.

    Args:
        algorithm: Algorithm to run
        servers: Full server pool
        server_loads: Load other followers place on each server
        current_load: Load to distribute
        previous: Follower's current allocation
        rng: Random source (Random algorithm only)

    Returns:
        New allocation vector of pool length
    """
    if algorithm is AllocationAlgorithm.BEST_RESPONSE:
        return greedy_best_response(servers, server_loads, current_load)
    if algorithm is AllocationAlgorithm.PROPORTIONAL_FAIR:
        return proportional_fair(servers, server_loads, current_load, previous)
    if algorithm is AllocationAlgorithm.WATER_FILLING:
        return water_filling(servers, server_loads, current_load)
    if algorithm is AllocationAlgorithm.MIN_MAX_FAIR:
        return min_max_fair(servers, server_loads, current_load)
    if algorithm is AllocationAlgorithm.RANDOM:
        if rng is None:
            rng = np.random.RandomState()
        return random_allocation(servers, current_load, rng)
    raise ValueError(f"Unknown allocation algorithm: {algorithm}")
