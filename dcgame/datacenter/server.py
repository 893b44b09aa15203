"""
Server Capacity, Power and Utility Model

Power curve (linear in utilization, scaled by temperature):
    u = min(load / capacity, 1)
    P(load) = (P_idle + u × (P_busy - P_idle)) × (1 + (T - 20) × 0.01)

Server utility:
    U_s = load × r + QoS - P(load) × c_e - (load / capacity) × 1000 × c_sla

where QoS = 0.1 × load for servers with reliability > 0.95.
A failed server earns nothing and pays its idle power: U_s = -P_idle × c_e
"""

import numpy as np
from dataclasses import dataclass, asdict
from typing import Dict, Optional
from enum import Enum


BASELINE_TEMPERATURE = 20.0   # °C
TEMPERATURE_SWING = 60.0      # °C added at full utilization
TEMPERATURE_NOISE = 5.0       # width of the uniform noise band
TEMPERATURE_POWER_COEF = 0.01 # power increase per °C above baseline
QOS_RELIABILITY_THRESHOLD = 0.95
QOS_BONUS_RATE = 0.1


class ServerType(Enum):
    """Hardware classes in the pool."""
    STANDARD = "Standard"
    HIGH_PERFORMANCE = "High-Perf"
    EFFICIENT = "Efficient"


@dataclass
class Server:
    """
    A single server in the data-center pool.

    Attributes:
        server_id: Position of the server in the pool
        capacity: Maximum throughput (tasks/s)
        idle_power: Power draw at zero load (W)
        busy_power: Power draw at full load (W)
        server_type: Hardware class
        reliability: Availability score in [0.95, 1.0]
        active: Powered on by the leader
        failed: Simulated outage, independent of ``active``
        temperature: Current temperature (°C)
        current_load: Load assigned by all followers (tasks/s)
        utility: Last computed utility
    """
    server_id: int
    capacity: float
    idle_power: float
    busy_power: float
    server_type: ServerType = ServerType.STANDARD
    reliability: float = 1.0

    active: bool = True
    failed: bool = False
    temperature: float = BASELINE_TEMPERATURE
    current_load: float = 0.0
    utility: float = 0.0

    @property
    def is_eligible(self) -> bool:
        """Whether followers may place load on this server."""
        return self.active and not self.failed

    def utilization(self, load: float) -> float:
        """Fraction of capacity consumed by ``load``, capped at 1."""
        return min(load / self.capacity, 1.0)

    def utilization_power(self, load: float) -> float:
        """
        Power draw at a given load.

        Args:
            load: Load on the server (tasks/s)

        Returns:
            Power in Watts, including the temperature factor
        """
        u = self.utilization(load)
        base_power = self.idle_power + u * (self.busy_power - self.idle_power)
        temp_factor = 1.0 + (self.temperature - BASELINE_TEMPERATURE) * TEMPERATURE_POWER_COEF
        return base_power * temp_factor

    def response_time_ms(self, load: float) -> float:
        """Response time proxy in milliseconds."""
        return load / self.capacity * 1000.0

    def calculate_utility(
        self,
        load: float,
        energy_cost: float,
        sla_penalty: float,
        revenue_per_task: float
    ) -> float:
        """
        Compute server utility for a given load.

        Args:
            load: Load on the server (tasks/s)
            energy_cost: Cost per Watt
            sla_penalty: Penalty per ms of response time
            revenue_per_task: Revenue per task

        Returns:
            Utility value (failed servers ignore ``load``)
        """
        if self.failed:
            return -self.idle_power * energy_cost

        revenue = load * revenue_per_task
        energy_cost_total = self.utilization_power(load) * energy_cost
        sla_cost_total = self.response_time_ms(load) * sla_penalty
        qos_bonus = load * QOS_BONUS_RATE if self.reliability > QOS_RELIABILITY_THRESHOLD else 0.0

        return revenue + qos_bonus - energy_cost_total - sla_cost_total

    def update_temperature(
        self,
        load: float,
        rng: Optional[np.random.RandomState] = None
    ) -> float:
        """
        Overwrite the temperature from the current utilization.

        T = 20 + u × 60 + U(-2.5, 2.5)

        Args:
            load: Load on the server (tasks/s)
            rng: Random source for the noise term

        Returns:
            The new temperature
        """
        if rng is None:
            rng = np.random.RandomState()
        noise = (rng.random_sample() - 0.5) * TEMPERATURE_NOISE
        self.temperature = (
            BASELINE_TEMPERATURE + self.utilization(load) * TEMPERATURE_SWING + noise
        )
        return self.temperature

    def to_dict(self) -> Dict:
        """Convert to dictionary for serialization."""
        d = asdict(self)
        d['server_type'] = self.server_type.value
        return d

    @classmethod
    def from_dict(cls, d: Dict) -> 'Server':
        """Create from dictionary."""
        d = d.copy()
        d['server_type'] = ServerType(d['server_type'])
        return cls(**d)
