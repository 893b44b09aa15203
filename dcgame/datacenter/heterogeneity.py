"""
Server Pool Generator

Builds the server pool for one simulation run from a server mix:
1. Homogeneous: identical standard servers (capacity jitter only)
2. Heterogeneous: High-Perf / Standard / Efficient round robin
3. High-Performance Mix: fast, power-hungry servers
4. Energy-Efficient Mix: slower, frugal servers

Ranges are loaded from config/datacenter/server_mix.yaml. Each range is
[base, base + spread) drawn as an integer offset.
"""

import logging
import numpy as np
import yaml
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from .server import Server, ServerType

logger = logging.getLogger(__name__)


class ServerMix(Enum):
    """Server pool compositions."""
    HOMOGENEOUS = "Homogeneous"
    HETEROGENEOUS = "Heterogeneous"
    HIGH_PERFORMANCE = "High-Performance Mix"
    ENERGY_EFFICIENT = "Energy-Efficient Mix"


def load_server_mix_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load server mix configuration from YAML file.

    Args:
        config_path: Path to config file. If None, uses default location.

    Returns:
        Configuration dictionary
    """
    if config_path is None:
        current = Path(__file__).resolve()
        project_root = current.parent.parent.parent
        config_path = project_root / "config" / "datacenter" / "server_mix.yaml"

    config_path = Path(config_path)

    if not config_path.exists():
        logger.warning("Config file not found at %s, using defaults", config_path)
        return get_default_config()

    with open(config_path, 'r') as f:
        return yaml.safe_load(f)


def get_default_config() -> Dict[str, Any]:
    """Return default configuration if file not found."""
    return {
        "mixes": {
            "homogeneous": {
                "capacity": [100, 20], "idle_power": [50, 0], "busy_power": [200, 0],
                "types": ["standard"],
            },
            "heterogeneous": {
                "capacity": [80, 80], "idle_power": [40, 30], "busy_power": [150, 100],
                "types": ["high_perf", "standard", "efficient"],
            },
            "high_performance": {
                "capacity": [120, 40], "idle_power": [60, 20], "busy_power": [200, 50],
                "types": ["high_perf"],
            },
            "energy_efficient": {
                "capacity": [90, 30], "idle_power": [30, 20], "busy_power": [120, 40],
                "types": ["efficient"],
            },
        },
        "reliability": {"min": 0.95, "spread": 0.05},
        "failures": {"probability": 0.1},
    }


class ServerPoolGenerator:
    """
    Generates the server pool for a run.

    Usage:
        generator = ServerPoolGenerator(n_servers=10, mix=ServerMix.HETEROGENEOUS, seed=42)
        servers = generator.generate()

        # Share one random stream with the rest of the run
        generator = ServerPoolGenerator(n_servers=10, rng=rng, inject_failures=True)
    """

    MIX_MAPPING = {
        "homogeneous": ServerMix.HOMOGENEOUS,
        "heterogeneous": ServerMix.HETEROGENEOUS,
        "high_performance": ServerMix.HIGH_PERFORMANCE,
        "energy_efficient": ServerMix.ENERGY_EFFICIENT,
    }

    TYPE_MAPPING = {
        "standard": ServerType.STANDARD,
        "high_perf": ServerType.HIGH_PERFORMANCE,
        "efficient": ServerType.EFFICIENT,
    }

    def __init__(
        self,
        n_servers: int,
        mix: ServerMix = ServerMix.HOMOGENEOUS,
        inject_failures: bool = False,
        failure_probability: Optional[float] = None,
        config_path: Optional[str] = None,
        config_override: Optional[Dict] = None,
        seed: int = 42,
        rng: Optional[np.random.RandomState] = None
    ):
        """
        Args:
            n_servers: Pool size
            mix: Server mix
            inject_failures: Mark servers as failed at random
            failure_probability: Per-server failure probability (config value if None)
            config_path: Path to server mix YAML
            config_override: Dict to override specific config values
            seed: Random seed, used when ``rng`` is not given
            rng: Shared random source
        """
        self.n_servers = n_servers
        self.mix = mix
        self.inject_failures = inject_failures
        self.seed = seed
        self.rng = rng if rng is not None else np.random.RandomState(seed)

        self.config = load_server_mix_config(config_path)
        if config_override:
            self._apply_overrides(config_override)

        self._parse_config()
        if failure_probability is not None:
            self.failure_probability = failure_probability

    def _apply_overrides(self, overrides: Dict):
        """Apply configuration overrides."""
        def deep_update(base: Dict, updates: Dict):
            for key, value in updates.items():
                if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                    deep_update(base[key], value)
                else:
                    base[key] = value
        deep_update(self.config, overrides)

    def _parse_config(self):
        """Parse configuration into usable format."""
        self.mix_configs = {}
        for mix_key, mix_config in self.config["mixes"].items():
            self.mix_configs[self.MIX_MAPPING[mix_key]] = {
                "capacity": tuple(mix_config["capacity"]),
                "idle_power": tuple(mix_config["idle_power"]),
                "busy_power": tuple(mix_config["busy_power"]),
                "types": [self.TYPE_MAPPING[t] for t in mix_config["types"]],
            }

        rel_config = self.config.get("reliability", {})
        self.reliability_min = rel_config.get("min", 0.95)
        self.reliability_spread = rel_config.get("spread", 0.05)

        self.failure_probability = self.config.get("failures", {}).get("probability", 0.1)

    def _draw(self, base_spread) -> float:
        base, spread = base_spread
        offset = self.rng.randint(spread) if spread > 0 else 0
        return float(base + offset)

    def generate(self) -> List[Server]:
        """
        Generate the server pool.

        Returns:
            List of Server, indexed by position
        """
        if self.mix not in self.mix_configs:
            raise ValueError(
                f"Unknown server mix: {self.mix}. Available: {[m.value for m in self.mix_configs]}"
            )
        mix_config = self.mix_configs[self.mix]
        types = mix_config["types"]

        servers = []
        for i in range(self.n_servers):
            server = Server(
                server_id=i,
                capacity=self._draw(mix_config["capacity"]),
                idle_power=self._draw(mix_config["idle_power"]),
                busy_power=self._draw(mix_config["busy_power"]),
                server_type=types[i % len(types)],
                reliability=self.reliability_min + self.rng.random_sample() * self.reliability_spread
            )

            if self.inject_failures and self.rng.random_sample() < self.failure_probability:
                server.failed = True

            servers.append(server)

        n_failed = sum(1 for s in servers if s.failed)
        if n_failed:
            logger.info("Failure injection: %d/%d servers offline", n_failed, len(servers))

        return servers

    def get_statistics(self, servers: List[Server]) -> Dict:
        """
        Compute statistics about the generated pool.

        Args:
            servers: List of Server

        Returns:
            Dictionary with statistics
        """
        type_counts = {}
        for st in ServerType:
            type_counts[st.value] = sum(1 for s in servers if s.server_type == st)

        capacities = [s.capacity for s in servers]
        idle = [s.idle_power for s in servers]

        return {
            "n_servers": len(servers),
            "mix": self.mix.value,
            "type_distribution": type_counts,
            "n_failed": sum(1 for s in servers if s.failed),
            "capacity_stats": {
                "min": min(capacities) if capacities else 0.0,
                "max": max(capacities) if capacities else 0.0,
                "mean": float(np.mean(capacities)) if capacities else 0.0,
                "total": float(np.sum(capacities)),
            },
            "idle_power_stats": {
                "mean": float(np.mean(idle)) if idle else 0.0,
            },
        }

    def get_config_summary(self) -> str:
        """Return a human-readable summary of the configuration."""
        cfg = self.mix_configs[self.mix]
        lines = [
            "Server Pool Configuration:",
            f"  Servers: {self.n_servers}",
            f"  Mix: {self.mix.value}",
            f"  Seed: {self.seed}",
            f"  Capacity: {cfg['capacity'][0]}+[0,{cfg['capacity'][1]}) t/s",
            f"  Idle power: {cfg['idle_power'][0]}+[0,{cfg['idle_power'][1]}) W",
            f"  Busy power: {cfg['busy_power'][0]}+[0,{cfg['busy_power'][1]}) W",
            f"  Types: {', '.join(t.value for t in cfg['types'])}",
        ]
        if self.inject_failures:
            lines.append(f"  Failure probability: {self.failure_probability:.2f}")
        return "\n".join(lines)


def create_servers(
    n_servers: int,
    mix: ServerMix = ServerMix.HOMOGENEOUS,
    config_path: Optional[str] = None,
    seed: int = 42
) -> List[Server]:
    """
    Convenience function to create a server pool.

    Args:
        n_servers: Number of servers
        mix: Server mix
        config_path: Optional path to config file
        seed: Random seed

    Returns:
        List of Server
    """
    generator = ServerPoolGenerator(
        n_servers=n_servers,
        mix=mix,
        config_path=config_path,
        seed=seed
    )
    return generator.generate()
