"""
Configuration for data-center game runs.

YAML files are organised in four sections (system, game, economics,
features). Experiment files may inherit from another file through a
``_base_`` key; the child overrides the base key by key.
"""

import yaml
from dataclasses import dataclass, asdict
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar

from .datacenter.heterogeneity import ServerMix
from .game.allocation import AllocationAlgorithm
from .game.follower import LoadPattern
from .game.leader import LeaderStrategy, OptimizationGoal

E = TypeVar("E", bound=Enum)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "default.yaml"


def load_config(config_path: str) -> Dict[str, Any]:
    """Load YAML configuration file."""
    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}

    # Handle inheritance
    if '_base_' in config:
        base_path = Path(config_path).parent / config['_base_']
        base_config = load_config(str(base_path))
        # Merge: config overrides base
        merged = deep_merge(base_config, config)
        del merged['_base_']
        return merged

    return config


def deep_merge(base: Dict, override: Dict) -> Dict:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def parse_enum(enum_cls: Type[E], name: Any) -> E:
    """
    Resolve a display name (``"Water Filling"``) or member name
    (``"water_filling"``) to an enum member.

    Raises:
        ValueError: If the name matches no member
    """
    if isinstance(name, enum_cls):
        return name
    key = str(name).strip()
    for member in enum_cls:
        if key == member.value or key.upper() == member.name:
            return member
    for member in enum_cls:
        if key.lower() == member.value.lower():
            return member
    available = [m.value for m in enum_cls]
    raise ValueError(f"Unknown {enum_cls.__name__}: {name!r}. Available: {available}")


@dataclass
class SimulationConfig:
    """
    Configuration snapshot for one run.

    The leader strategy and allocation algorithm names are resolved to
    enums on construction, so an unknown name fails here rather than
    inside the game.
    """
    # System
    seed: Optional[int] = 42
    n_servers: int = 10
    n_followers: int = 5
    server_mix: ServerMix = ServerMix.HOMOGENEOUS
    server_config_file: Optional[str] = None

    # Game
    leader_strategy: LeaderStrategy = LeaderStrategy.ENERGY_EFFICIENT
    allocation_algorithm: AllocationAlgorithm = AllocationAlgorithm.BEST_RESPONSE
    optimization_goal: OptimizationGoal = OptimizationGoal.COST_MINIMIZATION
    load_pattern: LoadPattern = LoadPattern.UNIFORM
    time_step: int = 0
    iterations: int = 5
    convergence_threshold: float = 0.01

    # Economics
    energy_cost: float = 0.12       # $ per Watt
    sla_penalty: float = 0.05       # $ per ms
    revenue_per_task: float = 0.5   # $ per task

    # Features
    dynamic_pricing: bool = False
    server_failures: bool = False
    failure_probability: float = 0.1
    qos_constraints: bool = True

    def __post_init__(self):
        self.server_mix = parse_enum(ServerMix, self.server_mix)
        self.leader_strategy = parse_enum(LeaderStrategy, self.leader_strategy)
        self.allocation_algorithm = parse_enum(AllocationAlgorithm, self.allocation_algorithm)
        self.optimization_goal = parse_enum(OptimizationGoal, self.optimization_goal)
        self.load_pattern = parse_enum(LoadPattern, self.load_pattern)
        self.validate()

    def validate(self):
        """
        Check numeric ranges.

        Raises:
            ValueError: On the first invalid field
        """
        if self.n_servers < 0:
            raise ValueError(f"n_servers must be >= 0, got {self.n_servers}")
        if self.n_followers < 0:
            raise ValueError(f"n_followers must be >= 0, got {self.n_followers}")
        if self.iterations < 0:
            raise ValueError(f"iterations must be >= 0, got {self.iterations}")
        if self.time_step < 0:
            raise ValueError(f"time_step must be >= 0, got {self.time_step}")
        for name in ("convergence_threshold", "energy_cost", "sla_penalty", "revenue_per_task"):
            value = getattr(self, name)
            if value < 0:
                raise ValueError(f"{name} must be >= 0, got {value}")
        if not 0.0 <= self.failure_probability <= 1.0:
            raise ValueError(
                f"failure_probability must be in [0, 1], got {self.failure_probability}"
            )

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'SimulationConfig':
        """
        Build from a sectioned configuration dictionary.

        Missing keys fall back to the dataclass defaults.
        """
        system = config.get('system', {}) or {}
        game = config.get('game', {}) or {}
        economics = config.get('economics', {}) or {}
        features = config.get('features', {}) or {}

        kwargs = {}
        for section in (system, game, economics, features):
            kwargs.update(section)

        known = cls.__dataclass_fields__
        unknown = sorted(k for k in kwargs if k not in known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {unknown}")

        return cls(**kwargs)

    @classmethod
    def from_file(cls, config_path: Optional[str] = None) -> 'SimulationConfig':
        """Load from YAML (``config/default.yaml`` if None)."""
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH
        return cls.from_dict(load_config(str(config_path)))

    def to_dict(self) -> Dict[str, Any]:
        """Flat dictionary with enum display names, for serialization."""
        d = asdict(self)
        for key, value in d.items():
            if isinstance(value, Enum):
                d[key] = value.value
        return d

    def replace(self, **changes) -> 'SimulationConfig':
        """Copy with some fields changed (re-validated)."""
        d = asdict(self)
        d.update(changes)
        return SimulationConfig(**d)
