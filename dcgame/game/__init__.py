"""
Game-theoretic modules for the data-center Stackelberg game.
"""

from .utility import UtilityCalculator, marginal_cost
from .allocation import AllocationAlgorithm, allocate
from .follower import Follower, LoadPattern, create_followers
from .leader import (
    LeaderStrategy,
    OptimizationGoal,
    LeaderDecision,
    LeaderStrategySelector,
    DynamicPricing
)
from .stackelberg import (
    StepReport,
    SimulationState,
    GameResult,
    StackelbergGame
)

__all__ = [
    "UtilityCalculator",
    "marginal_cost",
    "AllocationAlgorithm",
    "allocate",
    "Follower",
    "LoadPattern",
    "create_followers",
    "LeaderStrategy",
    "OptimizationGoal",
    "LeaderDecision",
    "LeaderStrategySelector",
    "DynamicPricing",
    "StepReport",
    "SimulationState",
    "GameResult",
    "StackelbergGame"
]
