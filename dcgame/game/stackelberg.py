"""
Stackelberg Game Orchestrator for Data-Center Load Allocation

Five-step leader/follower protocol:
1. Leader decision:        the operator powers servers on/off
2. Follower observation:   schedulers read the active pool and their load
3. Best response (× N):    schedulers re-split their load in turn
4. Equilibrium check:      one-step greedy deviation probe per scheduler
5. System results:         energy, cost, revenue, profit, welfare

Step 3 updates followers in place and in index order. Follower k sees the
allocations followers 0..k-1 chose in the same pass and the allocations
followers k+1..n-1 chose in the previous pass (Gauss-Seidel order). A
synchronized update would converge differently and can settle on a
different equilibrium; the order is part of the game.

Every step returns a StepReport whose text lines are what a front end
displays verbatim.
"""

import logging
import time
import numpy as np
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Optional

from ..datacenter.heterogeneity import ServerPoolGenerator
from ..datacenter.server import Server
from ..utils.metrics import MetricsCalculator
from ..utils.seed import get_rng
from .allocation import AllocationAlgorithm
from .follower import Follower, create_followers
from .leader import DynamicPricing, LeaderStrategySelector
from .utility import UtilityCalculator

if TYPE_CHECKING:
    from ..config import SimulationConfig

logger = logging.getLogger(__name__)

NOMINAL_SERVER_CAPACITY = 100


@dataclass
class StepReport:
    """
    Output of one protocol step.

    Attributes:
        step: Protocol step number (1-5)
        title: Section header
        lines: Report lines, header included
        metrics: Numeric results of the step
    """
    step: int
    title: str
    lines: List[str]
    metrics: Dict[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    def __str__(self) -> str:
        return self.text


@dataclass
class SimulationState:
    """
    Everything one run mutates.

    The orchestrator owns the state for the duration of a run; a re-run
    builds a new one.
    """
    servers: List[Server]
    followers: List[Follower]
    energy_cost: float
    sla_penalty: float
    revenue_per_task: float
    iteration: int = 0

    @classmethod
    def build(
        cls,
        config: 'SimulationConfig',
        rng: np.random.RandomState
    ) -> 'SimulationState':
        """Create servers and followers from a configuration snapshot."""
        generator = ServerPoolGenerator(
            n_servers=config.n_servers,
            mix=config.server_mix,
            inject_failures=config.server_failures,
            failure_probability=config.failure_probability,
            config_path=config.server_config_file,
            rng=rng
        )
        servers = generator.generate()
        logger.debug("%s", generator.get_config_summary())
        logger.debug("Server pool statistics: %s", generator.get_statistics(servers))

        followers = create_followers(
            config.n_followers, config.n_servers, config.load_pattern, rng
        )
        for follower in followers:
            follower.update_load(config.time_step, rng)

        return cls(
            servers=servers,
            followers=followers,
            energy_cost=config.energy_cost,
            sla_penalty=config.sla_penalty,
            revenue_per_task=config.revenue_per_task
        )

    @property
    def calculator(self) -> UtilityCalculator:
        return UtilityCalculator(self.energy_cost, self.sla_penalty, self.revenue_per_task)

    def server_loads(self) -> np.ndarray:
        return MetricsCalculator.server_loads(
            [f.allocation for f in self.followers], len(self.servers)
        )

    def available_servers(self) -> List[Server]:
        return [s for s in self.servers if s.is_eligible]

    def social_welfare(self) -> float:
        return float(sum(f.utility for f in self.followers))


@dataclass
class GameResult:
    """
    Result of a full run.

    Attributes:
        config: Configuration snapshot of the run
        reports: Step reports in protocol order
        equilibrium: Whether no follower could improve beyond the threshold
        max_deviation: Largest improvement found by the probe (>= 0)
        metrics: Final system metrics (step 5)
        welfare_history: Social welfare after each best-response iteration
    """
    config: 'SimulationConfig'
    reports: List[StepReport]
    equilibrium: bool
    max_deviation: float
    metrics: Dict[str, float]
    welfare_history: List[float]

    def full_report(self) -> str:
        return "\n\n".join(r.text for r in self.reports)

    def to_dict(self) -> dict:
        return {
            "config": self.config.to_dict(),
            "equilibrium": self.equilibrium,
            "max_deviation": self.max_deviation,
            "metrics": self.metrics,
            "welfare_history": self.welfare_history,
            "reports": [r.text for r in self.reports],
        }


class StackelbergGame:
    """
    Runs the leader/follower protocol on a simulation state.

    Usage:
        game = StackelbergGame(SimulationConfig(seed=42))
        result = game.run()
        print(result.full_report())

        # Step by step
        for report in StackelbergGame(config).steps():
            print(report)
    """

    def __init__(
        self,
        config: 'SimulationConfig',
        state: Optional[SimulationState] = None,
        rng: Optional[np.random.RandomState] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Args:
            config: Configuration snapshot
            state: Existing state to run on (built from ``config`` if None)
            rng: Random source shared by every stochastic component
            clock: Wall clock for dynamic pricing
        """
        self.config = config
        self.rng = rng if rng is not None else get_rng(config.seed)
        self.selector = LeaderStrategySelector(self.rng)
        self.pricing = DynamicPricing(clock)
        self.state = state if state is not None else SimulationState.build(config, self.rng)

    def reset(self) -> SimulationState:
        """Discard the current state and build a fresh one."""
        self.state = SimulationState.build(self.config, self.rng)
        return self.state

    def leader_decision(self) -> StepReport:
        """Apply the leader strategy and, if enabled, dynamic pricing."""
        state = self.state
        lines = [
            "=== STEP 1: LEADER DECISION ===",
            f"Strategy: {self.config.leader_strategy.value}",
            f"Optimization Goal: {self.config.optimization_goal.value}",
            "",
        ]

        decision = self.selector.decide(
            self.config.leader_strategy, state.servers, state.followers, state.calculator
        )
        lines.extend(decision.lines)

        if self.config.dynamic_pricing:
            state.energy_cost, state.sla_penalty, pricing_lines = self.pricing.apply(
                state.energy_cost, state.sla_penalty
            )
            lines.extend(pricing_lines)
            lines.append("Dynamic pricing enabled: Updated energy cost and SLA penalty")

        n_active = decision.n_activated
        lines.append(f"Result: {n_active} servers activated")

        logger.debug("Leader %s activated %d servers", decision.applied.value, n_active)

        return StepReport(1, "LEADER DECISION", lines, {
            "n_activated": n_active,
            "applied_strategy": decision.applied.value,
            "expected_profit": decision.expected_profit,
            "energy_cost": state.energy_cost,
            "sla_penalty": state.sla_penalty,
        })

    def followers_observe(self) -> StepReport:
        """Report what the followers see. No state changes."""
        state = self.state
        lines = ["=== STEP 2: FOLLOWERS OBSERVE ==="]

        available = [
            (i, s) for i, s in enumerate(state.servers) if s.is_eligible
        ]
        listing = ", ".join(f"{i} ({s.server_type.value})" for i, s in available)
        capacity = sum(s.capacity for _, s in available)

        lines.append(f"Active Servers: [{listing}]")
        # Nominal 100 tasks/s per server; the real total is in the metrics
        lines.append(f"Available Capacity: {len(available) * NOMINAL_SERVER_CAPACITY} tasks/s")
        lines.append("")

        for f in state.followers:
            lines.append(f"Scheduler {f.follower_id}:")
            lines.append(f"  Load: {f.current_load:.1f} tasks/s")
            lines.append(f"  Priority: {f.priority:.2f}")
            lines.append(f"  Pattern: {f.load_pattern.value}")

        return StepReport(2, "FOLLOWERS OBSERVE", lines, {
            "n_available": len(available),
            "available_capacity": float(capacity),
            "total_load": float(sum(f.current_load for f in state.followers)),
        })

    def best_response_iteration(self, iteration: int) -> StepReport:
        """
        One best-response pass over all followers, in index order.

        Each follower is updated in place before the next one computes its
        response.
        """
        state = self.state
        algorithm = self.config.allocation_algorithm
        lines = [
            f"=== STEP 3: ITERATION {iteration} ===",
            f"Algorithm: {algorithm.value}",
            "",
        ]

        for f in state.followers:
            f.best_response(state.servers, state.followers, algorithm, self.rng)
            f.calculate_utility(
                state.servers, state.energy_cost, state.sla_penalty, state.revenue_per_task
            )

            lines.append(f"Scheduler {f.follower_id}:")
            lines.append(f"  Utility: ${f.utility:.2f}")
            lines.append(f"  Load: {f.current_load:.1f} tasks/s")
            allocations = f.allocation_summary()
            if allocations:
                lines.append(f"  Allocations: {', '.join(allocations)}")

        state.iteration = iteration
        welfare = state.social_welfare()
        logger.debug("Iteration %d: social welfare %.2f", iteration, welfare)

        return StepReport(3, f"ITERATION {iteration}", lines, {
            "iteration": iteration,
            "social_welfare": welfare,
            "utilities": [float(f.utility) for f in state.followers],
            "unmet_load": float(sum(f.unmet_load for f in state.followers)),
        })

    def equilibrium_check(self, threshold: Optional[float] = None) -> StepReport:
        """
        Probe each follower with a greedy best response.

        The probe restores each follower's allocation afterwards but leaves
        its utility at the probed value.
        """
        if threshold is None:
            threshold = self.config.convergence_threshold
        state = self.state
        lines = [
            "=== STEP 4: EQUILIBRIUM CHECK ===",
            f"Convergence Threshold: {threshold}",
            "",
        ]

        loads = state.server_loads()

        is_equilibrium = True
        welfare = 0.0
        max_deviation = 0.0

        for f in state.followers:
            current_utility = f.utility
            welfare += current_utility

            snapshot = f.allocation.copy()
            f.best_response(
                state.servers, state.followers, AllocationAlgorithm.BEST_RESPONSE, self.rng
            )
            new_utility = f.calculate_utility(
                state.servers, state.energy_cost, state.sla_penalty, state.revenue_per_task
            )

            deviation = new_utility - current_utility
            max_deviation = max(max_deviation, deviation)

            if deviation > threshold:
                is_equilibrium = False
                lines.append(f"Scheduler {f.follower_id} can improve by ${deviation:.2f}")

            f.allocation = snapshot

        lines.append("")
        if is_equilibrium:
            lines.append("✓ NASH EQUILIBRIUM REACHED!")
            lines.append("All schedulers are satisfied with their allocation")
        else:
            lines.append(f"✗ Not yet converged (max deviation: ${max_deviation:.2f})")

        load_balance = MetricsCalculator.load_balance(loads, state.servers)
        avg_utilization = MetricsCalculator.average_utilization(loads, state.servers)

        lines.append("")
        lines.append("System Metrics:")
        lines.append(f"  Social Welfare: ${welfare:.2f}")
        lines.append(f"  Load Balance: {MetricsCalculator.format_percent(load_balance)}")
        lines.append(f"  Avg Utilization: {MetricsCalculator.format_percent(avg_utilization)}")

        logger.debug(
            "Equilibrium %s (max deviation %.4f)",
            "reached" if is_equilibrium else "not reached", max_deviation
        )

        return StepReport(4, "EQUILIBRIUM CHECK", lines, {
            "equilibrium": is_equilibrium,
            "max_deviation": float(max_deviation),
            "social_welfare": float(welfare),
            "load_balance": load_balance,
            "avg_utilization": avg_utilization,
        })

    def system_results(self) -> StepReport:
        """Aggregate server loads, energy and economics."""
        state = self.state
        calc = state.calculator
        lines = ["=== STEP 5: FINAL RESULTS ==="]

        loads = state.server_loads()

        total_energy = 0.0
        total_response_time = 0.0
        total_cost = 0.0
        active_count = 0
        failed_count = 0

        for i, server in enumerate(state.servers):
            if server.failed:
                failed_count += 1
                server.current_load = 0.0
                server.utility = calc.server_utility(server, 0.0)
                continue

            if not server.active:
                server.current_load = 0.0
                server.utility = 0.0
                continue

            active_count += 1
            load = float(loads[i])
            server.current_load = load

            power = server.utilization_power(load)
            total_energy += power
            total_response_time += load / server.capacity
            total_cost += power * state.energy_cost

            server.utility = calc.server_utility(server, load)
            server.update_temperature(load, self.rng)

        total_revenue = sum(f.current_load * state.revenue_per_task for f in state.followers)
        profit = total_revenue - total_cost
        avg_response_ms = total_response_time / max(len(state.followers), 1) * 1000

        lines.append("Performance Metrics:")
        lines.append(f"  Energy: {total_energy:.2f} W")
        lines.append(f"  Cost: ${total_cost:.2f}")
        lines.append(f"  Revenue: ${total_revenue:.2f}")
        lines.append(f"  Profit: ${profit:.2f}")
        lines.append(f"  Avg Response: {avg_response_ms:.4f} ms")
        lines.append(f"  Active Servers: {active_count}/{len(state.servers)}")
        if failed_count > 0:
            lines.append(f"  Failed Servers: {failed_count}")
        lines.append("")

        welfare = state.social_welfare()
        efficiency = MetricsCalculator.efficiency(welfare, profit)
        lines.append(f"Social Welfare: ${welfare:.2f}")
        lines.append(f"System Efficiency: {efficiency:.1f}%")

        return StepReport(5, "FINAL RESULTS", lines, {
            "total_energy": float(total_energy),
            "total_cost": float(total_cost),
            "total_revenue": float(total_revenue),
            "profit": float(profit),
            "avg_response_ms": float(avg_response_ms),
            "active_servers": active_count,
            "failed_servers": failed_count,
            "social_welfare": float(welfare),
            "efficiency": float(efficiency),
        })

    def steps(self) -> Iterator[StepReport]:
        """Yield the step reports one at a time, in protocol order."""
        yield self.leader_decision()
        yield self.followers_observe()
        for iteration in range(1, self.config.iterations + 1):
            yield self.best_response_iteration(iteration)
        yield self.equilibrium_check()
        yield self.system_results()

    def run(self, progress=None) -> GameResult:
        """
        Execute the full protocol.

        Args:
            progress: Optional ProgressLogger, fed once per iteration

        Returns:
            GameResult
        """
        reports = []
        welfare_history = []

        for report in self.steps():
            reports.append(report)
            if report.step == 3:
                welfare_history.append(report.metrics["social_welfare"])
                if progress is not None:
                    progress.log(
                        report.metrics["iteration"] - 1,
                        welfare=report.metrics["social_welfare"],
                        unmet=report.metrics["unmet_load"]
                    )

        check = next(r for r in reports if r.step == 4)
        final = reports[-1]

        if progress is not None:
            progress.finish(
                welfare=final.metrics["social_welfare"],
                profit=final.metrics["profit"],
                equilibrium=check.metrics["equilibrium"]
            )

        return GameResult(
            config=self.config,
            reports=reports,
            equilibrium=check.metrics["equilibrium"],
            max_deviation=check.metrics["max_deviation"],
            metrics=final.metrics,
            welfare_history=welfare_history
        )
