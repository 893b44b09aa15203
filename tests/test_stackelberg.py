import logging

import numpy as np
import pytest

from dcgame.config import SimulationConfig
from dcgame.game.allocation import AllocationAlgorithm
from dcgame.game.leader import LeaderStrategy
from dcgame.game.stackelberg import SimulationState, StackelbergGame
from dcgame.utils.logger import ProgressLogger

from conftest import make_follower, make_game, make_server


def single_follower_game(algorithm, load=10.0):
    servers = [make_server(0), make_server(1)]
    followers = [make_follower(0, load, 2)]
    return make_game(servers, followers, allocation_algorithm=algorithm)


class TestLeaderStep:

    def test_report_header_and_result(self):
        servers = [make_server(i, idle_power=40 + i) for i in range(4)]
        followers = [make_follower(0, 150.0, 4)]
        game = make_game(servers, followers)

        report = game.leader_decision()
        assert report.lines[:4] == [
            "=== STEP 1: LEADER DECISION ===",
            "Strategy: Energy Efficient",
            "Optimization Goal: Cost Minimization",
            "",
        ]
        assert report.lines[-1] == "Result: 2 servers activated"
        assert [s.active for s in servers] == [True, True, False, False]

    def test_dynamic_pricing_updates_state(self, two_servers):
        config = SimulationConfig(n_servers=2, n_followers=1, dynamic_pricing=True)
        state = SimulationState(two_servers, [make_follower(0, 50.0, 2)], 0.12, 0.05, 0.5)
        game = StackelbergGame(config, state=state, rng=np.random.RandomState(0),
                               clock=lambda: 10 * 3600)

        report = game.leader_decision()
        assert state.energy_cost == pytest.approx(0.18)
        assert state.sla_penalty == pytest.approx(0.06)
        assert "Peak hours detected: Higher costs applied" in report.lines
        assert "Dynamic pricing enabled: Updated energy cost and SLA penalty" in report.lines

    def test_pricing_untouched_when_disabled(self, two_servers):
        game = make_game(two_servers, [make_follower(0, 50.0, 2)])
        game.leader_decision()
        assert game.state.energy_cost == 0.12
        assert game.state.sla_penalty == 0.05


class TestObserveStep:

    def test_lists_eligible_servers_and_followers(self):
        servers = [make_server(0), make_server(1, capacity=150.0), make_server(2)]
        servers[2].failed = True
        followers = [make_follower(0, 42.0, 3, priority=0.75)]
        game = make_game(servers, followers)

        report = game.followers_observe()
        assert report.lines == [
            "=== STEP 2: FOLLOWERS OBSERVE ===",
            "Active Servers: [0 (Standard), 1 (Standard)]",
            "Available Capacity: 200 tasks/s",
            "",
            "Scheduler 0:",
            "  Load: 42.0 tasks/s",
            "  Priority: 0.75",
            "  Pattern: Uniform",
        ]
        assert report.metrics["n_available"] == 2
        assert report.metrics["available_capacity"] == pytest.approx(250.0)


class TestBestResponseStep:

    def test_followers_see_same_pass_updates(self):
        servers = [make_server(0), make_server(1)]
        followers = [make_follower(0, 10.0, 2), make_follower(1, 10.0, 2)]
        game = make_game(servers, followers)

        game.best_response_iteration(1)
        np.testing.assert_allclose(followers[0].allocation, [10.0, 0.0])
        np.testing.assert_allclose(followers[1].allocation, [0.0, 10.0])

    def test_report_lines(self):
        game = single_follower_game(AllocationAlgorithm.BEST_RESPONSE)
        report = game.best_response_iteration(1)
        assert report.lines == [
            "=== STEP 3: ITERATION 1 ===",
            "Algorithm: Best Response",
            "",
            "Scheduler 0:",
            "  Utility: $-7.80",
            "  Load: 10.0 tasks/s",
            "  Allocations: S0:10",
        ]
        assert report.metrics["social_welfare"] == pytest.approx(-7.8)
        assert report.metrics["unmet_load"] == pytest.approx(0.0)
        assert game.state.iteration == 1

    def test_unmet_load_without_eligible_servers(self):
        game = single_follower_game(AllocationAlgorithm.WATER_FILLING)
        for s in game.state.servers:
            s.failed = True
        report = game.best_response_iteration(1)
        assert report.metrics["unmet_load"] == pytest.approx(10.0)
        assert not any(line.startswith("  Allocations") for line in report.lines)


class TestEquilibriumCheck:

    def test_probe_finds_improvement(self):
        game = single_follower_game(AllocationAlgorithm.PROPORTIONAL_FAIR)
        game.best_response_iteration(1)
        follower = game.state.followers[0]
        assert follower.utility == pytest.approx(-13.8)

        report = game.equilibrium_check()
        assert "Scheduler 0 can improve by $6.00" in report.lines
        assert "✗ Not yet converged (max deviation: $6.00)" in report.lines
        assert "  Social Welfare: $-13.80" in report.lines
        assert "  Load Balance: 100.0%" in report.lines
        assert "  Avg Utilization: 5.0%" in report.lines
        assert report.metrics["equilibrium"] is False
        assert report.metrics["max_deviation"] == pytest.approx(6.0)

    def test_probe_restores_allocation_but_not_utility(self):
        game = single_follower_game(AllocationAlgorithm.PROPORTIONAL_FAIR)
        game.best_response_iteration(1)
        follower = game.state.followers[0]

        game.equilibrium_check()
        np.testing.assert_allclose(follower.allocation, [5.0, 5.0])
        assert follower.utility == pytest.approx(-7.8)

    def test_greedy_play_is_an_equilibrium(self):
        game = single_follower_game(AllocationAlgorithm.BEST_RESPONSE)
        game.best_response_iteration(1)

        report = game.equilibrium_check()
        assert "✓ NASH EQUILIBRIUM REACHED!" in report.lines
        assert "All schedulers are satisfied with their allocation" in report.lines
        assert report.metrics["max_deviation"] == pytest.approx(0.0)

    def test_threshold_override(self):
        game = single_follower_game(AllocationAlgorithm.PROPORTIONAL_FAIR)
        game.best_response_iteration(1)
        report = game.equilibrium_check(threshold=10.0)
        assert report.lines[1] == "Convergence Threshold: 10.0"
        assert report.metrics["equilibrium"] is True

    def test_no_active_servers_reports_na(self):
        game = single_follower_game(AllocationAlgorithm.BEST_RESPONSE)
        for s in game.state.servers:
            s.active = False
        report = game.equilibrium_check()
        assert "  Load Balance: N/A" in report.lines
        assert "  Avg Utilization: N/A" in report.lines


class TestSystemResults:

    def test_metrics_for_single_greedy_follower(self):
        game = single_follower_game(AllocationAlgorithm.BEST_RESPONSE)
        game.best_response_iteration(1)

        report = game.system_results()
        assert report.lines == [
            "=== STEP 5: FINAL RESULTS ===",
            "Performance Metrics:",
            "  Energy: 115.00 W",
            "  Cost: $13.80",
            "  Revenue: $5.00",
            "  Profit: $-8.80",
            "  Avg Response: 100.0000 ms",
            "  Active Servers: 2/2",
            "",
            "Social Welfare: $-7.80",
            "System Efficiency: 0.0%",
        ]

    def test_server_state_after_results(self):
        game = single_follower_game(AllocationAlgorithm.BEST_RESPONSE)
        game.best_response_iteration(1)
        game.system_results()
        loaded, idle = game.state.servers
        assert loaded.current_load == pytest.approx(10.0)
        assert idle.current_load == 0.0
        assert 23.5 <= loaded.temperature <= 28.5
        assert 17.5 <= idle.temperature <= 22.5

    def test_failed_and_inactive_servers(self):
        servers = [make_server(0), make_server(1), make_server(2)]
        servers[1].failed = True
        servers[2].active = False
        game = make_game(servers, [make_follower(0, 10.0, 3)])
        game.best_response_iteration(1)

        report = game.system_results()
        assert "  Active Servers: 1/3" in report.lines
        assert "  Failed Servers: 1" in report.lines
        assert servers[1].utility == pytest.approx(-6.0)
        assert servers[2].utility == 0.0
        assert servers[2].temperature == 20.0
        assert report.metrics["failed_servers"] == 1

    def test_efficiency_with_positive_profit(self):
        servers = [make_server(0, idle_power=5.0, busy_power=10.0)]
        game = make_game(servers, [make_follower(0, 50.0, 1)])
        game.best_response_iteration(1)
        report = game.system_results()
        metrics = report.metrics
        assert metrics["profit"] > 0
        assert metrics["efficiency"] == pytest.approx(
            metrics["social_welfare"] / metrics["profit"] * 100
        )


class TestRun:

    def test_step_count(self):
        game = StackelbergGame(SimulationConfig(seed=3, iterations=4))
        reports = list(game.steps())
        assert [r.step for r in reports] == [1, 2, 3, 3, 3, 3, 4, 5]

    def test_same_seed_same_report(self):
        config = SimulationConfig(
            seed=7, server_mix="Heterogeneous",
            leader_strategy="Profit Maximizing", allocation_algorithm="Random",
            load_pattern="Random", server_failures=True
        )
        a = StackelbergGame(config).run()
        b = StackelbergGame(config).run()
        assert a.full_report() == b.full_report()
        assert a.metrics == b.metrics

    def test_result_fields(self):
        config = SimulationConfig(seed=1, iterations=3)
        result = StackelbergGame(config).run()
        assert len(result.welfare_history) == 3
        assert result.max_deviation >= 0.0
        assert result.metrics["active_servers"] <= config.n_servers
        assert result.full_report().startswith("=== STEP 1: LEADER DECISION ===")
        d = result.to_dict()
        assert d["config"]["leader_strategy"] == "Energy Efficient"
        assert len(d["reports"]) == 3 + 4

    @pytest.mark.parametrize("strategy", list(LeaderStrategy))
    @pytest.mark.parametrize("algorithm", list(AllocationAlgorithm))
    def test_every_combination_runs(self, strategy, algorithm):
        config = SimulationConfig(
            seed=5, n_servers=6, n_followers=3, iterations=2,
            leader_strategy=strategy, allocation_algorithm=algorithm,
            server_mix="Heterogeneous", server_failures=True
        )
        game = StackelbergGame(config)
        result = game.run()
        for follower in game.state.followers:
            assert follower.allocation.shape == (6,)
            assert np.all(follower.allocation >= 0)
        assert np.isfinite(result.metrics["social_welfare"])

    def test_no_followers(self):
        result = StackelbergGame(SimulationConfig(n_followers=0, iterations=2)).run()
        assert result.equilibrium
        assert result.metrics["total_revenue"] == 0.0
        assert "  Avg Response: 0.0000 ms" in result.reports[-1].lines

    def test_no_servers(self):
        result = StackelbergGame(SimulationConfig(n_servers=0, iterations=2)).run()
        assert result.metrics["active_servers"] == 0
        assert "  Active Servers: 0/0" in result.reports[-1].lines

    def test_zero_iterations(self):
        result = StackelbergGame(SimulationConfig(iterations=0)).run()
        assert result.welfare_history == []
        assert [r.step for r in result.reports] == [1, 2, 4, 5]

    def test_reset_builds_new_state(self):
        game = StackelbergGame(SimulationConfig(seed=2, iterations=1))
        game.run()
        old = game.state
        new = game.reset()
        assert new is game.state
        assert new is not old
        assert new.iteration == 0
        assert all(f.allocation.sum() == 0 for f in new.followers)

    def test_progress_logger_is_fed(self, caplog):
        logger = logging.getLogger("dcgame.test.progress")
        caplog.set_level(logging.INFO, logger="dcgame.test.progress")
        progress = ProgressLogger(logger, total_iterations=3)

        StackelbergGame(SimulationConfig(seed=1, iterations=3)).run(progress=progress)
        messages = [r.getMessage() for r in caplog.records]
        assert any(m.startswith("Iteration 3/3") for m in messages)
        assert any(m.startswith("Run completed in") for m in messages)

    def test_build_logs_pool_summary(self, caplog):
        caplog.set_level(logging.DEBUG, logger="dcgame.game.stackelberg")
        config = SimulationConfig(seed=4, n_servers=5, server_mix="Heterogeneous")
        StackelbergGame(config)
        messages = [r.getMessage() for r in caplog.records]
        summary = next(m for m in messages if m.startswith("Server Pool Configuration:"))
        assert "  Servers: 5" in summary
        assert "  Mix: Heterogeneous" in summary
        assert any(m.startswith("Server pool statistics: {'n_servers': 5") for m in messages)
