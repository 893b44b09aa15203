import math

import numpy as np
import pytest

from dcgame.game.allocation import (
    AllocationAlgorithm,
    allocate,
    greedy_best_response,
    min_max_fair,
    proportional_fair,
    random_allocation,
    water_filling,
)
from dcgame.game.utility import marginal_cost

from conftest import make_server


ZERO = np.zeros(2)


class TestGreedyBestResponse:

    def test_marginal_cost_is_linear_for_standard_server(self, server):
        # (50 + 1.5 l) * 0.12 + 0.5 l
        assert marginal_cost(server, 0) == pytest.approx(6.0)
        assert marginal_cost(server, 10) == pytest.approx(12.8)

    def test_alternates_between_equal_servers(self, two_servers):
        allocation = greedy_best_response(two_servers, ZERO, 100.0)
        np.testing.assert_allclose(allocation, [50.0, 50.0])

    def test_small_load_goes_to_lowest_index(self, two_servers):
        allocation = greedy_best_response(two_servers, ZERO, 10.0)
        np.testing.assert_allclose(allocation, [10.0, 0.0])

    def test_partial_step_on_remaining_load(self, two_servers):
        allocation = greedy_best_response(two_servers, ZERO, 25.0)
        np.testing.assert_allclose(allocation, [15.0, 10.0])

    def test_avoids_loaded_server(self, two_servers):
        allocation = greedy_best_response(two_servers, np.array([10.0, 0.0]), 10.0)
        np.testing.assert_allclose(allocation, [0.0, 10.0])

    def test_skips_failed_server(self, two_servers):
        two_servers[0].failed = True
        allocation = greedy_best_response(two_servers, ZERO, 40.0)
        np.testing.assert_allclose(allocation, [0.0, 40.0])

    def test_no_eligible_server_leaves_load_unplaced(self, two_servers):
        for s in two_servers:
            s.active = False
        allocation = greedy_best_response(two_servers, ZERO, 40.0)
        np.testing.assert_allclose(allocation, [0.0, 0.0])

    def test_ignores_load_below_minimum(self, two_servers):
        allocation = greedy_best_response(two_servers, ZERO, 0.005)
        assert allocation.sum() == 0.0


class TestProportionalFair:

    def test_even_split_on_idle_pool(self, two_servers):
        allocation = proportional_fair(two_servers, ZERO, 100.0, ZERO)
        np.testing.assert_allclose(allocation, [50.0, 50.0])

    def test_split_follows_spare_capacity(self, two_servers):
        allocation = proportional_fair(two_servers, np.array([50.0, 0.0]), 100.0, ZERO)
        np.testing.assert_allclose(allocation, [100 / 3, 200 / 3])

    def test_no_spare_capacity_keeps_previous(self, two_servers):
        previous = np.array([7.0, 3.0])
        allocation = proportional_fair(two_servers, np.array([100.0, 120.0]), 50.0, previous)
        np.testing.assert_allclose(allocation, previous)
        assert allocation is not previous

    def test_inactive_server_gets_nothing(self, two_servers):
        two_servers[1].active = False
        allocation = proportional_fair(two_servers, ZERO, 60.0, ZERO)
        np.testing.assert_allclose(allocation, [60.0, 0.0])


class TestWaterFilling:

    def test_stops_at_utilization_cap(self, two_servers):
        allocation = water_filling(two_servers, ZERO, 200.0)
        np.testing.assert_allclose(allocation, [90.0, 90.0])

    def test_fills_emptier_server_first(self, two_servers):
        allocation = water_filling(two_servers, np.array([50.0, 0.0]), 40.0)
        np.testing.assert_allclose(allocation, [0.0, 40.0])

    def test_servers_above_cap_take_nothing(self, two_servers):
        allocation = water_filling(two_servers, np.array([95.0, 95.0]), 30.0)
        np.testing.assert_allclose(allocation, [0.0, 0.0])


class TestMinMaxFair:

    def test_uses_whole_units_only(self, two_servers):
        allocation = min_max_fair(two_servers, ZERO, 10.7)
        np.testing.assert_allclose(allocation, [5.0, 5.0])

    def test_levels_existing_load(self, two_servers):
        allocation = min_max_fair(two_servers, np.array([3.0, 0.0]), 10.0)
        np.testing.assert_allclose(allocation, [4.0, 6.0])

    def test_no_eligible_server(self, two_servers):
        two_servers[0].failed = True
        two_servers[1].active = False
        allocation = min_max_fair(two_servers, ZERO, 10.0)
        assert allocation.sum() == 0.0


class TestRandomAllocation:

    def test_places_whole_units_covering_load(self, two_servers, rng):
        allocation = random_allocation(two_servers, 10.3, rng)
        assert allocation.sum() == pytest.approx(math.ceil(10.3))

    def test_only_eligible_servers(self, rng):
        servers = [make_server(i) for i in range(4)]
        servers[1].failed = True
        servers[3].active = False
        allocation = random_allocation(servers, 50.0, rng)
        assert allocation[1] == 0.0
        assert allocation[3] == 0.0
        assert allocation[0] + allocation[2] == pytest.approx(50.0)

    def test_terminates_without_eligible_servers(self, two_servers, rng):
        for s in two_servers:
            s.failed = True
        allocation = random_allocation(two_servers, 50.0, rng)
        assert allocation.sum() == 0.0

    def test_reproducible_with_seed(self, two_servers):
        a = random_allocation(two_servers, 30.0, np.random.RandomState(5))
        b = random_allocation(two_servers, 30.0, np.random.RandomState(5))
        np.testing.assert_array_equal(a, b)


@pytest.mark.parametrize("algorithm", list(AllocationAlgorithm))
def test_allocate_returns_pool_length_vector(algorithm, two_servers, rng):
    allocation = allocate(algorithm, two_servers, ZERO, 20.0, ZERO, rng)
    assert allocation.shape == (2,)
    assert np.all(allocation >= 0)


def test_allocate_rejects_unknown_algorithm(two_servers):
    with pytest.raises(ValueError, match="Unknown allocation algorithm"):
        allocate("Gradient Descent", two_servers, ZERO, 20.0, ZERO)
