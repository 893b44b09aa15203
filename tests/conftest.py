import numpy as np
import pytest

from dcgame.config import SimulationConfig
from dcgame.datacenter.server import Server
from dcgame.game.follower import Follower
from dcgame.game.stackelberg import SimulationState, StackelbergGame


def make_server(server_id=0, capacity=100.0, idle_power=50.0, busy_power=200.0, reliability=0.96):
    return Server(
        server_id=server_id,
        capacity=capacity,
        idle_power=idle_power,
        busy_power=busy_power,
        reliability=reliability
    )


def make_follower(follower_id, base_rate, n_servers, priority=0.5):
    return Follower(
        follower_id=follower_id,
        base_rate=base_rate,
        allocation=np.zeros(n_servers),
        priority=priority
    )


def make_game(servers, followers, rng_seed=0, **config_overrides):
    """Game over a hand-built state with the default economic parameters."""
    config = SimulationConfig(
        n_servers=len(servers), n_followers=len(followers), **config_overrides
    )
    state = SimulationState(
        servers=servers,
        followers=followers,
        energy_cost=config.energy_cost,
        sla_penalty=config.sla_penalty,
        revenue_per_task=config.revenue_per_task
    )
    return StackelbergGame(config, state=state, rng=np.random.RandomState(rng_seed))


@pytest.fixture
def server():
    return make_server()


@pytest.fixture
def two_servers():
    return [make_server(0), make_server(1)]


@pytest.fixture
def rng():
    return np.random.RandomState(1234)
