import numpy as np
import pytest

from walkway_config import SimulationConfig
from walkway_environment import WalkwayEnvironment, build_corridor_environment
from walkway_sim import Etiquette, PopulationManager, SimulationState, WalkerStatus


def tiny_entry_environment():
    return WalkwayEnvironment.from_description({
        'name': 'tiny',
        'walls': [],
        'flows': [{
            'name': 'east',
            'direction': 'forward',
            'entries': {'gate': [[0.0, 0.0], [0.2, 0.0], [0.2, 0.2], [0.0, 0.2]]},
            'targets': {'goal': [[5.0, 0.0], [6.0, 0.0], [6.0, 1.0], [5.0, 1.0]]},
        }],
    })


def make_manager(config=None, env=None, seed=0):
    config = config or SimulationConfig()
    env = env or build_corridor_environment()
    return PopulationManager(config, env, np.random.default_rng(seed)), env


def test_spawn_rate_matches_bernoulli_probability():
    manager, _ = make_manager()
    state = SimulationState()
    total = 0
    for _ in range(1000):
        total += len(manager.spawn(state))
        state.walkers.clear()
    # two flows, one entry each, p = 1.0 * 0.1 per step
    assert 140 <= total <= 260
    assert state.spawned == total


def test_spawned_walkers_are_well_formed():
    config = SimulationConfig()
    config.spawn.arrival_rate = 10.0
    manager, env = make_manager(config)
    state = SimulationState()
    created = manager.spawn(state)

    assert [w.flow for w in created] == ['forward', 'backward']
    for walker in created:
        flow = env.get_flow(walker.flow)
        assert flow.entries[0].contains(walker.pos)
        assert walker.target_zone in flow.targets
        assert walker.target_zone.contains(walker.target)
        assert config.walker.desired_speed_min <= walker.desired_speed <= config.walker.desired_speed_max
        assert walker.etiquette == Etiquette.STAY_LEFT
        assert walker.status == WalkerStatus.ACTIVE
        assert not np.any(walker.vel)
    assert [w.id for w in created] == [0, 1]


def test_occupied_entry_blocks_spawn():
    config = SimulationConfig()
    config.spawn.arrival_rate = 10.0
    config.spawn.spawn_attempts = 3
    manager, _ = make_manager(config, tiny_entry_environment())
    state = SimulationState()
    manager.add_walker(state, (0.1, 0.1), 'east')

    assert manager.spawn(state) == []
    assert state.blocked_spawns == 1
    assert state.spawned == 1


def test_spawn_cap():
    config = SimulationConfig()
    config.spawn.arrival_rate = 10.0
    config.spawn.max_pedestrians = 3
    manager, _ = make_manager(config)
    state = SimulationState()
    for _ in range(5):
        manager.spawn(state)
        state.walkers.clear()
    assert state.spawned == 3
    assert manager.cap_reached(state)


def test_etiquette_mix_sampling():
    config = SimulationConfig()
    config.spawn.etiquette_mix = {'random_choice': 1.0}
    manager, _ = make_manager(config)
    assert {manager.sample_etiquette() for _ in range(20)} == {Etiquette.RANDOM_CHOICE}


def test_arrival_records_travel_time():
    manager, env = make_manager()
    state = SimulationState(time=2.0)
    walker = manager.add_walker(state, (25.2, 3.0), 'forward', target=(25.3, 3.0))
    other = manager.add_walker(state, (12.0, 3.0), 'backward')

    events = manager.collect_arrivals(state, 2.5)

    assert len(events) == 1
    event = events[0]
    assert event.walker_id == walker.id
    assert event.travel_time == pytest.approx(0.5)
    assert event.direction == 'forward'
    assert walker.status == WalkerStatus.ARRIVED
    assert list(state.walkers) == [other.id]
    assert state.arrived == 1
    assert state.total_travel_time == pytest.approx(0.5)


def test_walker_in_someone_elses_target_does_not_arrive():
    manager, _ = make_manager()
    state = SimulationState()
    # backward walkers spawn inside the forward target zone
    manager.add_walker(state, (25.2, 3.0), 'backward')
    assert manager.collect_arrivals(state, 0.1) == []


def test_discard_out_of_bounds():
    manager, _ = make_manager()
    state = SimulationState()
    walker = manager.add_walker(state, (12.0, 3.0), 'forward')
    walker.pos = np.array([12.0, 7.0])

    events = manager.collect_out_of_bounds(state, 1.0)

    assert [(e.walker_id, e.reason) for e in events] == [(walker.id, 'out_of_bounds')]
    assert walker.status == WalkerStatus.REMOVED
    assert state.discarded == 1
    assert state.active_count == 0


def test_add_walker_validation():
    manager, _ = make_manager()
    state = SimulationState()
    with pytest.raises(ValueError):
        manager.add_walker(state, (40.0, 3.0), 'forward')
    with pytest.raises(ValueError):
        manager.add_walker(state, (10.0, 3.0), 'forward', target=(12.0, 3.0))
    with pytest.raises(KeyError):
        manager.add_walker(state, (10.0, 3.0), 'sideways')
