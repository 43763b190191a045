import numpy as np
import pytest

from walkway_config import SimulationConfig, get_random_choice_config, get_stay_left_config
from walkway_environment import ConfigurationError, WalkwayEnvironment
from walkway_sim import CrowdSimulation, Etiquette, SimState


def make_sim(config=None, environment=None, **overrides):
    config = config or SimulationConfig()
    for key, value in overrides.items():
        setattr(config, key, value)
    sim = CrowdSimulation(config, environment)
    sim.initialize()
    return sim


def quiet_corridor(etiquette='stay_left', noise=0.0, seed=0):
    config = get_stay_left_config() if etiquette == 'stay_left' else get_random_choice_config()
    if etiquette == 'stay_right':
        config.spawn.etiquette_mode = 'stay_right'
    config.spawn.arrival_rate = 0.0
    config.forces.noise_std = noise
    config.random_seed = seed
    return make_sim(config)


def open_strip():
    return WalkwayEnvironment.from_description({
        'name': 'open strip',
        'walls': [],
        'flows': [{
            'name': 'east',
            'direction': 'forward',
            'entries': {'start': [[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]]},
            'targets': {'end': [[9.0, 0.0], [10.0, 0.0], [10.0, 1.0], [9.0, 1.0]]},
        }],
    })


# ==================== STATE MACHINE ====================

def test_step_before_initialize_fails():
    sim = CrowdSimulation(SimulationConfig())
    assert sim.sim_state == SimState.UNINITIALIZED
    with pytest.raises(RuntimeError):
        sim.step()


def test_pause_resume_stop():
    sim = make_sim(random_seed=1)
    sim.step()
    sim.pause()
    with pytest.raises(RuntimeError):
        sim.step()
    sim.resume()
    sim.step()
    assert sim.snapshot().step == 2

    sim.stop()
    assert sim.sim_state == SimState.STOPPED
    with pytest.raises(RuntimeError):
        sim.step()
    with pytest.raises(RuntimeError):
        sim.resume()


def test_initialize_twice_fails():
    sim = make_sim()
    with pytest.raises(RuntimeError):
        sim.initialize()


def test_invalid_config_is_fatal():
    config = SimulationConfig()
    config.time_step = -0.1
    sim = CrowdSimulation(config)
    with pytest.raises(ConfigurationError):
        sim.initialize()
    assert sim.sim_state == SimState.UNINITIALIZED


def test_rates_for_unknown_flows_are_rejected():
    config = SimulationConfig()
    config.spawn.flow_arrival_rates = {'upstream': 0.5}
    with pytest.raises(ConfigurationError):
        CrowdSimulation(config).initialize()


# ==================== INVARIANTS ====================

def test_active_walkers_are_conserved_every_step():
    sim = make_sim(random_seed=3)
    previous = sim.snapshot()
    for _ in range(300):
        current = sim.step()
        spawned = current.spawned - previous.spawned
        arrived = current.arrived - previous.arrived
        discarded = current.discarded - previous.discarded
        assert current.active_count == previous.active_count + spawned - arrived - discarded
        assert current.active_count == len(current.walkers)
        previous = current
    assert previous.spawned > 0


def test_active_walkers_stay_in_bounds():
    sim = make_sim(random_seed=4)
    for _ in range(300):
        snapshot = sim.step()
        for view in snapshot.walkers:
            assert sim.environment.is_in_bounds(np.array(view.position))
    assert sim.state.discarded == 0


def test_same_seed_gives_identical_runs():
    first = make_sim(random_seed=21, save_history=True)
    second = make_sim(random_seed=21, save_history=True)
    first.run(200)
    second.run(200)
    assert first.history == second.history
    assert first.collector.arrivals == second.collector.arrivals


def test_different_seeds_differ():
    first = make_sim(random_seed=1, save_history=True)
    second = make_sim(random_seed=2, save_history=True)
    first.run(100)
    second.run(100)
    assert first.history != second.history


def test_snapshot_is_a_copy():
    sim = make_sim(random_seed=5)
    sim.run(30)
    snapshot = sim.snapshot()
    positions = [view.position for view in snapshot.walkers]
    sim.step()
    assert [view.position for view in snapshot.walkers] == positions


# ==================== MOTION ====================

def test_isolated_walker_reaches_desired_velocity():
    sim = quiet_corridor()
    walker = sim.add_walker((5.0, 3.0), 'forward', target=(25.25, 3.0),
                            desired_speed=1.3, velocity=(0.0, 0.0))
    for _ in range(40):
        sim.step()
    assert np.linalg.norm(walker.vel - np.array([1.3, 0.0])) < 0.01


def closest_approach(sim, forward, backward, max_steps=150):
    """Lateral offset (forward y - backward y) when the pair is closest along x"""
    best_dx, offset = None, None
    for _ in range(max_steps):
        sim.step()
        if forward.id not in sim.state.walkers or backward.id not in sim.state.walkers:
            break
        dx = abs(forward.pos[0] - backward.pos[0])
        if best_dx is None or dx < best_dx:
            best_dx, offset = dx, (forward.pos[1], backward.pos[1])
    return offset


def place_pair(sim, etiquette):
    # mirror images of each other about (12.5, 3.0)
    forward = sim.add_walker((8.0, 3.0), 'forward', target=(25.25, 3.0), etiquette=etiquette,
                             desired_speed=1.3, velocity=(1.3, 0.0))
    backward = sim.add_walker((17.0, 3.0), 'backward', target=(-0.25, 3.0), etiquette=etiquette,
                              desired_speed=1.3, velocity=(-1.3, 0.0))
    return forward, backward


def test_stay_left_passes_on_own_left():
    sim = quiet_corridor()
    forward, backward = place_pair(sim, Etiquette.STAY_LEFT)
    forward_y, backward_y = closest_approach(sim, forward, backward)
    # forward walkers' left is +y, backward walkers' left is -y
    assert forward_y > 3.0 > backward_y


def test_stay_right_passes_on_own_right():
    sim = quiet_corridor()
    forward, backward = place_pair(sim, Etiquette.STAY_RIGHT)
    forward_y, backward_y = closest_approach(sim, forward, backward)
    assert forward_y < 3.0 < backward_y


def test_random_choice_has_no_side_bias():
    forward_above = 0
    trials = 40
    for seed in range(trials):
        sim = quiet_corridor('random_choice', noise=0.05, seed=seed)
        forward, backward = place_pair(sim, Etiquette.RANDOM_CHOICE)
        forward_y, backward_y = closest_approach(sim, forward, backward, max_steps=100)
        if forward_y > backward_y:
            forward_above += 1
    assert 8 <= forward_above <= 32


def count_own_left_passes(etiquette, trials=40):
    forward_above = 0
    for seed in range(trials):
        sim = quiet_corridor(etiquette.value, noise=0.05, seed=seed)
        forward, backward = place_pair(sim, etiquette)
        forward_y, backward_y = closest_approach(sim, forward, backward, max_steps=100)
        if forward_y > backward_y:
            forward_above += 1
    return forward_above


def test_stay_left_bias_holds_under_noise():
    assert count_own_left_passes(Etiquette.STAY_LEFT) >= 36


def test_stay_right_bias_holds_under_noise():
    assert count_own_left_passes(Etiquette.STAY_RIGHT) <= 4


# ==================== ANOMALIES ====================

def test_non_finite_walker_is_discarded_and_step_continues():
    sim = quiet_corridor()
    broken = sim.add_walker((10.0, 3.0), 'forward', velocity=(float('nan'), 0.0))
    healthy = sim.add_walker((10.0, 1.0), 'forward', velocity=(1.0, 0.0))

    snapshot = sim.step()

    assert snapshot.discarded == 1
    assert [view.id for view in snapshot.walkers] == [healthy.id]
    assert sim.collector.discard_reasons() == {'non_finite_state': 1}
    assert sim.collector.discards[0].walker_id == broken.id


def test_leaving_bounds_is_a_discard():
    config = SimulationConfig()
    config.spawn.arrival_rate = 0.0
    config.forces.noise_std = 0.0
    sim = make_sim(config, open_strip())
    sim.add_walker((0.05, 0.5), 'east', velocity=(-2.5, 0.0))

    snapshot = sim.step()

    assert snapshot.active_count == 0
    assert snapshot.discarded == 1
    assert sim.collector.discards[0].reason == 'out_of_bounds'


def test_zero_arrival_rate_is_observable_not_an_error():
    config = SimulationConfig()
    config.spawn.arrival_rate = 0.0
    sim = make_sim(config)
    sim.run(50)
    report = sim.generate_report()
    assert report['population']['spawned'] == 0
    assert report['throughput'] == 0.0
    assert report['travel_time']['mean'] is None


# ==================== RUNS ====================

def test_run_until_empty():
    config = SimulationConfig()
    config.random_seed = 8
    config.spawn.max_pedestrians = 6
    sim = make_sim(config)
    sim.run_until_empty(max_time=200.0)

    assert sim.state.spawned == 6
    assert sim.state.active_count == 0
    assert sim.state.arrived + sim.state.discarded == 6


def test_run_until_empty_needs_a_cap():
    sim = make_sim()
    with pytest.raises(ValueError):
        sim.run_until_empty()


def test_run_until_empty_returns_when_nobody_arrives():
    config = SimulationConfig()
    config.timesteps = 50
    config.spawn.arrival_rate = 0.0
    config.spawn.max_pedestrians = 3
    sim = make_sim(config)
    sim.run_until_empty()

    assert sim.state.spawned == 0
    assert sim.state.step == 50
    assert sim.state.time == pytest.approx(5.0)


def test_run_zero_steps_does_nothing():
    sim = make_sim(random_seed=3)
    sim.run(0)
    assert sim.snapshot().step == 0
    assert sim.state.spawned == 0


def test_history_and_statistics_are_recorded():
    sim = make_sim(random_seed=9, save_history=True)
    sim.run(25)
    assert len(sim.history) == 26
    assert len(sim.stats_history) == 25
    assert sim.history[-1].time == pytest.approx(2.5)
    assert sim.stats_history[-1]['step'] == 25


def test_corridor_calibration_travel_time():
    config = SimulationConfig()
    config.random_seed = 2024
    sim = make_sim(config)
    sim.run(1000)
    summary = sim.collector.summary()

    assert summary['count'] > 20
    assert 15.0 < summary['mean'] < 28.0
    assert sim.state.discarded == 0

    timed = sim.collector.travel_times(timed=True)
    assert len(timed) > 0
    assert np.all(timed < sim.collector.travel_times().max() + 1e-9)

    repeat = make_sim(SimulationConfig(random_seed=2024))
    repeat.run(1000)
    assert repeat.collector.summary() == summary
