from walkway_config import SimulationConfig
from walkway_experiments import compare_etiquettes, rate_grid, run_scenario, sweep_arrival_rates


def short(config):
    config.timesteps = 60
    return config


def test_rate_grid_is_inclusive():
    assert rate_grid(0.5, 1.0, 0.1) == [0.5, 0.6, 0.7, 0.8, 0.9, 1.0]


def test_run_scenario_uses_cap_when_set():
    config = SimulationConfig(random_seed=4)
    config.spawn.max_pedestrians = 2
    sim = run_scenario(config, max_time=120.0)
    assert sim.state.spawned == 2
    assert sim.state.active_count == 0


def test_sweep_returns_one_row_per_rate():
    base = short(SimulationConfig(random_seed=1))
    frame = sweep_arrival_rates(base, [0.0, 1.0], verbose=False)
    assert list(frame['arrival_rate']) == [0.0, 1.0]
    assert frame.loc[0, 'arrived'] == 0
    # the base configuration is left untouched
    assert base.spawn.arrival_rate == 1.0


def test_compare_etiquettes_records_a_winner_per_iteration():
    frame = compare_etiquettes(iterations=2, base_seed=30, configure=short, verbose=False)
    assert list(frame['seed']) == [30, 31]
    assert set(frame['winner']) <= {'stay_left', 'random_choice', 'tie'}


def test_capped_sweep_returns_for_a_zero_rate():
    base = short(SimulationConfig(random_seed=5))
    base.spawn.max_pedestrians = 4
    frame = sweep_arrival_rates(base, [0.0], verbose=False)
    assert frame.loc[0, 'arrived'] == 0
    assert frame.loc[0, 'duration'] <= 6.0 + 1e-6
