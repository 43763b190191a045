from dataclasses import asdict

from walkway_config import (ConfigManager, SimulationConfig, SpawnConfig, compare_scenarios,
                            get_calibration_config, get_crossroads_config, CALIBRATION_ETIQUETTE_MIX)


def test_all_presets_are_valid():
    for name, config in ConfigManager.get_all_presets().items():
        assert ConfigManager.validate_config(config) == [], name


def test_sub_configs_are_filled_in():
    config = SimulationConfig()
    assert config.walker.desired_speed_mean == 1.3
    assert config.forces.max_force > 0
    assert config.spawn.etiquette_mode == 'stay_left'


def test_save_and_load_preserves_nested_values(tmp_path):
    config = get_crossroads_config()
    config.random_seed = 11
    config.spawn.flow_arrival_rates = {'eastbound': 0.25}
    path = tmp_path / "config.json"

    ConfigManager.save_config(config, str(path))
    loaded = ConfigManager.load_config(str(path))

    assert asdict(loaded) == asdict(config)
    assert loaded.spawn.rate_for('eastbound') == 0.25
    assert loaded.spawn.rate_for('westbound') == config.spawn.arrival_rate


def test_etiquette_weights_are_normalised_in_fixed_order():
    spawn = SpawnConfig(etiquette_mix={'random_choice': 3.0, 'stay_left': 1.0})
    weights = spawn.etiquette_weights()
    assert list(weights) == ['stay_left', 'random_choice']
    assert weights['stay_left'] == 0.25
    assert weights['random_choice'] == 0.75


def test_single_mode_without_mix():
    spawn = SpawnConfig(etiquette_mode='random_choice')
    assert spawn.etiquette_weights() == {'random_choice': 1.0}


def test_calibration_mix_sums_to_one():
    weights = get_calibration_config().spawn.etiquette_weights()
    assert abs(sum(weights.values()) - 1.0) < 1e-9
    assert abs(weights['stay_left'] - CALIBRATION_ETIQUETTE_MIX['stay_left']) < 1e-9


def test_validation_reports_bad_values():
    config = SimulationConfig()
    config.time_step = 0.1
    config.spawn.arrival_rate = 20.0
    config.spawn.etiquette_mode = 'walk_in_middle'
    config.forces.noise_std = -1.0
    config.environment = 'maze'

    problems = ConfigManager.validate_config(config)

    assert any('probability above 1' in p for p in problems)
    assert any('etiquette mode' in p for p in problems)
    assert any('Noise' in p for p in problems)
    assert any('Unknown environment' in p for p in problems)


def test_validation_rejects_unknown_mix_entries():
    config = SimulationConfig()
    config.spawn.etiquette_mix = {'stay_left': 0.5, 'zigzag': 0.5}
    problems = ConfigManager.validate_config(config)
    assert any('zigzag' in p for p in problems)


def test_validation_rejects_unstable_relaxation_time():
    config = SimulationConfig()
    config.forces.relaxation_time = 0.05
    assert any('Relaxation' in p for p in ConfigManager.validate_config(config))


def test_compare_scenarios_prints_one_column_per_preset(capsys):
    compare_scenarios(['calibration', 'crossroads'])
    lines = capsys.readouterr().out.splitlines()
    header = next(line for line in lines if line.startswith('Metric'))
    assert 'calibration' in header and 'crossroads' in header
    environment = next(line for line in lines if line.startswith('Environment'))
    assert environment.split() == ['Environment', 'corridor', 'crossroads']
