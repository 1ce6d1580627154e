import json
import os

from prize_wheel.settings import DEFAULT_CONFIG, SETTINGS_FILENAME, load_config, normalize_config


def test_missing_settings_file_is_created_with_defaults(data_dir):
    config = load_config(data_dir)
    assert config['spin_duration_ms_min'] == 4000
    assert config['spin_duration_ms_max'] == 7000
    assert config['tick_ms'] == 30
    assert config['default_items'] == ['Prize A', 'Prize B', 'Prize C']
    assert os.path.exists(os.path.join(data_dir, SETTINGS_FILENAME))


def test_stored_values_and_overrides_are_merged(data_dir):
    with open(os.path.join(data_dir, SETTINGS_FILENAME), 'w', encoding='utf-8') as f:
        json.dump({'tick_ms': 50, 'history_limit': 20}, f)

    config = load_config(data_dir, overrides={'history_limit': 5})
    assert config['tick_ms'] == 50
    assert config['history_limit'] == 5


def test_out_of_range_values_are_clamped():
    config = normalize_config({
        **DEFAULT_CONFIG,
        'tick_ms': 0,
        'spin_duration_ms_max': 10 ** 9,
        'spin_velocity_min': -3,
        'history_limit': 0,
    })
    assert config['tick_ms'] == 5
    assert config['spin_duration_ms_max'] == 60000
    assert config['spin_velocity_min'] == 0.1
    assert config['history_limit'] == 1


def test_inverted_ranges_are_swapped():
    config = normalize_config({
        **DEFAULT_CONFIG,
        'spin_duration_ms_min': 7000,
        'spin_duration_ms_max': 4000,
        'spin_velocity_min': 20,
        'spin_velocity_max': 10,
    })
    assert (config['spin_duration_ms_min'], config['spin_duration_ms_max']) == (4000, 7000)
    assert (config['spin_velocity_min'], config['spin_velocity_max']) == (10.0, 20.0)


def test_unknown_keys_and_blank_defaults_are_dropped():
    config = normalize_config({**DEFAULT_CONFIG, 'gpio_pin': 17, 'default_items': ['A', '  ', 'B']})
    assert 'gpio_pin' not in config
    assert config['default_items'] == ['A', 'B']
