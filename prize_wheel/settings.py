import logging
import os

from .storage import load_json_file

SETTINGS_FILENAME = 'config.json'

DEFAULT_CONFIG = {
    'spin_duration_ms_min': 4000,
    'spin_duration_ms_max': 7000,
    'spin_velocity_min': 10,
    'spin_velocity_max': 20,
    'tick_ms': 30,
    'default_items': ['Prize A', 'Prize B', 'Prize C'],
    'case_sensitive_names': True,
    'moderator_token': 'change-me-moderator',
    'public_url': '',
    'history_limit': 100,
}


def _clamp(value, low, high, cast=int):
    return max(low, min(high, cast(value)))


def normalize_config(config):
    """Keep only known keys and force every value into a sane range"""
    config = {key: config.get(key, default) for key, default in DEFAULT_CONFIG.items()}

    config['tick_ms'] = _clamp(config['tick_ms'], 5, 1000)
    config['spin_duration_ms_min'] = _clamp(config['spin_duration_ms_min'], 500, 60000)
    config['spin_duration_ms_max'] = _clamp(config['spin_duration_ms_max'], 500, 60000)
    if config['spin_duration_ms_min'] > config['spin_duration_ms_max']:
        config['spin_duration_ms_min'], config['spin_duration_ms_max'] = \
            config['spin_duration_ms_max'], config['spin_duration_ms_min']

    config['spin_velocity_min'] = _clamp(config['spin_velocity_min'], 0.1, 90, float)
    config['spin_velocity_max'] = _clamp(config['spin_velocity_max'], 0.1, 90, float)
    if config['spin_velocity_min'] > config['spin_velocity_max']:
        config['spin_velocity_min'], config['spin_velocity_max'] = \
            config['spin_velocity_max'], config['spin_velocity_min']

    config['history_limit'] = _clamp(config['history_limit'], 1, 10000)
    config['case_sensitive_names'] = bool(config['case_sensitive_names'])
    config['default_items'] = [str(item) for item in config['default_items'] if str(item).strip()]
    config['moderator_token'] = str(config['moderator_token'])
    config['public_url'] = str(config['public_url'] or '')
    return config


def load_config(data_dir, overrides=None):
    """Read config.json from data_dir (created with defaults if missing) and apply overrides"""
    path = os.path.join(data_dir, SETTINGS_FILENAME)
    stored = load_json_file(path, DEFAULT_CONFIG, validate=lambda data: isinstance(data, dict))
    config = normalize_config({**DEFAULT_CONFIG, **stored, **(overrides or {})})
    logging.info(
        f"⏱️ Spin config: duration={config['spin_duration_ms_min']}-{config['spin_duration_ms_max']}ms "
        f"velocity={config['spin_velocity_min']}-{config['spin_velocity_max']} tick={config['tick_ms']}ms"
    )
    return config
