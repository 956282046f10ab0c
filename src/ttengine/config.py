"""
Engine settings loaded from YAML.

The settings file is located through the TT_ENGINE_CONFIG environment
variable. Keys missing from the file fall back to get_default_settings().
"""
import logging
import os

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = 'TT_ENGINE_CONFIG'
DATA_DIR_ENV_VAR = 'TT_ENGINE_DATA_DIR'

BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def get_default_settings():
    """Return default engine settings."""
    return {
        'default_rating': 1200,
        'data_dir': os.environ.get(DATA_DIR_ENV_VAR, os.path.join(BASE_DIR, 'data')),
        'log_level': 'INFO',
        # None keeps the built-in point exchange table
        'point_exchange_table': None,
        'lock_timeout_seconds': 10,
        'compound': {
            'final_playoff_size': 4,
            'final_round_robin_size': 6,
        },
    }


def load_settings(path=None):
    """Load settings from YAML, merging with defaults."""
    defaults = get_default_settings()
    path = path or os.environ.get(CONFIG_ENV_VAR)
    if not path or not os.path.exists(path):
        return defaults
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.warning(f'Failed to parse {path}: {e}')
        return defaults
    if not data:
        return defaults
    if not isinstance(data, dict):
        logger.warning(f'Ignoring {path}: expected a mapping, got {type(data).__name__}')
        return defaults
    for key, value in defaults.items():
        if key not in data:
            data[key] = value
        elif isinstance(value, dict) and isinstance(data[key], dict):
            merged = dict(value)
            merged.update(data[key])
            data[key] = merged
    return data


def configure_logging(settings=None):
    settings = settings or load_settings()
    level = getattr(logging, str(settings.get('log_level', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(level=level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
