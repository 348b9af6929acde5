"""
Runtime settings for the CLI and the tournament store.

The engine itself never reads these; callers pass the values explicitly.
"""
import os
import logging
import yaml

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('TOURNAMENT_DATA_DIR', os.path.join(BASE_DIR, 'data'))

DEFAULT_SETTINGS = {
    'number_of_groups': 8,
    'teams_per_group': 4,
    'max_draw_attempts': 100,
    'max_assignment_attempts': 1000,
    'log_level': 'INFO',
    'lock_timeout': 10,
}


def get_data_dir() -> str:
    """Data directory, re-reading TOURNAMENT_DATA_DIR so tests can redirect it."""
    return os.environ.get('TOURNAMENT_DATA_DIR', DATA_DIR)


def load_settings(path: str = None) -> dict:
    """
    Load settings from YAML, falling back to defaults.

    Missing keys take their default, unknown keys are dropped and a file
    that cannot be parsed is logged and ignored.
    """
    if path is None:
        path = os.path.join(get_data_dir(), 'settings.yaml')
    settings = dict(DEFAULT_SETTINGS)
    if not os.path.exists(path):
        return settings
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f'Failed to parse {path}: {e}')
        return settings
    if not isinstance(data, dict):
        if data is not None:
            logger.warning(f'Ignoring {path}: expected a mapping, got {type(data).__name__}')
        return settings

    for key, value in data.items():
        if key in DEFAULT_SETTINGS:
            settings[key] = value
        else:
            logger.debug(f'Ignoring unknown setting {key!r}')
    return settings


def save_settings(settings: dict, path: str = None):
    """Write settings back to YAML."""
    if path is None:
        path = os.path.join(get_data_dir(), 'settings.yaml')
    os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        yaml.dump(settings, f, default_flow_style=False)
