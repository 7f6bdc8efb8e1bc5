"""
Engine settings, stored as settings.yaml in the data directory.
"""
import logging
import os

import yaml

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = 'settings.yaml'


def get_default_settings():
    """Return default settings."""
    return {
        'match_interval_minutes': 90,
        'first_match_time': '09:00',
        'round_gap_minutes': 120,
        'lock_timeout_seconds': 10,
        'max_bracket_teams': 8,
    }


def load_settings(data_dir: str) -> dict:
    """Load settings from YAML file, merging with defaults."""
    defaults = get_default_settings()
    path = os.path.join(data_dir, SETTINGS_FILENAME)
    if not os.path.exists(path):
        return defaults
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.warning(f'Failed to parse {path}: {e}')
        return defaults
    if not data:
        return defaults
    unknown = set(data) - set(defaults)
    if unknown:
        logger.warning(f'Ignoring unknown settings in {path}: {sorted(unknown)}')
    return {key: data.get(key, value) for key, value in defaults.items()}


def save_settings(data_dir: str, settings: dict):
    """Save settings to YAML file."""
    os.makedirs(data_dir, exist_ok=True)
    with open(os.path.join(data_dir, SETTINGS_FILENAME), 'w', encoding='utf-8') as f:
        yaml.dump(settings, f, default_flow_style=False)
