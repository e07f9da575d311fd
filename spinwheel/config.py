"""Configuration and logging setup"""
import logging
import os

from .store import load_json_file, save_json_file

logger = logging.getLogger(__name__)

CONFIG_FILE = 'config.json'
LOG_FORMAT = '%(asctime)s - %(levelname)s - [%(name)s] - %(message)s'

DEFAULT_CONFIG = {
    'frame_rate': 60,
    'friction': 0.99,
    'velocity_floor': 0.002,
    'min_turns': 3,
    'max_turns': 5,
    'pointer_offset': -90.0,
    'wheel_size': 400,
    'tick_emit_every': 2,
    'history_limit': 100,
    'max_upload_mb': 5,
    'upload_folder': 'static/images',
    'static_root': 'static',
    'asset_timeout_seconds': 10,
    'log_file': 'spinwheel.log',
    'log_level': 'INFO',
    'seed': None,
}

# key -> (low, high, cast)
CONFIG_LIMITS = {
    'frame_rate': (10, 240, int),
    'friction': (0.5, 0.9999, float),
    'velocity_floor': (0.0001, 1.0, float),
    'min_turns': (1, 20, int),
    'max_turns': (1, 20, int),
    'pointer_offset': (-360.0, 360.0, float),
    'wheel_size': (100, 2000, int),
    'tick_emit_every': (1, 60, int),
    'history_limit': (1, 10000, int),
    'max_upload_mb': (1, 50, int),
}
EDITABLE_KEYS = tuple(CONFIG_LIMITS) + ('log_level', 'seed')


def load_config(data_dir, overrides=None):
    """Stored config merged over the defaults, then ``overrides`` on top"""
    stored = load_json_file(os.path.join(data_dir, CONFIG_FILE), dict(DEFAULT_CONFIG))
    config = {**DEFAULT_CONFIG, **stored, **_clamp_stored(stored), **(overrides or {})}
    if config['max_turns'] < config['min_turns']:
        config['max_turns'] = config['min_turns']
    return config


def _clamp_stored(stored):
    """Clamp hand-edited values one key at a time; unusable ones fall back to defaults"""
    cleaned = {}
    for key in EDITABLE_KEYS:
        if key not in stored:
            continue
        try:
            cleaned.update(clamp_config({key: stored[key]}))
        except (TypeError, ValueError) as e:
            logger.warning(f"⚠️ Ignoring stored config '{key}': {e}")
            cleaned[key] = DEFAULT_CONFIG[key]
    return cleaned


def clamp_config(data):
    """Keep only editable keys and pull numbers into their allowed ranges"""
    cleaned = {}
    for key in EDITABLE_KEYS:
        if key not in data:
            continue
        value = data[key]
        if key in CONFIG_LIMITS:
            low, high, cast = CONFIG_LIMITS[key]
            value = max(low, min(high, cast(value)))
        elif key == 'log_level':
            value = str(value).upper()
            if value not in ('DEBUG', 'INFO', 'WARNING', 'ERROR'):
                raise ValueError(f"Unknown log level: {value}")
        elif key == 'seed' and value is not None:
            value = int(value)
        cleaned[key] = value
    return cleaned


def save_config(data_dir, changes):
    path = os.path.join(data_dir, CONFIG_FILE)
    stored = load_json_file(path, dict(DEFAULT_CONFIG))
    config = {**DEFAULT_CONFIG, **stored, **_clamp_stored(stored), **clamp_config(changes)}
    if config['max_turns'] < config['min_turns']:
        config['max_turns'] = config['min_turns']
    if not save_json_file(path, config):
        raise OSError(f"Failed to save {path}")
    return config


def configure_logging(config):
    handlers = [logging.StreamHandler()]
    if config.get('log_file'):
        handlers.append(logging.FileHandler(config['log_file']))
    logging.basicConfig(
        level=getattr(logging, str(config.get('log_level', 'INFO')).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
    )
