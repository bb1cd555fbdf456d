"""Options file loading."""
import logging
from pathlib import Path

import yaml

from .errors import ResourceError

logger = logging.getLogger(__name__)

DEFAULTS = {
    'alternate_menu_syntax': False,
    'max_title_length': 80,
    'max_playlist_items': 20,
    'input_conf': '',
    'menu_property': 'user-data/menu/items',
    'renderer': 'menu',
    'show_binding': 'MBTN_RIGHT',
    'log_level': 'INFO',
}

# older configs used the uosc name for the alternate syntax switch
ALIASES = {
    'uosc_syntax': 'alternate_menu_syntax',
}


class Options:
    """Validated engine options with defaults filled in."""

    def __init__(self, **values):
        merged = dict(DEFAULTS)
        for key, value in values.items():
            key = ALIASES.get(key, key)
            if key not in DEFAULTS:
                logger.warning(f"Unknown option ignored: {key}")
                continue
            merged[key] = _coerce(key, value)

        self.alternate_menu_syntax = merged['alternate_menu_syntax']
        self.max_title_length = merged['max_title_length']
        self.max_playlist_items = merged['max_playlist_items']
        self.input_conf = merged['input_conf']
        self.menu_property = merged['menu_property']
        self.renderer = merged['renderer']
        self.show_binding = merged['show_binding']
        self.log_level = merged['log_level']

    def __repr__(self):
        return (f"Options(alternate_menu_syntax={self.alternate_menu_syntax}, "
                f"max_title_length={self.max_title_length}, "
                f"max_playlist_items={self.max_playlist_items})")


def _coerce(key, value):
    expected = type(DEFAULTS[key])
    if expected is bool:
        if not isinstance(value, bool):
            raise ResourceError(f"Option {key} must be true or false, got {value!r}")
        return value
    if expected is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ResourceError(f"Option {key} must be an integer, got {value!r}")
        return max(0, value)
    if value is None:
        return ''
    return str(value)


def load_options(path=None):
    """Load options from a YAML file.

    Args:
        path: Path to the options file. ``None`` or a missing file gives the defaults.

    Returns:
        An ``Options`` instance.
    """
    if path is None:
        return Options()
    path = Path(path)
    if not path.exists():
        logger.debug(f"No options file at {path}, using defaults")
        return Options()
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ResourceError(f"Failed to load options: {e}") from e

    if data is None:
        return Options()
    if not isinstance(data, dict):
        raise ResourceError(f"Options file {path} must contain a mapping")
    return Options(**{str(k): v for k, v in data.items()})
