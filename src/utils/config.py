import json
import os
import logging

logger = logging.getLogger(__name__)

def save_config(file_path, config):
    """Save configuration to file"""
    try:
        directory = os.path.dirname(file_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(file_path, 'w') as f:
            json.dump(config, f, indent=4)
    except OSError as e:
        logger.error(f"Failed to save config: {e}")

def load_config(file_path, default_config=None):
    """Load configuration from file, layered over default_config when given"""
    config = dict(default_config) if default_config is not None else {}
    try:
        if os.path.exists(file_path):
            with open(file_path, 'r') as f:
                config.update(json.load(f))
    except (OSError, ValueError) as e:
        logger.error(f"Failed to load config: {e}")
    return config

def parse_config_value(raw, default):
    """Convert a string typed by an admin into the type of the default value.

    Lists are given as comma separated values, booleans accept the usual
    true/false spellings. Raises ValueError when the value can't be converted.
    """
    s = raw.strip()
    if isinstance(default, bool):
        low = s.lower()
        if low in ('true', '1', 'yes', 'on'):
            return True
        if low in ('false', '0', 'no', 'off'):
            return False
        raise ValueError(f"`{raw}` is not a boolean")
    if isinstance(default, int):
        return int(s)
    if isinstance(default, float):
        return float(s)
    if isinstance(default, list):
        if s.startswith('['):
            parsed = json.loads(s)
            if not isinstance(parsed, list):
                raise ValueError(f"`{raw}` is not a list")
            return [str(item) for item in parsed]
        return [item.strip() for item in s.split(',') if item.strip()]
    return s
