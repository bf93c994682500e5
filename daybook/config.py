import yaml
from loguru import logger

import daybook.settings as settings
from daybook.models import EventColor


def load_config(path: str = None) -> dict:
    """Load calendar config and map each calendar's color onto the event palette."""
    path = path or settings.CONFIG_PATH
    with open(path, 'r', encoding='utf-8') as f:
        logger.debug("Loading configuration from {}", path)
        config = yaml.safe_load(f) or {}
    for cal in config.get("calendars", []):
        cal["color"] = EventColor.coerce(cal.get("color", "blue"))
    return config
