import os
import re
from datetime import datetime, date
from pathlib import Path
from dateutil import tz
from loguru import logger

# Date/time  helpers
def today_date():
    return date.today()

def _parse_hour(raw: str, use_24h: bool, upper: int = 23) -> int:
    """
    Parse a human–friendly hour string into 0–upper.
      - If it ends with AM/PM, A/P, or with dots (e.g. “6 a.m.”), parse as 12-hour.
      - Otherwise, if use_24h, parse as a bare integer hour.
      - Otherwise (12-hour mode with no suffix) raise an error.
    """
    s = raw.strip()
    s_norm = re.sub(r'\.', '', s).replace(' ', '')
    m = re.search(r'(?i)([ap](?:m)?)$', s_norm)
    if m:
        suffix = m.group(1).lower()
        if suffix in ('a', 'p'):
            suffix += 'm'
        base = s_norm[:m.start(1)]
        candidate = (base + suffix).upper()
        for fmt in ("%I%p", "%I:%M%p"):
            try:
                return datetime.strptime(candidate, fmt).hour
            except ValueError:
                continue
        logger.error("Cannot parse 12h time from '{}'.", raw)
        raise ValueError(f"Cannot parse 12h time from '{raw}'")
    if not use_24h:
        logger.error("12-hour mode needs an AM/PM suffix: {!r}", raw)
        raise ValueError(f"Missing AM/PM suffix: '{raw}'")
    try:
        hour = int(s)
    except ValueError:
        logger.error("Non-integer hour when parsing 24-hour input: {!r}", raw)
        raise ValueError(f"Invalid hour format: '{raw}'")
    if not (0 <= hour <= upper):
        logger.error("24-hour hour out of range [0–{}]: {!r}", upper, raw)
        raise ValueError(f"24-h hour out of range: '{raw}'")
    return hour


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() not in ("0", "false", "no")


# Project root
BASE_DIR = Path(__file__).resolve().parent.parent

# File paths
CONFIG_PATH = Path(os.getenv("APP_CONFIG_PATH", str(BASE_DIR / "config.yaml")))
OUTPUT_PATH = os.getenv("APP_OUTPUT_PATH", "output/daybook.yaml")

TIMEZONE = os.getenv("TZ", "UTC")
DATE_RANGE = os.getenv("TIME_DATE_RANGE", "today")
TIME_FORMAT = os.getenv("TIME_FORMAT", "24")
USE_24H = TIME_FORMAT == "24"

# Hour axis; 24 is allowed as the end so a grid can run to midnight
_raw_start = os.getenv("TIME_DISPLAY_START", "0")
_raw_end   = os.getenv("TIME_DISPLAY_END",   "24")

TZ_LOCAL = tz.gettz(TIMEZONE) or tz.tzutc()
START_HOUR = _parse_hour(_raw_start, True)
END_HOUR   = _parse_hour(_raw_end, True, upper=24)

# Layout constants (pixels unless noted)
HOUR_HEIGHT       = float(os.getenv("LAYOUT_HOUR_HEIGHT", 64))
EVENT_HEIGHT      = float(os.getenv("LAYOUT_EVENT_HEIGHT", 24))
EVENT_GAP         = float(os.getenv("LAYOUT_EVENT_GAP", 4))
WEEK_CELLS_HEIGHT = float(os.getenv("LAYOUT_WEEK_CELLS_HEIGHT", 64))
COLUMN_INDENT     = float(os.getenv("LAYOUT_COLUMN_INDENT", 0.1))
Z_BASE            = int(os.getenv("LAYOUT_Z_BASE", 10))

# Calendar behavior
WEEK_START   = os.getenv("CAL_WEEK_START", "sunday").lower()
AGENDA_DAYS  = int(os.getenv("CAL_AGENDA_DAYS", 30))
DEFAULT_VIEW = os.getenv("CAL_DEFAULT_VIEW", "week").lower()
CREATE_HOUR  = _parse_hour(os.getenv("CAL_CREATE_HOUR", "9"), True)
INCLUDE_EMPTY_AGENDA_DAYS = _flag("CAL_AGENDA_INCLUDE_EMPTY", "false")

# Drag & drop
DRAG_DISTANCE_PX        = float(os.getenv("DRAG_DISTANCE_PX", 5))
DRAG_TOUCH_DELAY_MS     = float(os.getenv("DRAG_TOUCH_DELAY_MS", 250))
DRAG_TOUCH_TOLERANCE_PX = float(os.getenv("DRAG_TOUCH_TOLERANCE_PX", 5))
SNAP_MINUTES            = int(os.getenv("DRAG_SNAP_MINUTES", 15))
