"""
UTC timestamp logging formatter for winmaint.

This module provides a custom logging formatter that prefixes all log entries
with a UTC timestamp in square brackets, and registers the SUCCESS level used
for completed and expected-empty outcomes.
"""

import datetime
import logging

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

DEFAULT_FORMAT = "[%(levelname)s] %(message)s"


class UTCTimestampFormatter(logging.Formatter):
    """
    Custom logging formatter that adds UTC timestamps in square brackets.

    Format: [YYYY-MM-DD HH:MM:SS.sss UTC] [LEVEL] message
    """

    def __init__(self, fmt: str = DEFAULT_FORMAT, **kwargs):
        super().__init__(fmt, **kwargs)

    def format(self, record):
        utc_now = datetime.datetime.fromtimestamp(
            record.created, tz=datetime.timezone.utc
        )
        timestamp = utc_now.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]

        return f"[{timestamp} UTC] {super().format(record)}"


def resolve_level(level_name: str) -> int:
    """Map a level name (including SUCCESS) to its numeric value."""
    level = logging.getLevelName(level_name.strip().upper())
    if isinstance(level, int):
        return level
    return logging.INFO
