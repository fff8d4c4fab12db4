"""Utility functions for dsense"""

import logging
import os

from dsense.errors import InvalidRangeError
from dsense.models import DEFAULT_CONTEXT_LINES, ChangedRange


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def get_int_env(key: str) -> int:
    """Get integer value from environment variable, return 0 if not set or invalid."""
    val = os.getenv(key)
    if val is None:
        return 0
    try:
        return int(val)
    except ValueError:
        return 0


def get_str_env(key: str, default: str) -> str:
    """
    Get string from environment variable, return default if not set.

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        String value or default
    """
    return os.getenv(key, default)


def get_bool_env(key: str, default: bool) -> bool:
    """
    Get boolean from environment variable, return default if not set.

    Recognizes: true/false, yes/no, 1/0 (case-insensitive)

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        Boolean value or default
    """
    val = os.getenv(key)
    if val is None:
        return default
    val_lower = val.lower()
    if val_lower in ('true', 'yes', '1'):
        return True
    elif val_lower in ('false', 'no', '0'):
        return False
    return default


def get_context_lines() -> int:
    """Context window around changed lines (DSENSE_CONTEXT_LINES, default 5)."""
    value = get_int_env('DSENSE_CONTEXT_LINES')
    return value if value > 0 else DEFAULT_CONTEXT_LINES


def get_max_workers() -> int:
    """Worker count for multi-file analysis (DSENSE_MAX_WORKERS, default 10)."""
    value = get_int_env('DSENSE_MAX_WORKERS')
    return value if value > 0 else 10


def get_default_profile() -> str:
    return get_str_env('DSENSE_PROFILE', 'auto')


def setup_logging(level: str | None = None):
    """
    Configure root logging for CLI usage.

    Level priority: explicit argument, then DSENSE_LOG_LEVEL, then WARNING.
    """
    level_name = (level or get_str_env('DSENSE_LOG_LEVEL', 'WARNING')).upper()
    log_level = getattr(logging, level_name, logging.WARNING)
    logging.basicConfig(level=log_level, format=LOG_FORMAT)


def parse_line_ranges(text: str) -> list[ChangedRange]:
    """Parse a changed-lines string like '10-20,35,40-41'.

    Args:
        text: Comma-separated single lines or inclusive start-end spans.

    Returns:
        List of ChangedRange objects in the given order.

    Raises:
        InvalidRangeError: If a part is not a positive line or a valid span.
    """
    ranges = []
    for part in text.split(','):
        part = part.strip()
        if not part:
            continue
        start_text, _, end_text = part.partition('-')
        try:
            start = int(start_text)
            end = int(end_text) if end_text else start
        except ValueError as e:
            raise InvalidRangeError(f"Invalid line range '{part}'") from e
        if start < 1 or end < start:
            raise InvalidRangeError(f"Invalid line range '{part}': expected 1 <= start <= end")
        ranges.append(ChangedRange(start_line=start, end_line=end))
    return ranges
