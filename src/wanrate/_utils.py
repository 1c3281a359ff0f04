"""
Utility functions for the wanrate package.

This module provides internal helper functions used throughout the package.
These functions are not part of the public API and may change without notice.
"""

from __future__ import annotations

import json
import logging
import math
import random
import time
from datetime import datetime
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

HOURS_PER_WEEK = 7 * 24


def sleep_with_jitter(seconds: float, jitter_factor: float = 0.1) -> None:
    """
    Sleep for the given duration with random jitter.

    Args:
        seconds: Base sleep duration in seconds.
        jitter_factor: Maximum percentage variation (default: 10%).
            For example, 0.1 means sleep time varies by +/- 10%.

    Example:
        >>> sleep_with_jitter(10.0)  # Sleeps between 9.0 and 11.0 seconds
    """
    jitter = random.uniform(-jitter_factor, jitter_factor)
    sleep_time = max(0.0, seconds * (1 + jitter))
    time.sleep(sleep_time)


def round_half_up(value: float, digits: int = 0) -> float:
    """
    Round a value to `digits` decimal places, ties away from zero.

    Python's built-in `round()` uses banker's rounding (round(2.5) == 2),
    which is not what a bandwidth ceiling should do. Goes through the
    decimal representation so 102.85 rounds to 102.9, not 102.8.

    Example:
        >>> round_half_up(2.5)
        3.0
        >>> round_half_up(188.175, 1)
        188.2
    """
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def round_down(value: float, digits: int = 0) -> float:
    """
    Round a value down to `digits` decimal places (towards negative infinity).

    Used to express a ceiling at output precision: a rate rounded to
    `digits` places and then capped at `round_down(ceiling, digits)` can
    never exceed `ceiling`.

    Example:
        >>> round_down(270.75)
        270.0
        >>> round_down(143.45, 1)
        143.4
    """
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_FLOOR))


def is_finite_number(value: Any) -> bool:
    """Return True for int/float values that are neither NaN nor infinite (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return False
    return math.isfinite(value)


def iso_day_from_sunday_indexed(native_weekday: int) -> int:
    """
    Convert a Sunday-indexed weekday (0=Sunday..6=Saturday) to Monday=0..Sunday=6.

    Example:
        >>> iso_day_from_sunday_indexed(0)  # Sunday
        6
        >>> iso_day_from_sunday_indexed(1)  # Monday
        0
    """
    assert 0 <= native_weekday <= 6, f"native_weekday must be in [0, 6], got {native_weekday}"
    return (native_weekday + 6) % 7


def day_of_week(moment: datetime) -> int:
    """
    Return the hour-of-week day index for `moment` (0=Monday..6=Sunday).

    `datetime.weekday()` already counts from Monday, but `strftime("%w")`
    (and cron, and most shells) count from Sunday. The conversion goes
    through the explicit helper so both sources agree.
    """
    return iso_day_from_sunday_indexed(int(moment.strftime("%w")))


def slot_key(day: int, hour: int) -> str:
    """Return the `"{day}_{hour}"` key used for hourly baseline buckets."""
    return f"{day}_{hour}"


def save_json_file(data: dict[str, Any], file_path: Path) -> None:
    """
    Save data as JSON to the specified file path.

    Args:
        data: Dictionary to serialize as JSON.
        file_path: Destination path for the JSON file.

    Raises:
        RuntimeError: If the file cannot be written (wraps the original exception).
    """
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with file_path.open(mode="w", encoding="utf-8") as file:
            json.dump(
                data, file,
                indent=4, ensure_ascii=False, default=str
            )
    except Exception as e:
        logger.error(
            f"❌ Error while writing JSON file to disk ({file_path.name}): {e}",
            exc_info=logger.isEnabledFor(logging.DEBUG)
        )
        raise RuntimeError(f"It's not possible to save JSON file in the disk ({file_path.name}): {e}") from e


def load_json_file(file_path: Path) -> dict[str, Any]:
    """
    Load a JSON object from the specified file path.

    Raises:
        RuntimeError: If the file cannot be read or does not hold a JSON object.
    """
    try:
        with file_path.open(mode="r", encoding="utf-8") as file:
            data = json.load(file)
    except Exception as e:
        logger.error(
            f"❌ Error while reading JSON file from disk ({file_path.name}): {e}",
            exc_info=logger.isEnabledFor(logging.DEBUG)
        )
        raise RuntimeError(f"It's not possible to load JSON file from the disk ({file_path.name}): {e}") from e

    if not isinstance(data, dict):
        raise RuntimeError(f"JSON file does not contain an object ({file_path.name}).")
    return data
