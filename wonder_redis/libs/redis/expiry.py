"""
Expiry helpers.

Converts a (amount, unit) pair or a ``timedelta`` into the whole number of
seconds SETEX and EXPIRE expect.
"""

import datetime
import enum
from typing import Union

ExpireTime = Union[int, datetime.timedelta]


class TimeUnit(enum.Enum):
    """Units accepted for expiry times, valued in seconds."""
    SECONDS = 1
    MINUTES = 60
    HOURS = 3600
    DAYS = 86400


def to_seconds(amount: ExpireTime, unit: TimeUnit = TimeUnit.SECONDS) -> int:
    """
    Convert an expiry to seconds.

    Args:
        amount: Number of ``unit``s, or a timedelta (``unit`` is then ignored)
        unit: Unit of ``amount``

    Returns:
        Expiry in whole seconds

    Raises:
        ValueError: If the expiry is not positive
    """
    if isinstance(amount, datetime.timedelta):
        seconds = int(amount.total_seconds())
    else:
        seconds = int(amount) * unit.value

    if seconds <= 0:
        raise ValueError(f"Expiry must be positive, got {seconds}s")
    return seconds
