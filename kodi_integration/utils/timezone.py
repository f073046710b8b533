"""
Date and Time utilities

Converts TVHeadend epoch timestamps into the display timezone and computes the
start of the EPG timeline.
"""
from datetime import datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo
import logging


logger = logging.getLogger(__name__)


def resolve_timezone(name: str) -> tzinfo:
    """
    Resolve a timezone name into a tzinfo

    Args:
        name: IANA timezone name or 'UTC'

    Returns:
        tzinfo for the name
    """
    if name == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def epoch_to_local(epoch: int, tz: tzinfo) -> datetime:
    """Convert a UNIX timestamp into an aware datetime in `tz`."""
    return datetime.fromtimestamp(epoch, tz=timezone.utc).astimezone(tz)


def format_clock(epoch: int, tz: tzinfo) -> str:
    """Format a UNIX timestamp as hh:mm in `tz`."""
    return epoch_to_local(epoch, tz).strftime("%H:%M")


def grid_start(now: datetime, tz: tzinfo) -> datetime:
    """
    Start of the EPG timeline: the current local hour minus one hour

    Args:
        now: Aware datetime of "now"
        tz: Display timezone

    Returns:
        Aware datetime at a full hour in `tz`
    """
    local_now = now.astimezone(tz)
    return local_now.replace(minute=0, second=0, microsecond=0) - timedelta(hours=1)


def minutes_between(start: datetime, epoch: int) -> int:
    """Whole minutes from `start` to a UNIX timestamp, negative when earlier."""
    return int((epoch - start.timestamp()) // 60)
