"""
Windows FILETIME conversion and deletion time rendering.

FILETIME counts 100-nanosecond ticks since 1601-01-01 UTC. Decoders keep
whole Unix epoch seconds; rendering in UTC or the host time zone happens
only when a report is written.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from dateutil import tz

logger = logging.getLogger(__name__)

# 100ns ticks between 1601-01-01 and 1970-01-01
FILETIME_EPOCH_OFFSET = 116444736000000000
FILETIME_TICKS_PER_SECOND = 10000000

_UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

UTC_ZONE_NAME = "Coordinated Universal Time (UTC)"


def filetime_to_epoch(filetime: int) -> int:
    """Convert a Windows FILETIME to Unix epoch seconds, discarding sub-second precision."""
    return (filetime - FILETIME_EPOCH_OFFSET) // FILETIME_TICKS_PER_SECOND


def epoch_to_datetime(epoch: int) -> Optional[datetime]:
    """
    Convert epoch seconds to an aware UTC datetime.

    Returns:
        datetime in UTC, or None when the instant lies outside the
        calendar range Python can represent
    """
    try:
        return _UNIX_EPOCH + timedelta(seconds=epoch)
    except OverflowError:
        return None


def format_deletion_time(epoch: int, use_localtime: bool = False,
                         iso: bool = False) -> Optional[str]:
    """
    Render a deletion time for reports.

    Args:
        epoch: Unix epoch seconds
        use_localtime: Render in the host time zone instead of UTC
        iso: ISO 8601 with ``T`` separator and ``Z`` or numeric offset,
             otherwise ``YYYY-MM-DD HH:MM:SS``

    Returns:
        Formatted string, or None if the time can't be represented
    """
    dt = epoch_to_datetime(epoch)
    if dt is None:
        return None

    if use_localtime:
        try:
            dt = dt.astimezone(tz.tzlocal())
        except (OverflowError, OSError, ValueError) as e:
            logger.debug(f"Can not convert epoch {epoch} to local time: {e}")
            return None

    if not iso:
        return dt.strftime("%Y-%m-%d %H:%M:%S")
    if use_localtime:
        return dt.isoformat(timespec="seconds")
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def timezone_label(use_localtime: bool = False,
                   now: Optional[datetime] = None) -> Tuple[str, str]:
    """
    Name and numeric offset of the zone used for rendering.

    The offset is the one active at ``now``, not at any record's deletion
    time, so records on the other side of a DST change are off by an hour.

    Returns:
        Tuple of (zone name, offset as ``+HHMM``)
    """
    if not use_localtime:
        return UTC_ZONE_NAME, "+0000"

    local_now = (now or datetime.now(timezone.utc)).astimezone(tz.tzlocal())
    name = local_now.tzname() or "Local time"
    return name, local_now.strftime("%z")
