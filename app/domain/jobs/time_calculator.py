"""
Schedule window and status code helpers for HouseCall Pro updates

Day boundary policy: an end time at or before the start time (explicit or
defaulted) belongs to the following calendar day, so the window never runs
backwards. The mirror keeps only the time of day.
"""

import re
from datetime import datetime, timedelta
from typing import Optional

from ...config import DEFAULT_JOB_DURATION_MINUTES

# Internal status -> HCP work_status. Anything not listed is sent verbatim.
HCP_STATUS_MAP = {
    "cancelled": "canceled",
    "in_progress": "in progress",
}

# HCP work_status -> internal status. Anything else is lowercased with spaces as underscores.
INTERNAL_STATUS_MAP = {
    "canceled": "cancelled",
    "in progress": "in_progress",
    "needs scheduling": "needs_scheduling",
    "unscheduled": "needs_scheduling",
    "complete rated": "completed",
    "complete unrated": "completed",
    "complete": "completed",
}

HCP_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S"


def map_status_to_hcp(status: str) -> str:
    return HCP_STATUS_MAP.get(status, status)


def compute_schedule_window(
    scheduled_date: str,
    start_time: str,
    end_time: Optional[str] = None,
    default_minutes: int = DEFAULT_JOB_DURATION_MINUTES,
) -> tuple[datetime, datetime]:
    """
    Combine a date with start/end times.

    Args:
        scheduled_date: YYYY-MM-DD
        start_time: HH:MM
        end_time: HH:MM, start + default_minutes when omitted

    Returns:
        (start, end) naive local datetimes
    """
    start = datetime.strptime(f"{scheduled_date} {start_time}", "%Y-%m-%d %H:%M")

    if end_time:
        end = datetime.strptime(f"{scheduled_date} {end_time}", "%Y-%m-%d %H:%M")
        if end <= start:
            end += timedelta(days=1)
    else:
        end = start + timedelta(minutes=default_minutes)

    return start, end


def format_hcp_datetime(value: datetime) -> str:
    return value.strftime(HCP_DATETIME_FORMAT)


def add_minutes(time_of_day: str, minutes: int) -> str:
    """HH:MM plus minutes, wrapping around midnight"""
    base = datetime.strptime(time_of_day, "%H:%M")
    return (base + timedelta(minutes=minutes)).strftime("%H:%M")


def to_minutes(time_of_day: str) -> int:
    """HH:MM -> minutes since midnight"""
    hours, minutes = time_of_day.split(":")[:2]
    return int(hours) * 60 + int(minutes)


def from_minutes(total: int) -> str:
    """Minutes since midnight -> HH:MM"""
    total %= 24 * 60
    return f"{total // 60:02d}:{total % 60:02d}"


def map_status_from_hcp(work_status: Optional[str]) -> str:
    if not work_status:
        return "needs_scheduling"
    normalized = work_status.strip().lower()
    return INTERNAL_STATUS_MAP.get(normalized, normalized.replace(" ", "_"))


def split_hcp_datetime(value: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    """
    "2026-02-02T13:00:00-05:00" -> ("2026-02-02", "13:00")
    The wall-clock time shown in HCP is kept; the offset is not applied.
    """
    if not value:
        return None, None
    match = re.match(r"^(\d{4}-\d{2}-\d{2})T(\d{2}:\d{2})", value)
    if match:
        return match.group(1), match.group(2)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None, None
    return parsed.strftime("%Y-%m-%d"), parsed.strftime("%H:%M")
