"""
Per-participant availability windows.

Turns a user's default schedule and date overrides into absolute windows for
a calendar date, in the schedule's own timezone.
"""

from datetime import date, timedelta
from typing import Iterable, List, Optional, Sequence

from .intervals import merge
from .models import AvailabilitySchedule, DateOverride, TimeRange
from .timezones import DayOfWeek, local_to_instant


def build_windows(
    schedule: Optional[AvailabilitySchedule],
    target_date: date,
    overrides: Iterable[DateOverride] = ()
) -> List[TimeRange]:
    """
    Build the raw available windows of one user for one local date.

    Resolution order:
    1. Any blocked override for the date -> no windows
    2. Overrides with explicit times -> exactly those windows
    3. Otherwise the weekly rules of the date's weekday

    Returns windows sorted by start; overlapping local rules are merged.
    """
    if schedule is None:
        return []

    day_overrides = [o for o in overrides if o.date == target_date]

    if any(o.is_blocked for o in day_overrides):
        return []

    explicit = [o for o in day_overrides if o.has_window]
    if explicit:
        local_windows = [(o.start_time, o.end_time) for o in explicit]
    else:
        weekday = DayOfWeek.from_date(target_date)
        local_windows = [
            (rule.start_time, rule.end_time)
            for rule in schedule.rules_for(weekday)
        ]

    windows: List[TimeRange] = []
    for local_start, local_end in local_windows:
        start = local_to_instant(target_date, local_start, schedule.timezone)
        end = local_to_instant(target_date, local_end, schedule.timezone)
        # A window swallowed by a DST gap collapses to nothing.
        if start < end:
            windows.append(TimeRange(start=start, end=end))

    return merge(windows)


def expanded_dates(target_date: date, spread_days: int = 1) -> List[date]:
    """The target date plus ``spread_days`` on either side."""
    return [
        target_date + timedelta(days=offset)
        for offset in range(-spread_days, spread_days + 1)
    ]


def build_windows_for_dates(
    schedule: Optional[AvailabilitySchedule],
    dates: Sequence[date],
    overrides: Iterable[DateOverride] = ()
) -> List[TimeRange]:
    """Windows for several local dates, sorted by start."""
    override_list = list(overrides)
    windows: List[TimeRange] = []

    for day in dates:
        windows.extend(build_windows(schedule, day, override_list))

    return sorted(windows, key=lambda r: r.start)
