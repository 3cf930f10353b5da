"""
Domain layer - Pure business logic without external dependencies.
"""

from .aggregation import aggregate_slots, filter_to_guest_date
from .assignment import select_assignee
from .models import (
    AvailabilitySchedule,
    Booking,
    BookingRequest,
    BookingStatus,
    CustomQuestion,
    DateOverride,
    EventTemplate,
    MeetingPlatform,
    SchedulingMode,
    Slot,
    TimeRange,
    WeeklyRule,
)
from .slot_calculator import SlotCalculator
from .timezones import DayOfWeek

__all__ = [
    "AvailabilitySchedule",
    "Booking",
    "BookingRequest",
    "BookingStatus",
    "CustomQuestion",
    "DateOverride",
    "DayOfWeek",
    "EventTemplate",
    "MeetingPlatform",
    "SchedulingMode",
    "Slot",
    "SlotCalculator",
    "TimeRange",
    "WeeklyRule",
    "aggregate_slots",
    "filter_to_guest_date",
    "select_assignee",
]
