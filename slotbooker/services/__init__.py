"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .availability import AvailabilityService, BusyLookup, CalendarClientProtocol, RepositoryProtocol
from .booking import BookingService, MeetingProviderProtocol
from .calendar_export import build_ics, google_calendar_url

__all__ = [
    "AvailabilityService",
    "BookingService",
    "BusyLookup",
    "CalendarClientProtocol",
    "MeetingProviderProtocol",
    "RepositoryProtocol",
    "build_ics",
    "google_calendar_url",
]
