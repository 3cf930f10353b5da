"""
Adapters layer - Persistence and external integrations (Google Calendar, Zoom).
"""

from .google_calendar import GoogleCalendarClient
from .memory_repository import InMemoryRepository
from .mock_calendar import MockCalendarClient
from .token_cache import TokenCache
from .zoom_client import ZoomMeetingClient

__all__ = [
    "GoogleCalendarClient",
    "InMemoryRepository",
    "MockCalendarClient",
    "TokenCache",
    "ZoomMeetingClient",
]
