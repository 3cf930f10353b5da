"""
Mock calendar client for running without Google credentials.
"""

import asyncio
import uuid
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from pendulum import DateTime

from ..domain.exceptions import CalendarAPIError
from ..domain.models import CalendarEventRef, TimeRange


class MockCalendarClient:
    """
    Mock client that serves busy times from memory.

    Busy data usually comes from the ``busy`` section of the data file.
    Users listed in ``failing_users`` raise ``CalendarAPIError`` and
    ``delay_seconds`` simulates a slow provider.
    """

    def __init__(
        self,
        busy: Optional[Mapping[str, Iterable[TimeRange]]] = None,
        failing_users: Iterable[str] = (),
        delay_seconds: float = 0.0
    ):
        self.busy: Dict[str, List[TimeRange]] = {
            user_id: list(ranges) for user_id, ranges in (busy or {}).items()
        }
        self.failing_users = set(failing_users)
        self.delay_seconds = delay_seconds
        self.events: Dict[str, Dict[str, object]] = {}

    @classmethod
    def from_data_file(cls, data) -> "MockCalendarClient":
        """Build the mock from the ``busy`` records of a ``DataFile``."""
        busy: Dict[str, List[TimeRange]] = {}
        for record in data.busy:
            busy.setdefault(record.user_id, []).append(record.to_time_range())
        return cls(busy=busy)

    async def get_free_busy(
        self,
        user_id: str,
        start_time: DateTime,
        end_time: DateTime
    ) -> List[TimeRange]:
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        if user_id in self.failing_users:
            raise CalendarAPIError(f"Mock calendar unavailable for {user_id}")

        window = TimeRange(start=start_time, end=end_time)
        return [r for r in self.busy.get(user_id, []) if r.overlaps(window)]

    async def create_event(
        self,
        user_id: str,
        summary: str,
        description: str,
        start_time: DateTime,
        end_time: DateTime,
        attendee_emails: Sequence[str],
        include_google_meet: bool = False,
        location: Optional[str] = None
    ) -> CalendarEventRef:
        event_id = f"mock-{uuid.uuid4().hex[:12]}"
        meet_url = f"https://meet.example.com/{event_id}" if include_google_meet else None
        self.events[event_id] = {
            "user_id": user_id,
            "summary": summary,
            "description": description,
            "start": start_time,
            "end": end_time,
            "attendees": list(attendee_emails),
            "location": location,
        }
        return CalendarEventRef(event_id=event_id, meet_url=meet_url)

    async def delete_event(self, user_id: str, event_id: str) -> None:
        if self.events.pop(event_id, None) is None:
            raise CalendarAPIError(f"Unknown event {event_id} for {user_id}")
