"""
Availability read path.

The service fans out one busy-time lookup per participant, builds each
participant's slots with the domain-level ``SlotCalculator`` and merges them
with the template's scheduling policy. The calendar and persistence
dependencies are plain protocols so tests can plug in stubs.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

import pendulum
from pendulum import DateTime

from ..domain.aggregation import aggregate_slots, filter_to_guest_date
from ..domain.exceptions import ExternalProviderDegraded
from ..domain.models import (
    AvailabilitySchedule,
    Booking,
    CalendarEventRef,
    DateOverride,
    EventTemplate,
    Slot,
    TimeRange,
)
from ..domain.slot_calculator import SlotCalculator
from ..domain.timezones import get_timezone, parse_date, start_of_day_utc
from ..domain.windows import build_windows_for_dates, expanded_dates

logger = logging.getLogger(__name__)


class CalendarClientProtocol(Protocol):
    """Protocol describing the calendar client behaviour needed by the services."""

    async def get_free_busy(
        self,
        user_id: str,
        start_time: DateTime,
        end_time: DateTime,
    ) -> List[TimeRange]:
        """Return busy time ranges of one participant."""

    async def create_event(
        self,
        user_id: str,
        summary: str,
        description: str,
        start_time: DateTime,
        end_time: DateTime,
        attendee_emails: Sequence[str],
        include_google_meet: bool = False,
        location: Optional[str] = None,
    ) -> CalendarEventRef:
        """Write a booking event to the participant's calendar."""

    async def delete_event(self, user_id: str, event_id: str) -> None:
        """Remove a booking event from the participant's calendar."""


class RepositoryProtocol(Protocol):
    """Read/write accessors, assumed consistent within one pipeline run."""

    def get_event_template(self, template_id: str) -> Optional[EventTemplate]: ...

    def get_default_schedule(self, user_id: str) -> Optional[AvailabilitySchedule]: ...

    def get_overrides(self, user_id: str, dates: Sequence[date]) -> List[DateOverride]: ...

    def get_confirmed_bookings(
        self, template_id: str, start: DateTime, end: DateTime
    ) -> List[Booking]: ...

    def count_confirmed_bookings(
        self, template_id: str, user_ids: Sequence[str]
    ) -> Dict[str, int]: ...

    def insert_booking(self, booking: Booking) -> Booking: ...

    def update_booking(self, booking: Booking) -> Booking: ...

    def get_booking(self, booking_id: str) -> Optional[Booking]: ...


@dataclass
class BusyLookup:
    """Busy ranges per participant plus the participants that degraded."""
    intervals: Dict[str, List[TimeRange]]
    degraded: Dict[str, ExternalProviderDegraded] = field(default_factory=dict)


class AvailabilityService:
    """
    Computes the bookable slots of an event template for one guest date.

    Read path is stateless: every call recomputes from schedules, overrides,
    live busy data and confirmed bookings.
    """

    def __init__(
        self,
        repository: RepositoryProtocol,
        calendar_client: Optional[CalendarClientProtocol] = None,
        fetch_timeout_seconds: float = 10.0,
        clock: Optional[Callable[[], DateTime]] = None,
    ) -> None:
        self._repository = repository
        self._calendar_client = calendar_client
        self._fetch_timeout_seconds = fetch_timeout_seconds
        self._clock = clock or (lambda: pendulum.now("UTC"))

    async def get_available_slots(
        self,
        *,
        event_template_id: str,
        requested_date: str | date,
        guest_timezone: str,
    ) -> List[Slot]:
        """
        Bookable slots whose start falls on ``requested_date`` in the guest's timezone.

        Malformed dates or timezones raise ``ValidationError``. A missing or
        inactive template yields an empty list.
        """
        target_date = parse_date(requested_date)
        get_timezone(guest_timezone)

        template = self._repository.get_event_template(event_template_id)
        if template is None or not template.is_active:
            logger.info("Template %s missing or inactive; no slots", event_template_id)
            return []

        return await self.compute_slots(template, target_date, guest_timezone)

    async def compute_slots(
        self,
        template: EventTemplate,
        target_date: date,
        guest_timezone: str,
    ) -> List[Slot]:
        """Run the full pipeline for an already loaded template."""
        now = self._clock()
        query = self.query_window(target_date)
        participants = template.active_participants()

        busy = await self.fetch_busy_intervals(
            participant_ids=participants,
            start_time=query.start,
            end_time=query.end,
        )
        bookings = self._repository.get_confirmed_bookings(template.id, query.start, query.end)

        calculator = SlotCalculator(template)
        dates = expanded_dates(target_date)
        participant_slots: Dict[str, List[Slot]] = {}

        for participant_id in participants:
            schedule = self._repository.get_default_schedule(participant_id)
            if schedule is None:
                logger.info("No default schedule for %s; no availability", participant_id)
                participant_slots[participant_id] = []
                continue

            windows = build_windows_for_dates(
                schedule,
                dates,
                self._repository.get_overrides(participant_id, dates),
            )
            participant_slots[participant_id] = calculator.find_participant_slots(
                participant_id=participant_id,
                windows=windows,
                busy_ranges=busy.intervals[participant_id],
                bookings=bookings,
                now=now,
            )

        slots = aggregate_slots(template.scheduling_mode, participant_slots, participants)
        slots = filter_to_guest_date(slots, target_date, guest_timezone)

        logger.debug(
            "Template %s on %s (%s): %d slot(s), %d degraded participant(s)",
            template.id,
            target_date,
            guest_timezone,
            len(slots),
            len(busy.degraded),
        )
        return slots

    async def fetch_busy_intervals(
        self,
        *,
        participant_ids: Sequence[str],
        start_time: DateTime,
        end_time: DateTime,
    ) -> BusyLookup:
        """
        Fetch busy times for all participants concurrently.

        Every requested participant appears in the result. A participant
        whose lookup fails or times out is busy for the whole window.
        """
        participant_list = list(participant_ids)

        results = await asyncio.gather(
            *(
                self._fetch_participant(participant_id, start_time, end_time)
                for participant_id in participant_list
            )
        )

        lookup = BusyLookup(intervals={})
        for participant_id, (ranges, degraded) in zip(participant_list, results):
            lookup.intervals[participant_id] = ranges
            if degraded is not None:
                lookup.degraded[participant_id] = degraded

        return lookup

    async def _fetch_participant(
        self,
        participant_id: str,
        start_time: DateTime,
        end_time: DateTime,
    ) -> Tuple[List[TimeRange], Optional[ExternalProviderDegraded]]:
        if self._calendar_client is None:
            return [], None

        try:
            ranges = await asyncio.wait_for(
                self._calendar_client.get_free_busy(participant_id, start_time, end_time),
                timeout=self._fetch_timeout_seconds,
            )
            return list(ranges), None
        except asyncio.TimeoutError:
            reason = f"timed out after {self._fetch_timeout_seconds}s"
        except Exception as exc:  # any provider failure degrades only this participant
            reason = str(exc) or exc.__class__.__name__

        degraded = ExternalProviderDegraded(participant_id, reason)
        logger.warning("%s; treating as busy until %s", degraded, end_time)
        return [TimeRange(start=start_time, end=end_time)], degraded

    @staticmethod
    def query_window(target_date: date) -> TimeRange:
        """UTC window covering every instant that can land on ``target_date`` anywhere."""
        day_start = start_of_day_utc(target_date)
        return TimeRange(start=day_start.subtract(days=1), end=day_start.add(days=2))
