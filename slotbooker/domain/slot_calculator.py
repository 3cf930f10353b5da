"""
Core business logic for calculating a participant's bookable slots.

This is the heart of the application - pure domain logic without any
external dependencies (no API calls, no database, no I/O).
"""

from typing import Iterable, List, Sequence

from pendulum import DateTime

from .intervals import subtract_all
from .models import Booking, EventTemplate, SchedulingMode, Slot, TimeRange


class SlotCalculator:
    """
    Calculates bookable slots for one participant of an event template.

    Algorithm:
    1. Start from the participant's availability windows
    2. Subtract busy times reported by their calendar
    3. Subtract confirmed bookings, widened by the template's buffers
    4. Slice what remains into back-to-back slots of the event duration
    5. Drop slots that violate minimum notice or maximum advance
    """

    def __init__(self, template: EventTemplate):
        self.template = template

    def find_participant_slots(
        self,
        participant_id: str,
        windows: Sequence[TimeRange],
        busy_ranges: Iterable[TimeRange],
        bookings: Iterable[Booking],
        now: DateTime
    ) -> List[Slot]:
        """
        Compute the slots one participant can cover.

        Args:
            participant_id: User the windows belong to
            windows: Raw availability windows (any order)
            busy_ranges: External busy intervals for the participant
            bookings: Bookings of the template inside the query window
            now: Reference instant for notice and advance limits

        Returns:
            Slots sorted by start, each eligible for ``participant_id`` only
        """
        free = subtract_all(windows, busy_ranges)

        blocked = [
            booking.time_range.expand(
                self.template.buffer_before_minutes,
                self.template.buffer_after_minutes,
            )
            for booking in self.relevant_bookings(participant_id, bookings)
        ]
        free = subtract_all(free, blocked)

        earliest = now.add(minutes=self.template.min_notice_minutes)
        latest = now.add(days=self.template.max_advance_days)

        slots: List[Slot] = []
        for window in free:
            for slot_range in self._slice(window):
                if slot_range.start < earliest or slot_range.start > latest:
                    continue
                slots.append(
                    Slot(time_range=slot_range, eligible_participant_ids=(participant_id,))
                )

        return slots

    def relevant_bookings(
        self,
        participant_id: str,
        bookings: Iterable[Booking]
    ) -> List[Booking]:
        """
        Confirmed bookings that block this participant.

        In ``all_available`` mode every participant attends every booking, so
        all of the template's bookings count regardless of the assignee.
        """
        everyone = self.template.scheduling_mode == SchedulingMode.ALL_AVAILABLE
        return [
            booking for booking in bookings
            if booking.is_confirmed
            and (everyone or booking.assigned_user_id == participant_id)
        ]

    def _slice(self, window: TimeRange) -> List[TimeRange]:
        """
        Cut a window into consecutive slots of the event duration.

        A trailing remainder shorter than the duration is discarded.
        """
        duration = self.template.duration_minutes
        pieces: List[TimeRange] = []
        slot_start = window.start

        while slot_start.add(minutes=duration) <= window.end:
            slot_end = slot_start.add(minutes=duration)
            pieces.append(TimeRange(start=slot_start, end=slot_end))
            slot_start = slot_end

        return pieces
