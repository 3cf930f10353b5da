"""
In-memory persistence for templates, schedules, overrides and bookings.
"""

import logging
import threading
from dataclasses import replace
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

from pendulum import DateTime

from ..domain.exceptions import ConflictError, NotFoundError, ValidationError
from ..domain.models import (
    AvailabilitySchedule,
    Booking,
    BookingStatus,
    DateOverride,
    EventTemplate,
    TimeRange,
)

logger = logging.getLogger(__name__)


class InMemoryRepository:
    """
    Thread-safe store implementing the repository contract of the services.

    Booking writes enforce an exclusion constraint: two confirmed bookings
    of the same assignee may never overlap. This is the persistence-level
    guard behind the re-validation gate of the booking service.

    Records are copied on the way in and out, so callers must write changes
    back with ``update_booking``.
    """

    def __init__(
        self,
        templates: Iterable[EventTemplate] = (),
        schedules: Iterable[AvailabilitySchedule] = (),
        overrides: Iterable[DateOverride] = (),
        bookings: Iterable[Booking] = ()
    ):
        self._lock = threading.RLock()
        self._templates: Dict[str, EventTemplate] = {}
        self._schedules: Dict[str, AvailabilitySchedule] = {}
        self._overrides: List[DateOverride] = []
        self._bookings: Dict[str, Booking] = {}

        for template in templates:
            self.add_template(template)
        for schedule in schedules:
            self.add_schedule(schedule)
        for override in overrides:
            self.add_override(override)
        for booking in bookings:
            self._bookings[booking.id] = replace(booking)

    @classmethod
    def from_data_file(cls, data) -> "InMemoryRepository":
        """Build a repository from a loaded ``DataFile``."""
        return cls(
            templates=data.templates,
            schedules=data.schedules,
            overrides=data.overrides,
            bookings=[record.to_booking() for record in data.bookings],
        )

    # Templates and schedules

    def add_template(self, template: EventTemplate) -> None:
        with self._lock:
            self._templates[template.id] = template.model_copy(deep=True)

    def get_event_template(self, template_id: str) -> Optional[EventTemplate]:
        with self._lock:
            template = self._templates.get(template_id)
            return template.model_copy(deep=True) if template else None

    def list_event_templates(self) -> List[EventTemplate]:
        with self._lock:
            return [t.model_copy(deep=True) for t in self._templates.values()]

    def add_schedule(self, schedule: AvailabilitySchedule) -> None:
        """Store a schedule; a new default demotes the user's previous one."""
        with self._lock:
            if schedule.is_default:
                for existing_id, existing in self._schedules.items():
                    if existing.user_id == schedule.user_id and existing.is_default:
                        self._schedules[existing_id] = existing.model_copy(
                            update={"is_default": False}
                        )
            self._schedules[schedule.id] = schedule.model_copy(deep=True)

    def get_default_schedule(self, user_id: str) -> Optional[AvailabilitySchedule]:
        with self._lock:
            for schedule in self._schedules.values():
                if schedule.user_id == user_id and schedule.is_default:
                    return schedule.model_copy(deep=True)
            return None

    def list_schedules(self) -> List[AvailabilitySchedule]:
        with self._lock:
            return [s.model_copy(deep=True) for s in self._schedules.values()]

    def add_override(self, override: DateOverride) -> None:
        """
        Store a date override.

        Raises:
            ValidationError: If the user already has a blocking override on that date
        """
        with self._lock:
            if override.is_blocked and any(
                existing.is_blocked
                and existing.user_id == override.user_id
                and existing.date == override.date
                for existing in self._overrides
            ):
                raise ValidationError(
                    f"Duplicate blocking override for {override.user_id} on {override.date}"
                )
            self._overrides.append(override.model_copy())

    def get_overrides(self, user_id: str, dates: Sequence[date]) -> List[DateOverride]:
        wanted = set(dates)
        with self._lock:
            return [
                o.model_copy() for o in self._overrides
                if o.user_id == user_id and o.date in wanted
            ]

    # Bookings

    def get_confirmed_bookings(
        self,
        template_id: str,
        start: DateTime,
        end: DateTime
    ) -> List[Booking]:
        """Confirmed bookings of a template overlapping [start, end)."""
        window = TimeRange(start=start, end=end)
        with self._lock:
            return [
                replace(b) for b in self._bookings.values()
                if b.event_template_id == template_id
                and b.is_confirmed
                and b.time_range.overlaps(window)
            ]

    def count_confirmed_bookings(
        self,
        template_id: str,
        user_ids: Sequence[str]
    ) -> Dict[str, int]:
        counts = {user_id: 0 for user_id in user_ids}
        with self._lock:
            for booking in self._bookings.values():
                if (
                    booking.event_template_id == template_id
                    and booking.is_confirmed
                    and booking.assigned_user_id in counts
                ):
                    counts[booking.assigned_user_id] += 1
        return counts

    def insert_booking(self, booking: Booking) -> Booking:
        """
        Insert a new booking.

        Raises:
            ConflictError: If the id exists or the assignee already holds an
                overlapping confirmed booking
        """
        with self._lock:
            if booking.id in self._bookings:
                raise ConflictError(f"Booking {booking.id} already exists")
            self._check_exclusion(booking)
            self._bookings[booking.id] = replace(booking)
            logger.debug("Inserted booking %s for %s", booking.id, booking.assigned_user_id)
            return replace(booking)

    def update_booking(self, booking: Booking) -> Booking:
        with self._lock:
            if booking.id not in self._bookings:
                raise NotFoundError(f"Booking {booking.id} not found")
            self._check_exclusion(booking)
            self._bookings[booking.id] = replace(booking)
            return replace(booking)

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        with self._lock:
            booking = self._bookings.get(booking_id)
            return replace(booking) if booking else None

    def list_bookings(self) -> List[Booking]:
        with self._lock:
            return sorted(
                (replace(b) for b in self._bookings.values()),
                key=lambda b: b.start,
            )

    def _check_exclusion(self, booking: Booking) -> None:
        if booking.status != BookingStatus.CONFIRMED:
            return
        for other in self._bookings.values():
            if (
                other.id != booking.id
                and other.is_confirmed
                and other.assigned_user_id == booking.assigned_user_id
                and other.time_range.overlaps(booking.time_range)
            ):
                raise ConflictError(
                    f"{booking.assigned_user_id} already has booking {other.id} "
                    f"at {other.time_range}"
                )
