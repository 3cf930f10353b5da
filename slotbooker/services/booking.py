"""
Booking write path: re-validation gate, assignment, persistence and the
calendar / meeting side effects of a booking.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Union

import pendulum
from pendulum import DateTime
from pydantic import ValidationError as PydanticValidationError

from ..domain.assignment import select_assignee
from ..domain.exceptions import (
    ConflictError,
    ExternalProviderError,
    NotFoundError,
    SlotbookerError,
    ValidationError,
)
from ..domain.models import (
    Booking,
    BookingRequest,
    BookingStatus,
    EventTemplate,
    MeetingLink,
    MeetingPlatform,
    SchedulingMode,
    Slot,
)
from ..domain.timezones import calendar_date
from .availability import AvailabilityService, CalendarClientProtocol, RepositoryProtocol
from .calendar_export import (
    DEFAULT_ORGANIZER_EMAIL,
    build_ics,
    describe_booking,
    google_calendar_url,
)

logger = logging.getLogger(__name__)


class MeetingProviderProtocol(Protocol):
    """Creates video meetings for booked slots."""

    async def create_meeting(
        self,
        platform: MeetingPlatform,
        topic: str,
        start_time: DateTime,
        duration_minutes: int,
    ) -> MeetingLink:
        """Return the meeting id and join URL."""


class BookingService:
    """
    Creates, cancels and reschedules bookings.

    The requested instant is always re-checked against a freshly computed
    slot list right before insertion. Re-check and insert run under a lock
    per event template within this process; across processes the
    repository's overlap constraint is the final guard.
    """

    def __init__(
        self,
        repository: RepositoryProtocol,
        availability: AvailabilityService,
        calendar_client: Optional[CalendarClientProtocol] = None,
        meeting_provider: Optional[MeetingProviderProtocol] = None,
        clock: Optional[Callable[[], DateTime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self._repository = repository
        self._availability = availability
        self._calendar_client = calendar_client
        self._meeting_provider = meeting_provider
        self._clock = clock or (lambda: pendulum.now("UTC"))
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._locks: Dict[str, asyncio.Lock] = {}

    async def create_booking(
        self,
        request: Union[BookingRequest, Mapping[str, Any]],
    ) -> Booking:
        """
        Book the requested slot for a guest.

        Raises:
            ValidationError: Malformed request or missing answers
            NotFoundError: Template missing or inactive
            ConflictError: Slot no longer available
            AssignmentImpossible: No participant left to assign
        """
        booking_request = self._validate(request)
        template = self._load_template(booking_request.event_template_id)
        template.check_answers(booking_request.guest_answers)

        async with self._lock_for(template.id):
            booking = await self._reserve(template, booking_request)

        logger.info(
            "Booked %s at %s for %s (assigned to %s)",
            template.id,
            booking.start,
            booking.guest_email,
            booking.assigned_user_id,
        )
        return await self._attach_meeting(template, booking)

    async def revalidate(
        self,
        template: EventTemplate,
        start_time: DateTime,
        guest_timezone: str,
    ) -> Slot:
        """
        Re-run the availability pipeline and find the exact requested instant.

        Raises:
            ConflictError: If the instant is not in the fresh slot list
        """
        target_date = calendar_date(start_time, guest_timezone)
        slots = await self._availability.compute_slots(template, target_date, guest_timezone)

        for slot in slots:
            if slot.start == start_time:
                return slot

        raise ConflictError("This time slot is no longer available")

    async def cancel_booking(self, booking_id: str, reason: Optional[str] = None) -> Booking:
        """
        Cancel a confirmed booking.

        The calendar event is removed best-effort; the status change itself
        always happens.
        """
        template_id = self._load_booking(booking_id).event_template_id

        async with self._lock_for(template_id):
            booking = self._load_booking(booking_id)
            if not booking.is_confirmed:
                raise ValidationError(f"Booking {booking_id} is already {booking.status.value}")

            booking.status = BookingStatus.CANCELLED
            booking.cancelled_at = self._clock()
            booking.cancellation_reason = reason
            updated = self._repository.update_booking(booking)

        logger.info("Cancelled booking %s", booking_id)
        await self._remove_calendar_event(updated)
        return updated

    async def reschedule_booking(
        self,
        booking_id: str,
        start_time: Union[str, DateTime],
        guest_timezone: Optional[str] = None,
    ) -> Booking:
        """
        Move a confirmed booking to a new start instant.

        The old booking stops blocking availability while the new instant is
        validated. On success it is marked ``rescheduled`` and linked to the
        new booking; on failure it is restored and the error propagates.
        """
        old = self._load_booking(booking_id)
        if not old.is_confirmed:
            raise ValidationError(f"Booking {booking_id} is already {old.status.value}")

        template = self._load_template(old.event_template_id)
        booking_request = self._validate(
            {
                "event_template_id": old.event_template_id,
                "start_time": start_time,
                "guest_name": old.guest_name,
                "guest_email": old.guest_email,
                "guest_timezone": guest_timezone or old.guest_timezone,
                "guest_notes": old.guest_notes,
                "guest_answers": old.guest_answers,
            }
        )

        async with self._lock_for(template.id):
            old = self._load_booking(booking_id)
            if not old.is_confirmed:
                raise ValidationError(f"Booking {booking_id} is already {old.status.value}")
            old.status = BookingStatus.RESCHEDULED
            old = self._repository.update_booking(old)
            try:
                new = await self._reserve(template, booking_request)
            except SlotbookerError:
                old.status = BookingStatus.CONFIRMED
                self._repository.update_booking(old)
                raise
            old.rescheduled_to = new.id
            old = self._repository.update_booking(old)

        logger.info("Rescheduled booking %s to %s (%s)", booking_id, new.start, new.id)
        await self._remove_calendar_event(old)
        return await self._attach_meeting(template, new)

    def export_ics(
        self,
        booking_id: str,
        organizer_email: str = DEFAULT_ORGANIZER_EMAIL,
    ) -> str:
        """
        Render a booking as an iCalendar document for the guest.

        Raises:
            NotFoundError: Booking or its template missing
        """
        booking = self._load_booking(booking_id)
        return build_ics(self._template_of(booking), booking, organizer_email=organizer_email)

    def calendar_link(self, booking_id: str) -> str:
        """Google Calendar link that adds the booking to the guest's calendar."""
        booking = self._load_booking(booking_id)
        return google_calendar_url(self._template_of(booking), booking)

    async def _reserve(self, template: EventTemplate, request: BookingRequest) -> Booking:
        """Re-validate, assign and insert. Callers hold the template lock."""
        slot = await self.revalidate(template, request.start_time, request.guest_timezone)
        assignee = self._assign(template, slot)

        booking = Booking(
            id=self._id_factory(),
            event_template_id=template.id,
            assigned_user_id=assignee,
            start=slot.start,
            end=slot.end,
            guest_name=request.guest_name,
            guest_email=request.guest_email,
            guest_timezone=request.guest_timezone,
            guest_notes=request.guest_notes,
            guest_answers=dict(request.guest_answers),
            meeting_platform=template.meeting_platform,
            created_at=self._clock(),
        )
        return self._repository.insert_booking(booking)

    def _assign(self, template: EventTemplate, slot: Slot) -> str:
        """
        Least-loaded selection in ``any_available`` mode; otherwise the first
        eligible participant, which is the template's configured order.
        """
        eligible = list(slot.eligible_participant_ids)
        counts: Dict[str, int] = {}

        if template.scheduling_mode == SchedulingMode.ANY_AVAILABLE and len(eligible) > 1:
            counts = self._repository.count_confirmed_bookings(template.id, eligible)

        return select_assignee(eligible, counts)

    async def _attach_meeting(self, template: EventTemplate, booking: Booking) -> Booking:
        """
        Create the video meeting and calendar event; failures keep the booking.

        Only the meeting fields are written back, onto the stored booking as
        it is after the provider calls. A booking cancelled or moved in the
        meantime keeps its new status and loses the event created for it.
        """
        try:
            if (
                template.meeting_platform == MeetingPlatform.ZOOM
                and self._meeting_provider is not None
            ):
                link = await self._meeting_provider.create_meeting(
                    template.meeting_platform,
                    f"{template.title or template.id} with {booking.guest_name}",
                    booking.start,
                    template.duration_minutes,
                )
                booking.meeting_url = link.join_url
                booking.meeting_id = link.meeting_id

            if self._calendar_client is not None:
                event = await self._calendar_client.create_event(
                    user_id=booking.assigned_user_id,
                    summary=f"{template.title or template.id} - {booking.guest_name}",
                    description=self._describe(template, booking),
                    start_time=booking.start,
                    end_time=booking.end,
                    attendee_emails=[booking.guest_email],
                    include_google_meet=template.meeting_platform == MeetingPlatform.GOOGLE_MEET,
                    location=booking.meeting_url,
                )
                booking.calendar_event_id = event.event_id
                if event.meet_url:
                    booking.meeting_url = event.meet_url
        except ExternalProviderError as exc:
            logger.error("Meeting setup failed for booking %s: %s", booking.id, exc)

        async with self._lock_for(template.id):
            current = self._load_booking(booking.id)
            if current.is_confirmed:
                current.meeting_url = booking.meeting_url
                current.meeting_id = booking.meeting_id
                current.calendar_event_id = booking.calendar_event_id
                return self._repository.update_booking(current)

        logger.warning(
            "Booking %s was %s during meeting setup; dropping its calendar event",
            booking.id,
            current.status.value,
        )
        await self._remove_calendar_event(booking)
        return current

    async def _remove_calendar_event(self, booking: Booking) -> None:
        if not booking.calendar_event_id or self._calendar_client is None:
            return
        try:
            await self._calendar_client.delete_event(
                booking.assigned_user_id, booking.calendar_event_id
            )
        except ExternalProviderError as exc:
            logger.error("Could not delete calendar event of booking %s: %s", booking.id, exc)

    @staticmethod
    def _describe(template: EventTemplate, booking: Booking) -> str:
        lines = [
            f"Meeting: {template.title or template.id}",
            f"Guest: {booking.guest_name} ({booking.guest_email})",
        ]
        details = describe_booking(template, booking)
        if details:
            lines.append(details)
        return "\n".join(lines)

    @staticmethod
    def _validate(request: Union[BookingRequest, Mapping[str, Any]]) -> BookingRequest:
        if isinstance(request, BookingRequest):
            return request
        try:
            return BookingRequest.model_validate(dict(request))
        except PydanticValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in exc.errors()
            )
            raise ValidationError(f"Invalid booking request: {problems}") from exc

    def _load_template(self, template_id: str) -> EventTemplate:
        template = self._repository.get_event_template(template_id)
        if template is None or not template.is_active:
            raise NotFoundError(f"Event template {template_id} not found or inactive")
        return template

    def _template_of(self, booking: Booking) -> EventTemplate:
        template = self._repository.get_event_template(booking.event_template_id)
        if template is None:
            raise NotFoundError(f"Event template {booking.event_template_id} not found")
        return template

    def _load_booking(self, booking_id: str) -> Booking:
        booking = self._repository.get_booking(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    def _lock_for(self, template_id: str) -> asyncio.Lock:
        return self._locks.setdefault(template_id, asyncio.Lock())

