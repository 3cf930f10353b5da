"""
Calendar file export for bookings: iCalendar (.ics) documents and Google
Calendar "add event" links.
"""

from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import urlencode

from icalendar import Calendar, Event, vCalAddress, vText
from pendulum import DateTime

from ..domain.models import Booking, BookingStatus, EventTemplate

PRODUCT_ID = "-//slotbooker//Bookings//EN"
GOOGLE_CALENDAR_RENDER_URL = "https://calendar.google.com/calendar/render"
DEFAULT_ORGANIZER_EMAIL = "noreply@example.com"


def _utc(value: DateTime) -> datetime:
    return datetime.fromtimestamp(value.timestamp(), tz=timezone.utc)


def describe_booking(template: EventTemplate, booking: Booking) -> str:
    """Plain-text body shared by calendar events and exported files."""
    lines: List[str] = []
    if booking.meeting_url:
        lines.append(f"Meeting Link: {booking.meeting_url}")
    if booking.guest_notes:
        lines.append(f"Notes: {booking.guest_notes}")

    questions = {q.id: q.question for q in template.custom_questions}
    for question_id, answer in booking.guest_answers.items():
        lines.append(f"{questions.get(question_id, question_id)}: {answer}")

    return "\n".join(lines)


def build_ics(
    template: EventTemplate,
    booking: Booking,
    organizer_email: str = DEFAULT_ORGANIZER_EMAIL,
    organizer_name: Optional[str] = None
) -> str:
    """
    Render a booking as a single-event iCalendar document.

    The organizer is the assigned participant and the guest is the only
    attendee. Cancelled and rescheduled bookings are exported with
    ``STATUS:CANCELLED`` so calendar apps drop the event on import.
    """
    calendar = Calendar()
    calendar.add("prodid", PRODUCT_ID)
    calendar.add("version", "2.0")

    event = Event()
    event.add("uid", f"{booking.id}@slotbooker")
    event.add("dtstamp", _utc(booking.created_at))
    event.add("dtstart", _utc(booking.start))
    event.add("dtend", _utc(booking.end))
    event.add("summary", template.title or "Meeting")

    description = describe_booking(template, booking)
    if description:
        event.add("description", description)
    if booking.meeting_url:
        event.add("url", booking.meeting_url)
        event.add("location", booking.meeting_url)

    organizer = vCalAddress(f"mailto:{organizer_email}")
    organizer.params["cn"] = vText(organizer_name or booking.assigned_user_id)
    event["organizer"] = organizer

    attendee = vCalAddress(f"mailto:{booking.guest_email}")
    attendee.params["cn"] = vText(booking.guest_name)
    attendee.params["role"] = vText("REQ-PARTICIPANT")
    attendee.params["partstat"] = vText("ACCEPTED")
    attendee.params["rsvp"] = vText("TRUE")
    event.add("attendee", attendee, encode=0)

    event.add("status", "CONFIRMED" if booking.status == BookingStatus.CONFIRMED else "CANCELLED")

    calendar.add_component(event)
    return calendar.to_ical().decode("utf-8")


def google_calendar_url(template: EventTemplate, booking: Booking) -> str:
    """Link that opens Google Calendar with the booking pre-filled."""
    def fmt(value: DateTime) -> str:
        return value.in_timezone("UTC").format("YYYYMMDD[T]HHmmss[Z]")

    params = {
        "action": "TEMPLATE",
        "text": template.title or "Meeting",
        "dates": f"{fmt(booking.start)}/{fmt(booking.end)}",
        "details": describe_booking(template, booking),
    }
    if booking.meeting_url:
        params["location"] = booking.meeting_url

    return f"{GOOGLE_CALENDAR_RENDER_URL}?{urlencode(params)}"
