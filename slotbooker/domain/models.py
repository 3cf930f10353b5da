"""
Domain models for schedules, event templates, bookings and slots.

Persisted records (templates, schedules, rules, overrides, booking requests)
are validated pydantic models; computed values (time ranges, slots) and the
booking entity itself are plain dataclasses.
"""

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

import pendulum
from pendulum import DateTime
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .exceptions import ValidationError
from .timezones import DayOfWeek, get_timezone, parse_instant, parse_local_time, to_iso


class SchedulingMode(str, Enum):
    """How several participants' availability is combined."""
    ANY_AVAILABLE = "any_available"
    ALL_AVAILABLE = "all_available"
    SPECIFIC_PERSON = "specific_person"


class MeetingPlatform(str, Enum):
    GOOGLE_MEET = "google_meet"
    ZOOM = "zoom"
    NONE = "none"


class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable half-open time range [start, end).

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another (touching ends do not overlap)."""
        return other.start < self.end and other.end > self.start

    def intersect(self, other: "TimeRange") -> "TimeRange | None":
        """
        Calculate the intersection of two time ranges.
        Returns None if there is no overlap.
        """
        if not self.overlaps(other):
            return None

        start = max(self.start, other.start)
        end = min(self.end, other.end)

        return TimeRange(start=start, end=end)

    def expand(self, before_minutes: int = 0, after_minutes: int = 0) -> "TimeRange":
        """Return a copy widened by the given buffers."""
        return TimeRange(
            start=self.start.subtract(minutes=before_minutes),
            end=self.end.add(minutes=after_minutes),
        )

    def __str__(self) -> str:
        return f"{to_iso(self.start)} - {to_iso(self.end)}"


def _check_local_window(start_time: Optional[str], end_time: Optional[str]) -> None:
    if start_time is None or end_time is None:
        return
    if parse_local_time(start_time) >= parse_local_time(end_time):
        raise ValueError(f"start_time {start_time} must be before end_time {end_time}")


class WeeklyRule(BaseModel):
    """Recurring availability for one weekday, in the schedule's timezone."""
    day_of_week: DayOfWeek
    start_time: str
    end_time: str

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        parse_local_time(value)
        return value

    @model_validator(mode="after")
    def validate_order(self) -> "WeeklyRule":
        _check_local_window(self.start_time, self.end_time)
        return self


class DateOverride(BaseModel):
    """
    A date-specific exception to the weekly rules.

    Blocked overrides remove the whole day; otherwise explicit start/end
    replace that day's weekly rules.
    """
    user_id: str
    date: dt.date
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    is_blocked: bool = False

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            parse_local_time(value)
        return value

    @model_validator(mode="after")
    def validate_window(self) -> "DateOverride":
        if (self.start_time is None) != (self.end_time is None):
            raise ValueError("start_time and end_time must be given together")
        _check_local_window(self.start_time, self.end_time)
        return self

    @property
    def has_window(self) -> bool:
        return not self.is_blocked and self.start_time is not None


class AvailabilitySchedule(BaseModel):
    """A user's named schedule: timezone plus weekly rules."""
    id: str
    user_id: str
    name: str = "Default"
    timezone: str = "UTC"
    is_default: bool = True
    rules: List[WeeklyRule] = Field(default_factory=list)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        get_timezone(value)
        return value

    def rules_for(self, weekday: DayOfWeek) -> List[WeeklyRule]:
        return [rule for rule in self.rules if rule.day_of_week == weekday]


class CustomQuestion(BaseModel):
    """Extra question the guest answers when booking."""
    id: str = Field(min_length=1)
    question: str = Field(min_length=1)
    required: bool = False


class EventTemplate(BaseModel):
    """Bookable event type owned by an organizer."""
    id: str
    owner_id: str
    title: str = ""
    slug: str = ""
    description: Optional[str] = None
    duration_minutes: int = 30
    buffer_before_minutes: int = 0
    buffer_after_minutes: int = 0
    min_notice_minutes: int = 60
    max_advance_days: int = 60
    scheduling_mode: SchedulingMode = SchedulingMode.SPECIFIC_PERSON
    meeting_platform: MeetingPlatform = MeetingPlatform.NONE
    is_active: bool = True
    participant_ids: List[str] = Field(default_factory=list)
    custom_questions: List[CustomQuestion] = Field(default_factory=list)

    @field_validator("duration_minutes")
    @classmethod
    def validate_duration(cls, value: int) -> int:
        """Ensure event duration is positive."""
        if value <= 0:
            raise ValueError("duration_minutes must be greater than zero")
        return value

    @field_validator("buffer_before_minutes", "buffer_after_minutes", "min_notice_minutes")
    @classmethod
    def validate_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("buffers and notice must not be negative")
        return value

    @field_validator("max_advance_days")
    @classmethod
    def validate_max_advance(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_advance_days must be at least 1")
        return value

    @field_validator("custom_questions")
    @classmethod
    def validate_question_ids(cls, value: List[CustomQuestion]) -> List[CustomQuestion]:
        ids = [question.id for question in value]
        if len(ids) != len(set(ids)):
            raise ValueError("custom question ids must be unique")
        return value

    @model_validator(mode="after")
    def include_owner(self) -> "EventTemplate":
        """The owner always takes part; duplicates are dropped in order."""
        participants: List[str] = []
        for user_id in self.participant_ids:
            if user_id not in participants:
                participants.append(user_id)
        if self.owner_id not in participants:
            participants.insert(0, self.owner_id)
        self.participant_ids = participants
        return self

    def active_participants(self) -> List[str]:
        """Participants whose availability feeds the slot computation."""
        if self.scheduling_mode == SchedulingMode.SPECIFIC_PERSON:
            return self.participant_ids[:1]
        return list(self.participant_ids)

    def check_answers(self, answers: Dict[str, str]) -> None:
        """
        Check guest answers against the custom questions.

        Raises:
            ValidationError: A required question is unanswered or an answer
                refers to no question of this template
        """
        known = {question.id for question in self.custom_questions}
        unknown = sorted(set(answers) - known)
        if unknown:
            raise ValidationError(f"Unknown question(s): {', '.join(unknown)}")

        missing = [
            question.id for question in self.custom_questions
            if question.required and not (answers.get(question.id) or "").strip()
        ]
        if missing:
            raise ValidationError(f"Missing answer(s) to required question(s): {', '.join(missing)}")


class BookingRequest(BaseModel):
    """Guest-submitted booking payload."""
    event_template_id: str
    start_time: DateTime
    guest_name: str = Field(min_length=1, max_length=255)
    guest_email: str = Field(max_length=320)
    guest_timezone: str
    guest_notes: Optional[str] = Field(default=None, max_length=1000)
    guest_answers: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator("start_time", mode="before")
    @classmethod
    def validate_start_time(cls, value) -> DateTime:
        return parse_instant(value)

    @field_validator("guest_email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        local, _, domain = value.strip().partition("@")
        if not local or "." not in domain:
            raise ValueError(f"Invalid email address: '{value}'")
        return value.strip().lower()

    @field_validator("guest_timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        get_timezone(value)
        return value


@dataclass
class Booking:
    """A reservation of one slot for one assigned participant."""
    id: str
    event_template_id: str
    assigned_user_id: str
    start: DateTime
    end: DateTime
    guest_name: str
    guest_email: str
    guest_timezone: str
    guest_notes: Optional[str] = None
    guest_answers: Dict[str, str] = field(default_factory=dict)
    status: BookingStatus = BookingStatus.CONFIRMED
    meeting_platform: MeetingPlatform = MeetingPlatform.NONE
    meeting_url: Optional[str] = None
    meeting_id: Optional[str] = None
    calendar_event_id: Optional[str] = None
    created_at: DateTime = field(default_factory=lambda: pendulum.now("UTC"))
    cancelled_at: Optional[DateTime] = None
    cancellation_reason: Optional[str] = None
    rescheduled_to: Optional[str] = None

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)

    @property
    def is_confirmed(self) -> bool:
        return self.status == BookingStatus.CONFIRMED

    def to_dict(self) -> Dict[str, object]:
        """Serialize to plain values (UTC ISO-8601 instants)."""
        return {
            "id": self.id,
            "event_template_id": self.event_template_id,
            "assigned_user_id": self.assigned_user_id,
            "start": to_iso(self.start),
            "end": to_iso(self.end),
            "guest_name": self.guest_name,
            "guest_email": self.guest_email,
            "guest_timezone": self.guest_timezone,
            "guest_notes": self.guest_notes,
            "guest_answers": dict(self.guest_answers),
            "status": self.status.value,
            "meeting_platform": self.meeting_platform.value,
            "meeting_url": self.meeting_url,
            "meeting_id": self.meeting_id,
            "calendar_event_id": self.calendar_event_id,
            "created_at": to_iso(self.created_at),
            "cancelled_at": to_iso(self.cancelled_at) if self.cancelled_at else None,
            "cancellation_reason": self.cancellation_reason,
            "rescheduled_to": self.rescheduled_to,
        }


@dataclass(frozen=True)
class MeetingLink:
    """Video meeting created for a booking."""
    meeting_id: str
    join_url: str


@dataclass(frozen=True)
class CalendarEventRef:
    """Event written to an organizer's calendar."""
    event_id: str
    meet_url: Optional[str] = None


@dataclass(frozen=True)
class Slot:
    """
    A bookable interval of exactly the event duration.

    Transient: recomputed on every read and re-verified on every write.
    """
    time_range: TimeRange
    eligible_participant_ids: Tuple[str, ...]

    @property
    def start(self) -> DateTime:
        return self.time_range.start

    @property
    def end(self) -> DateTime:
        return self.time_range.end

    def to_dict(self) -> Dict[str, object]:
        return {
            "startTime": to_iso(self.start),
            "endTime": to_iso(self.end),
            "eligibleParticipantIDs": list(self.eligible_participant_ids),
        }

    def format_display(self, timezone: str) -> str:
        """
        Format the slot for display in the given timezone.
        Format: Weekday, YYYY-MM-DD | HH:mm - HH:mm
        """
        start = self.start.in_timezone(timezone)
        end = self.end.in_timezone(timezone)
        return (
            f"{start.format('dddd, YYYY-MM-DD')} | "
            f"{start.format('HH:mm')} - {end.format('HH:mm')}"
        )
