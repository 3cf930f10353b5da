"""
Tests for domain models.
"""

from datetime import date

import pendulum
import pytest
from pydantic import ValidationError as PydanticValidationError

from slotbooker.domain.models import (
    AvailabilitySchedule,
    Booking,
    BookingRequest,
    DateOverride,
    EventTemplate,
    SchedulingMode,
    Slot,
    TimeRange,
    WeeklyRule,
)


class TestTimeRange:
    """Tests for TimeRange model."""

    def test_create_valid_time_range(self):
        """Test creating a valid time range."""
        start = pendulum.parse("2024-11-25 09:00", tz="Europe/Berlin")
        end = pendulum.parse("2024-11-25 17:00", tz="Europe/Berlin")

        tr = TimeRange(start=start, end=end)

        assert tr.duration_minutes() == 480

    def test_invalid_time_range_raises_error(self):
        start = pendulum.parse("2024-11-25 17:00", tz="Europe/Berlin")

        with pytest.raises(ValueError, match="Start time .* must be before end time"):
            TimeRange(start=start, end=start)

    def test_expand_by_buffers(self):
        tr = TimeRange(
            start=pendulum.datetime(2024, 11, 25, 10, tz="UTC"),
            end=pendulum.datetime(2024, 11, 25, 10, 30, tz="UTC"),
        )

        expanded = tr.expand(10, 15)

        assert expanded.start == pendulum.datetime(2024, 11, 25, 9, 50, tz="UTC")
        assert expanded.end == pendulum.datetime(2024, 11, 25, 10, 45, tz="UTC")

    def test_intersect(self):
        tr1 = TimeRange(
            start=pendulum.parse("2024-11-25 09:00", tz="Europe/Berlin"),
            end=pendulum.parse("2024-11-25 12:00", tz="Europe/Berlin")
        )
        tr2 = TimeRange(
            start=pendulum.parse("2024-11-25 11:00", tz="Europe/Berlin"),
            end=pendulum.parse("2024-11-25 14:00", tz="Europe/Berlin")
        )
        tr3 = TimeRange(
            start=pendulum.parse("2024-11-25 12:00", tz="Europe/Berlin"),
            end=pendulum.parse("2024-11-25 14:00", tz="Europe/Berlin")
        )

        assert tr1.intersect(tr2).duration_minutes() == 60
        assert tr1.intersect(tr3) is None


class TestEventTemplate:
    """Tests for EventTemplate validation."""

    def test_owner_always_included_first(self):
        template = EventTemplate(id="t", owner_id="alice", participant_ids=["bob", "bob", "carol"])

        assert template.participant_ids == ["alice", "bob", "carol"]

    def test_owner_position_kept_when_listed(self):
        template = EventTemplate(id="t", owner_id="alice", participant_ids=["bob", "alice"])

        assert template.participant_ids == ["bob", "alice"]

    def test_active_participants_by_mode(self):
        specific = EventTemplate(id="t", owner_id="alice", participant_ids=["bob"])
        team = EventTemplate(id="t", owner_id="alice", participant_ids=["bob"], scheduling_mode="any_available")

        assert specific.scheduling_mode == SchedulingMode.SPECIFIC_PERSON
        assert specific.active_participants() == ["alice"]
        assert team.active_participants() == ["alice", "bob"]

    @pytest.mark.parametrize(
        "field, value",
        [
            ("duration_minutes", 0),
            ("buffer_before_minutes", -5),
            ("min_notice_minutes", -1),
            ("max_advance_days", 0),
            ("scheduling_mode", "round_robin"),
        ],
    )
    def test_invalid_values(self, field, value):
        with pytest.raises(PydanticValidationError):
            EventTemplate(id="t", owner_id="alice", **{field: value})


class TestScheduleModels:
    """Tests for rules, overrides and schedules."""

    def test_rule_requires_start_before_end(self):
        with pytest.raises(PydanticValidationError):
            WeeklyRule(day_of_week="monday", start_time="17:00", end_time="09:00")

    def test_rule_rejects_unknown_weekday(self):
        with pytest.raises(PydanticValidationError):
            WeeklyRule(day_of_week="funday", start_time="09:00", end_time="17:00")

    def test_override_window_needs_both_ends(self):
        with pytest.raises(PydanticValidationError):
            DateOverride(user_id="alice", date=date(2024, 11, 25), start_time="09:00")

    def test_override_has_window(self):
        blocked = DateOverride(user_id="alice", date="2024-11-25", is_blocked=True)
        explicit = DateOverride(user_id="alice", date="2024-11-25", start_time="10:00", end_time="12:00")

        assert blocked.date == date(2024, 11, 25)
        assert not blocked.has_window
        assert explicit.has_window

    def test_schedule_rejects_unknown_timezone(self):
        with pytest.raises(PydanticValidationError):
            AvailabilitySchedule(id="s", user_id="alice", timezone="Nowhere/Land")


class TestBookingRequest:
    """Tests for guest booking payload validation."""

    def test_normalizes_start_and_email(self):
        request = BookingRequest(
            event_template_id="t",
            start_time="2024-11-25T18:00:00+09:00",
            guest_name="Grace",
            guest_email=" Grace@Example.COM ",
            guest_timezone="Asia/Tokyo",
        )

        assert request.start_time == pendulum.datetime(2024, 11, 25, 9, tz="UTC")
        assert request.guest_email == "grace@example.com"

    def test_notes_length_limit(self):
        with pytest.raises(PydanticValidationError):
            BookingRequest(
                event_template_id="t",
                start_time="2024-11-25T09:00:00Z",
                guest_name="Grace",
                guest_email="grace@example.com",
                guest_timezone="UTC",
                guest_notes="x" * 1001,
            )


def test_slot_and_booking_serialization():
    time_range = TimeRange(
        start=pendulum.datetime(2024, 11, 25, 0, tz="UTC"),
        end=pendulum.datetime(2024, 11, 25, 0, 30, tz="UTC"),
    )
    slot = Slot(time_range=time_range, eligible_participant_ids=("alice", "bob"))
    booking = Booking(
        id="b1",
        event_template_id="t",
        assigned_user_id="alice",
        start=time_range.start,
        end=time_range.end,
        guest_name="Grace",
        guest_email="grace@example.com",
        guest_timezone="Asia/Tokyo",
    )

    assert slot.to_dict()["eligibleParticipantIDs"] == ["alice", "bob"]
    assert slot.format_display("Asia/Tokyo") == "Monday, 2024-11-25 | 09:00 - 09:30"
    assert booking.to_dict()["start"] == "2024-11-25T00:00:00Z"
    assert booking.to_dict()["status"] == "confirmed"
