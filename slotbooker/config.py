"""
Configuration and data file management using Pydantic models and YAML.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.models import (
    AvailabilitySchedule,
    Booking,
    BookingStatus,
    DateOverride,
    EventTemplate,
    MeetingPlatform,
    TimeRange,
)
from .domain.timezones import get_timezone, parse_instant


class GoogleConfig(BaseModel):
    """OAuth client used for free/busy lookups and calendar events."""
    client_id: str
    client_secret: str
    refresh_tokens: Dict[str, str] = Field(default_factory=dict)  # user id -> refresh token


class ZoomConfig(BaseModel):
    """Server-to-server OAuth app for Zoom meetings."""
    account_id: str
    client_id: str
    client_secret: str


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "UTC"  # Default guest timezone
    fetch_timeout_seconds: float = 10.0
    log_level: str = "WARNING"
    data_file: Path = Path("data.yaml")
    google: Optional[GoogleConfig] = None
    zoom: Optional[ZoomConfig] = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        get_timezone(value)
        return value

    @field_validator("fetch_timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        """Ensure the busy-fetch timeout is positive."""
        if value <= 0:
            raise ValueError("fetch_timeout_seconds must be greater than zero")
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance; a relative ``data_file`` is resolved against
            the config file's directory

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        data = _read_yaml_mapping(config_path)
        config = cls(**data)

        if not config.data_file.is_absolute():
            config.data_file = config_path.parent / config.data_file

        return config


class BusyRecord(BaseModel):
    """Static busy interval used by the mock calendar client."""
    user_id: str
    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def validate_instant(cls, value: str) -> str:
        parse_instant(value)
        return value

    def to_time_range(self) -> TimeRange:
        return TimeRange(start=parse_instant(self.start), end=parse_instant(self.end))


class BookingRecord(BaseModel):
    """Serialized form of a booking."""
    id: str
    event_template_id: str
    assigned_user_id: str
    start: str
    end: str
    guest_name: str
    guest_email: str
    guest_timezone: str = "UTC"
    guest_notes: Optional[str] = None
    guest_answers: Dict[str, str] = Field(default_factory=dict)
    status: BookingStatus = BookingStatus.CONFIRMED
    meeting_platform: MeetingPlatform = MeetingPlatform.NONE
    meeting_url: Optional[str] = None
    meeting_id: Optional[str] = None
    calendar_event_id: Optional[str] = None
    created_at: Optional[str] = None
    cancelled_at: Optional[str] = None
    cancellation_reason: Optional[str] = None
    rescheduled_to: Optional[str] = None

    @field_validator("start", "end")
    @classmethod
    def validate_instant(cls, value: str) -> str:
        parse_instant(value)
        return value

    @model_validator(mode="after")
    def validate_order(self) -> "BookingRecord":
        if parse_instant(self.start) >= parse_instant(self.end):
            raise ValueError(f"Booking {self.id} must start before it ends")
        return self

    def to_booking(self) -> Booking:
        booking = Booking(
            id=self.id,
            event_template_id=self.event_template_id,
            assigned_user_id=self.assigned_user_id,
            start=parse_instant(self.start),
            end=parse_instant(self.end),
            guest_name=self.guest_name,
            guest_email=self.guest_email,
            guest_timezone=self.guest_timezone,
            guest_notes=self.guest_notes,
            guest_answers=dict(self.guest_answers),
            status=self.status,
            meeting_platform=self.meeting_platform,
            meeting_url=self.meeting_url,
            meeting_id=self.meeting_id,
            calendar_event_id=self.calendar_event_id,
            cancelled_at=parse_instant(self.cancelled_at) if self.cancelled_at else None,
            cancellation_reason=self.cancellation_reason,
            rescheduled_to=self.rescheduled_to,
        )
        if self.created_at:
            booking.created_at = parse_instant(self.created_at)
        return booking

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingRecord":
        return cls(**booking.to_dict())


class DataFile(BaseModel):
    """Templates, schedules, overrides, bookings and mock busy data."""
    templates: List[EventTemplate] = Field(default_factory=list)
    schedules: List[AvailabilitySchedule] = Field(default_factory=list)
    overrides: List[DateOverride] = Field(default_factory=list)
    bookings: List[BookingRecord] = Field(default_factory=list)
    busy: List[BusyRecord] = Field(default_factory=list)

    @field_validator("templates")
    @classmethod
    def validate_templates(cls, value: List[EventTemplate]) -> List[EventTemplate]:
        """Ensure template ids are unique."""
        seen: set[str] = set()
        for template in value:
            if template.id in seen:
                raise ValueError(f"Duplicate template id detected: {template.id}")
            seen.add(template.id)
        return value

    @field_validator("schedules")
    @classmethod
    def validate_schedules(cls, value: List[AvailabilitySchedule]) -> List[AvailabilitySchedule]:
        """Ensure each user has at most one default schedule."""
        defaults: set[str] = set()
        for schedule in value:
            if not schedule.is_default:
                continue
            if schedule.user_id in defaults:
                raise ValueError(f"Multiple default schedules for user: {schedule.user_id}")
            defaults.add(schedule.user_id)
        return value

    @field_validator("overrides")
    @classmethod
    def validate_overrides(cls, value: List[DateOverride]) -> List[DateOverride]:
        """At most one blocking override per user and date."""
        blocked: set[tuple] = set()
        for override in value:
            if not override.is_blocked:
                continue
            key = (override.user_id, override.date)
            if key in blocked:
                raise ValueError(
                    f"Duplicate blocking override for {override.user_id} on {override.date}"
                )
            blocked.add(key)
        return value

    @classmethod
    def load_from_yaml(cls, data_path: Path) -> "DataFile":
        """
        Load templates, schedules and bookings from a YAML data file.

        Raises:
            FileNotFoundError: If the data file doesn't exist
            ValueError: If the data is invalid
        """
        if not data_path.exists():
            raise FileNotFoundError(f"Data file not found: {data_path}")

        return cls(**_read_yaml_mapping(data_path))

    def save_to_yaml(self, data_path: Path) -> None:
        """Write the data file back, instants as UTC ISO-8601 strings."""
        data_path.parent.mkdir(parents=True, exist_ok=True)
        with open(data_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(
                self.model_dump(mode="json", exclude_none=True),
                f,
                sort_keys=False,
                allow_unicode=True,
            )

    def with_bookings(self, bookings: List[Booking]) -> "DataFile":
        """Copy of this data file with its bookings replaced."""
        return self.model_copy(
            update={"bookings": [BookingRecord.from_booking(b) for b in bookings]}
        )


def _read_yaml_mapping(path: Path) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"{path.name} must contain a mapping at the root level.")

    return data


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
