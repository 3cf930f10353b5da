"""
Tests for configuration and data file loading.
"""

from pathlib import Path

import pendulum
import pytest
import yaml

from slotbooker.config import AppConfig, DataFile
from slotbooker.domain.models import Booking, BookingStatus, SchedulingMode

DATA = {
    "templates": [
        {
            "id": "intro",
            "owner_id": "alice",
            "title": "Intro call",
            "duration_minutes": 30,
            "scheduling_mode": "any_available",
            "participant_ids": ["bob"],
        }
    ],
    "schedules": [
        {
            "id": "s-alice",
            "user_id": "alice",
            "timezone": "Asia/Tokyo",
            "rules": [{"day_of_week": "monday", "start_time": "09:00", "end_time": "17:00"}],
        }
    ],
    "overrides": [{"user_id": "alice", "date": "2024-12-24", "is_blocked": True}],
    "busy": [{"user_id": "bob", "start": "2024-11-25T09:00:00Z", "end": "2024-11-25T10:00:00Z"}],
}


def _write(path: Path, data) -> Path:
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


def test_load_config_resolves_data_file(tmp_path):
    config_path = _write(tmp_path / "config.yaml", {
        "timezone": "Europe/Berlin",
        "log_level": "info",
        "data_file": "data.yaml",
        "zoom": {"account_id": "a", "client_id": "b", "client_secret": "c"},
    })

    config = AppConfig.load_from_yaml(config_path)

    assert config.timezone == "Europe/Berlin"
    assert config.log_level == "INFO"
    assert config.data_file == tmp_path / "data.yaml"
    assert config.google is None
    assert config.zoom.account_id == "a"


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        AppConfig.load_from_yaml(tmp_path / "config.yaml")


@pytest.mark.parametrize(
    "content",
    [{"timezone": "Not/AZone"}, {"fetch_timeout_seconds": 0}, {"log_level": "LOUD"}],
)
def test_invalid_config_values(tmp_path, content):
    with pytest.raises(ValueError):
        AppConfig.load_from_yaml(_write(tmp_path / "config.yaml", content))


def test_config_must_be_mapping(tmp_path):
    with pytest.raises(ValueError, match="mapping"):
        AppConfig.load_from_yaml(_write(tmp_path / "config.yaml", ["not", "a", "mapping"]))


def test_load_data_file(tmp_path):
    data = DataFile.load_from_yaml(_write(tmp_path / "data.yaml", DATA))

    assert data.templates[0].scheduling_mode == SchedulingMode.ANY_AVAILABLE
    assert data.templates[0].participant_ids == ["alice", "bob"]
    assert data.schedules[0].rules[0].start_time == "09:00"
    assert data.overrides[0].is_blocked
    assert data.busy[0].to_time_range().start == pendulum.datetime(2024, 11, 25, 9, tz="UTC")


@pytest.mark.parametrize(
    "extra",
    [
        {"templates": DATA["templates"] * 2},
        {"schedules": DATA["schedules"] * 2},
        {"overrides": DATA["overrides"] * 2},
        {"templates": [{
            **DATA["templates"][0],
            "custom_questions": [{"id": "q", "question": "A"}, {"id": "q", "question": "B"}],
        }]},
        {"busy": [{"user_id": "bob", "start": "2024-11-25T09:00:00", "end": "2024-11-25T10:00:00Z"}]},
    ],
)
def test_invalid_data_file(tmp_path, extra):
    with pytest.raises(ValueError):
        DataFile.load_from_yaml(_write(tmp_path / "data.yaml", {**DATA, **extra}))


def test_bookings_survive_save_and_load(tmp_path):
    data = DataFile.load_from_yaml(_write(tmp_path / "data.yaml", DATA))
    booking = Booking(
        id="b1",
        event_template_id="intro",
        assigned_user_id="bob",
        start=pendulum.datetime(2024, 11, 25, 1, tz="UTC"),
        end=pendulum.datetime(2024, 11, 25, 1, 30, tz="UTC"),
        guest_name="Grace",
        guest_email="grace@example.com",
        guest_timezone="Europe/Berlin",
        guest_answers={"company": "Acme"},
        status=BookingStatus.CANCELLED,
        cancelled_at=pendulum.datetime(2024, 11, 20, tz="UTC"),
        created_at=pendulum.datetime(2024, 11, 19, tz="UTC"),
    )

    data.with_bookings([booking]).save_to_yaml(tmp_path / "out" / "data.yaml")
    reloaded = DataFile.load_from_yaml(tmp_path / "out" / "data.yaml")

    assert reloaded.bookings[0].to_booking() == booking
    assert "guest_notes" not in yaml.safe_load((tmp_path / "out" / "data.yaml").read_text())["bookings"][0]
