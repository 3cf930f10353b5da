"""
Tests for the provider adapters: token cache, Google Calendar, Zoom and the mock client.
"""

import asyncio
from typing import Any, Dict, List

import pendulum
import pytest
import requests
from google.auth.exceptions import RefreshError
from google.oauth2.credentials import Credentials
from googleapiclient.errors import HttpError

from slotbooker.adapters.google_calendar import GoogleCalendarClient
from slotbooker.adapters.mock_calendar import MockCalendarClient
from slotbooker.adapters.token_cache import TokenCache
from slotbooker.adapters.zoom_client import ZoomMeetingClient
from slotbooker.domain.exceptions import AuthenticationError, CalendarAPIError, MeetingProviderError
from slotbooker.domain.models import MeetingPlatform, TimeRange

START = pendulum.datetime(2024, 11, 24, tz="UTC")
END = pendulum.datetime(2024, 11, 27, tz="UTC")


class FakeResponse:
    """Just enough of requests.Response for the clients."""

    def __init__(self, status_code: int = 200, payload: Any = None):
        self.status_code = status_code
        self._payload = payload
        self.content = b"" if payload is None else b"{...}"

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")


class FakeSession:
    """Replays queued responses and records requests."""

    def __init__(self, responses: List[FakeResponse]):
        self._responses = list(responses)
        self.requests: List[Dict[str, Any]] = []

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)

    def request(self, method, url, **kwargs):
        self.requests.append({"method": method, "url": url, **kwargs})
        if not self._responses:
            raise requests.exceptions.ConnectionError("no more responses")
        return self._responses.pop(0)


TOKEN = FakeResponse(payload={"access_token": "token-1", "expires_in": 3600})


class TestTokenCache:
    """Tests for expiring token storage."""

    def test_token_expires_with_safety_margin(self):
        now = [pendulum.datetime(2024, 11, 25, tz="UTC")]
        cache = TokenCache(safety_margin_seconds=60, clock=lambda: now[0])

        cache.set("alice", "abc", expires_in_seconds=3600)
        assert cache.get("alice") == "abc"

        now[0] = now[0].add(seconds=3539)
        assert cache.get("alice") == "abc"

        now[0] = now[0].add(seconds=1)
        assert cache.get("alice") is None

    def test_invalidate(self):
        cache = TokenCache()
        cache.set("a", "1", 3600)
        cache.set("b", "2", 3600)

        cache.invalidate("a")
        assert cache.get("a") is None
        assert cache.get("b") == "2"

        cache.invalidate()
        assert cache.get("b") is None


class StubCredentials:
    """Stands in for google.oauth2 credentials; counts refreshes."""

    def __init__(self, valid: bool = True, refresh_error: Exception = None):
        self.valid = valid
        self.refresh_error = refresh_error
        self.refreshes = 0

    def refresh(self, request):
        self.refreshes += 1
        if self.refresh_error is not None:
            raise self.refresh_error
        self.valid = True


class FakeRequest:
    def __init__(self, result=None, error: Exception = None):
        self._result = result
        self._error = error

    def execute(self):
        if self._error is not None:
            raise self._error
        return self._result


class FakeCalendarService:
    """Mimics the discovery-built calendar service and records calls."""

    def __init__(self, results: List[Any]):
        self._results = list(results)
        self.calls: List[Dict[str, Any]] = []

    def freebusy(self):
        return self

    def events(self):
        return self

    def query(self, **kwargs):
        return self._next("freebusy.query", kwargs)

    def insert(self, **kwargs):
        return self._next("events.insert", kwargs)

    def delete(self, **kwargs):
        return self._next("events.delete", kwargs)

    def _next(self, name, kwargs):
        self.calls.append({"name": name, **kwargs})
        result = self._results.pop(0)
        if isinstance(result, Exception):
            return FakeRequest(error=result)
        return FakeRequest(result=result)


class FakeHttpResponse(dict):
    """Header mapping with the status attributes HttpError reads."""

    def __init__(self, status: int):
        super().__init__({"status": str(status)})
        self.status = status
        self.reason = "error"


def _http_error(status: int) -> HttpError:
    return HttpError(FakeHttpResponse(status), b"")


def _google(results, credentials=None):
    service = FakeCalendarService(results)
    client = GoogleCalendarClient(
        client_id="cid",
        client_secret="secret",
        refresh_tokens={"alice": "refresh-alice"},
        credentials={"alice": StubCredentials()} if credentials is None else credentials,
        service_factory=lambda creds: service,
    )
    return client, service


class TestGoogleCalendarClient:
    """Tests for the Google Calendar adapter."""

    def test_free_busy_parses_ranges(self):
        busy = {
            "calendars": {"primary": {"busy": [
                {"start": "2024-11-25T09:00:00+09:00", "end": "2024-11-25T10:00:00+09:00"},
            ]}}
        }
        client, service = _google([busy])

        ranges = asyncio.run(client.get_free_busy("alice", START, END))

        assert ranges == [TimeRange(
            start=pendulum.datetime(2024, 11, 25, 0, tz="UTC"),
            end=pendulum.datetime(2024, 11, 25, 1, tz="UTC"),
        )]
        assert service.calls[0]["body"]["timeMin"] == "2024-11-24T00:00:00Z"
        assert service.calls[0]["body"]["items"] == [{"id": "primary"}]

    def test_expired_credentials_are_refreshed_once(self):
        creds = StubCredentials(valid=False)
        empty = {"calendars": {"primary": {"busy": []}}}
        client, _ = _google([empty, empty], credentials={"alice": creds})

        asyncio.run(client.get_free_busy("alice", START, END))
        asyncio.run(client.get_free_busy("alice", START, END))

        assert creds.refreshes == 1

    def test_credentials_built_from_refresh_token(self):
        client, _ = _google([], credentials={})

        creds = client._credentials_for("alice")

        assert isinstance(creds, Credentials)
        assert creds.refresh_token == "refresh-alice"
        assert creds.client_id == "cid"
        assert creds.token_uri == GoogleCalendarClient.TOKEN_URI
        assert client._credentials_for("alice") is creds

    def test_calendar_errors_fail_the_lookup(self):
        errors = {"calendars": {"primary": {"errors": [{"reason": "notFound"}]}}}
        client, _ = _google([errors])

        with pytest.raises(CalendarAPIError, match="notFound"):
            asyncio.run(client.get_free_busy("alice", START, END))

    def test_unlinked_user(self):
        client, _ = _google([])

        with pytest.raises(AuthenticationError):
            asyncio.run(client.get_free_busy("bob", START, END))

    def test_refresh_failure(self):
        creds = StubCredentials(valid=False, refresh_error=RefreshError("invalid_grant"))
        client, _ = _google([], credentials={"alice": creds})

        with pytest.raises(AuthenticationError, match="invalid_grant"):
            asyncio.run(client.get_free_busy("alice", START, END))

    def test_rejected_token_drops_credentials(self):
        client, _ = _google([_http_error(401)])

        with pytest.raises(AuthenticationError):
            asyncio.run(client.get_free_busy("alice", START, END))
        assert "alice" not in client.credentials

    def test_server_error(self):
        client, _ = _google([_http_error(500)])

        with pytest.raises(CalendarAPIError):
            asyncio.run(client.get_free_busy("alice", START, END))

    def test_create_event_with_meet_link(self):
        created = {
            "id": "evt-1",
            "conferenceData": {"entryPoints": [
                {"entryPointType": "phone", "uri": "tel:+1"},
                {"entryPointType": "video", "uri": "https://meet.google.com/abc"},
            ]},
        }
        client, service = _google([created])

        event = asyncio.run(client.create_event(
            user_id="alice",
            summary="Intro - Grace",
            description="",
            start_time=START,
            end_time=START.add(minutes=30),
            attendee_emails=["grace@example.com"],
            include_google_meet=True,
        ))

        assert (event.event_id, event.meet_url) == ("evt-1", "https://meet.google.com/abc")
        call = service.calls[0]
        assert call["calendarId"] == "primary"
        assert call["conferenceDataVersion"] == 1
        assert call["body"]["attendees"] == [{"email": "grace@example.com"}]

    def test_delete_event(self):
        client, service = _google([""])

        asyncio.run(client.delete_event("alice", "evt-1"))

        assert service.calls[0]["name"] == "events.delete"
        assert service.calls[0]["eventId"] == "evt-1"


def _zoom(responses) -> ZoomMeetingClient:
    return ZoomMeetingClient(
        account_id="acc",
        client_id="cid",
        client_secret="secret",
        session=FakeSession(responses),
    )


class TestZoomMeetingClient:
    """Tests for the Zoom adapter."""

    def test_create_meeting(self):
        created = FakeResponse(payload={"id": 123, "join_url": "https://zoom.us/j/123"})
        client = _zoom([TOKEN, created])

        link = asyncio.run(client.create_meeting(MeetingPlatform.ZOOM, "Intro", START, 30))

        assert (link.meeting_id, link.join_url) == ("123", "https://zoom.us/j/123")
        assert client.session.requests[1]["json"]["duration"] == 30

    def test_other_platforms_rejected(self):
        with pytest.raises(MeetingProviderError):
            asyncio.run(_zoom([]).create_meeting(MeetingPlatform.GOOGLE_MEET, "Intro", START, 30))

    def test_api_failure(self):
        client = _zoom([TOKEN, FakeResponse(status_code=500, payload={})])

        with pytest.raises(MeetingProviderError):
            asyncio.run(client.create_meeting(MeetingPlatform.ZOOM, "Intro", START, 30))


class TestMockCalendarClient:
    """Tests for the in-memory calendar."""

    def test_busy_filtered_to_window_and_failures(self):
        inside = TimeRange(start=START.add(hours=9), end=START.add(hours=10))
        outside = TimeRange(start=END.add(hours=1), end=END.add(hours=2))
        client = MockCalendarClient(busy={"alice": [inside, outside]}, failing_users=["bob"])

        assert asyncio.run(client.get_free_busy("alice", START, END)) == [inside]
        assert asyncio.run(client.get_free_busy("carol", START, END)) == []
        with pytest.raises(CalendarAPIError):
            asyncio.run(client.get_free_busy("bob", START, END))

    def test_delete_unknown_event(self):
        with pytest.raises(CalendarAPIError):
            asyncio.run(MockCalendarClient().delete_event("alice", "nope"))
