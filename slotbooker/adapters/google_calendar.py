"""
Google Calendar client for free/busy lookups and booking events.
"""

import asyncio
import logging
import threading
import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import pendulum
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from pendulum import DateTime

from ..domain.exceptions import AuthenticationError, CalendarAPIError
from ..domain.models import CalendarEventRef, TimeRange
from ..domain.timezones import to_iso

logger = logging.getLogger(__name__)


def build_calendar_service(credentials: Credentials):
    return build("calendar", "v3", credentials=credentials, cache_discovery=False)


class GoogleCalendarClient:
    """
    Client for the Google Calendar v3 API.

    Uses freeBusy on each user's primary calendar and the events resource to
    write and remove booking events. Every user gets one set of OAuth
    credentials built from their refresh token; google-auth refreshes the
    access token whenever it is missing or expired.

    API calls are blocking; the async methods run them in a worker thread.
    A new service object is built per call since the underlying HTTP
    transport is not thread-safe.
    """

    TOKEN_URI = "https://oauth2.googleapis.com/token"
    SCOPES = ["https://www.googleapis.com/auth/calendar"]

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_tokens: Mapping[str, str],
        credentials: Optional[Mapping[str, Credentials]] = None,
        service_factory: Optional[Callable[[Credentials], Any]] = None
    ):
        """
        Initialize the Google Calendar client.

        Args:
            client_id: OAuth client ID
            client_secret: OAuth client secret
            refresh_tokens: Mapping user id -> OAuth refresh token
            credentials: Ready-made credentials per user (skips building them)
            service_factory: Builds the API service from credentials
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_tokens = dict(refresh_tokens)
        self.credentials: Dict[str, Credentials] = dict(credentials or {})
        self.service_factory = service_factory or build_calendar_service
        self._lock = threading.Lock()

    async def get_free_busy(
        self,
        user_id: str,
        start_time: DateTime,
        end_time: DateTime
    ) -> List[TimeRange]:
        """Busy ranges on the user's primary calendar within the window."""
        return await asyncio.to_thread(self._query_free_busy, user_id, start_time, end_time)

    async def create_event(
        self,
        user_id: str,
        summary: str,
        description: str,
        start_time: DateTime,
        end_time: DateTime,
        attendee_emails: Sequence[str],
        include_google_meet: bool = False,
        location: Optional[str] = None
    ) -> CalendarEventRef:
        """Create an event in the user's primary calendar."""
        return await asyncio.to_thread(
            self._insert_event,
            user_id,
            summary,
            description,
            start_time,
            end_time,
            list(attendee_emails),
            include_google_meet,
            location,
        )

    async def delete_event(self, user_id: str, event_id: str) -> None:
        """Remove an event from the user's primary calendar."""
        await asyncio.to_thread(self._delete_event, user_id, event_id)

    def _query_free_busy(
        self,
        user_id: str,
        start_time: DateTime,
        end_time: DateTime
    ) -> List[TimeRange]:
        body = {
            "timeMin": to_iso(start_time),
            "timeMax": to_iso(end_time),
            "timeZone": "UTC",
            "items": [{"id": "primary"}],
        }

        service = self._service(user_id)
        data = self._execute(user_id, service.freebusy().query(body=body))
        return self._parse_free_busy_response(data)

    def _parse_free_busy_response(self, response_data: Dict[str, Any]) -> List[TimeRange]:
        """
        Parse the freeBusy response into busy time ranges.

        Response format:
        {
            "calendars": {
                "primary": {
                    "busy": [{"start": "...Z", "end": "...Z"}],
                    "errors": [{"domain": "...", "reason": "..."}]
                }
            }
        }

        Unreadable entries fail the whole lookup rather than being skipped:
        a dropped busy entry would show the user as free.
        """
        calendar = response_data.get("calendars", {}).get("primary")
        if calendar is None:
            raise CalendarAPIError("freeBusy response has no primary calendar")

        errors = calendar.get("errors") or []
        if errors:
            reasons = ", ".join(e.get("reason", "unknown") for e in errors)
            raise CalendarAPIError(f"freeBusy reported errors: {reasons}")

        busy_ranges: List[TimeRange] = []
        for item in calendar.get("busy", []):
            try:
                start = pendulum.parse(item["start"]).in_timezone("UTC")
                end = pendulum.parse(item["end"]).in_timezone("UTC")
            except (KeyError, ValueError, AttributeError) as e:
                raise CalendarAPIError(f"Could not parse busy entry {item!r}: {e}") from e

            if start < end:
                busy_ranges.append(TimeRange(start=start, end=end))

        return busy_ranges

    def _insert_event(
        self,
        user_id: str,
        summary: str,
        description: str,
        start_time: DateTime,
        end_time: DateTime,
        attendee_emails: List[str],
        include_google_meet: bool,
        location: Optional[str]
    ) -> CalendarEventRef:
        body: Dict[str, Any] = {
            "summary": summary,
            "description": description,
            "start": {"dateTime": to_iso(start_time)},
            "end": {"dateTime": to_iso(end_time)},
            "attendees": [{"email": email} for email in attendee_emails],
        }
        if location:
            body["location"] = location
        if include_google_meet:
            body["conferenceData"] = {
                "createRequest": {
                    "requestId": f"meet-{uuid.uuid4()}",
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            }

        service = self._service(user_id)
        data = self._execute(
            user_id,
            service.events().insert(
                calendarId="primary",
                body=body,
                conferenceDataVersion=1 if include_google_meet else 0,
                sendUpdates="all",
            ),
        )

        if "id" not in data:
            raise CalendarAPIError("Event creation response has no id")

        meet_url = None
        for entry_point in data.get("conferenceData", {}).get("entryPoints", []):
            if entry_point.get("entryPointType") == "video":
                meet_url = entry_point.get("uri")
                break

        return CalendarEventRef(event_id=data["id"], meet_url=meet_url)

    def _delete_event(self, user_id: str, event_id: str) -> None:
        service = self._service(user_id)
        self._execute(
            user_id,
            service.events().delete(calendarId="primary", eventId=event_id, sendUpdates="all"),
        )

    def _credentials_for(self, user_id: str) -> Credentials:
        """Return the user's credentials, building them from the refresh token once."""
        with self._lock:
            credentials = self.credentials.get(user_id)
            if credentials is not None:
                return credentials

            refresh_token = self.refresh_tokens.get(user_id)
            if not refresh_token:
                raise AuthenticationError(f"No Google account linked for {user_id}")

            credentials = Credentials(
                token=None,
                refresh_token=refresh_token,
                token_uri=self.TOKEN_URI,
                client_id=self.client_id,
                client_secret=self.client_secret,
                scopes=self.SCOPES,
            )
            self.credentials[user_id] = credentials
            return credentials

    def _service(self, user_id: str):
        credentials = self._credentials_for(user_id)

        if not credentials.valid:
            logger.debug("Refreshing Google access token for %s", user_id)
            try:
                credentials.refresh(Request())
            except RefreshError as e:
                raise AuthenticationError(f"Failed to refresh Google token for {user_id}: {e}") from e
            except TransportError as e:
                raise CalendarAPIError(f"Google token endpoint unreachable for {user_id}: {e}") from e

        return self.service_factory(credentials)

    def _execute(self, user_id: str, request) -> Dict[str, Any]:
        try:
            return request.execute() or {}
        except HttpError as e:
            if e.resp.status == 401:
                with self._lock:
                    self.credentials.pop(user_id, None)
                raise AuthenticationError(f"Google rejected the access token for {user_id}") from e
            raise CalendarAPIError(f"Google Calendar request failed for {user_id}: {e}") from e
        except (RefreshError, TransportError) as e:
            raise CalendarAPIError(f"Google Calendar request failed for {user_id}: {e}") from e
