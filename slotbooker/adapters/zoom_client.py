"""
Zoom client creating scheduled meetings for bookings.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import requests
from pendulum import DateTime

from ..domain.exceptions import AuthenticationError, MeetingProviderError
from ..domain.models import MeetingLink, MeetingPlatform
from ..domain.timezones import to_iso
from .token_cache import TokenCache

logger = logging.getLogger(__name__)


class ZoomMeetingClient:
    """
    Server-to-server Zoom client (account credentials grant).

    The account token lives in an injected ``TokenCache`` keyed by account id.
    """

    TOKEN_ENDPOINT = "https://zoom.us/oauth/token"
    API_ENDPOINT = "https://api.zoom.us/v2"

    def __init__(
        self,
        account_id: str,
        client_id: str,
        client_secret: str,
        token_cache: Optional[TokenCache] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None
    ):
        self.account_id = account_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_cache = token_cache or TokenCache()
        self.timeout = timeout
        self.session = session or requests.Session()

    async def create_meeting(
        self,
        platform: MeetingPlatform,
        topic: str,
        start_time: DateTime,
        duration_minutes: int
    ) -> MeetingLink:
        """
        Create a scheduled meeting.

        Raises:
            MeetingProviderError: If the platform is not Zoom or the API fails
        """
        if platform != MeetingPlatform.ZOOM:
            raise MeetingProviderError(f"Zoom client cannot create {platform.value} meetings")

        return await asyncio.to_thread(self._create_meeting, topic, start_time, duration_minutes)

    def _create_meeting(self, topic: str, start_time: DateTime, duration_minutes: int) -> MeetingLink:
        payload = {
            "topic": topic,
            "type": 2,  # scheduled meeting
            "start_time": to_iso(start_time),
            "duration": duration_minutes,
            "timezone": "UTC",
            "settings": {
                "join_before_host": True,
                "waiting_room": False,
                "auto_recording": "none",
            },
        }

        try:
            response = self.session.post(
                f"{self.API_ENDPOINT}/users/me/meetings",
                headers={
                    "Authorization": f"Bearer {self._access_token()}",
                    "Content-Type": "application/json",
                },
                json=payload,
                timeout=self.timeout,
            )
            if response.status_code == 401:
                self.token_cache.invalidate(self.account_id)
            response.raise_for_status()
            data: Dict[str, Any] = response.json()
        except requests.exceptions.RequestException as e:
            raise MeetingProviderError(f"Zoom meeting creation failed: {e}") from e
        except ValueError as e:
            raise MeetingProviderError(f"Invalid JSON from Zoom: {e}") from e

        if "id" not in data or "join_url" not in data:
            raise MeetingProviderError(f"Zoom meeting error: {data.get('message', 'incomplete response')}")

        logger.info("Created Zoom meeting %s", data["id"])
        return MeetingLink(meeting_id=str(data["id"]), join_url=data["join_url"])

    def _access_token(self) -> str:
        cached = self.token_cache.get(self.account_id)
        if cached:
            return cached

        try:
            response = self.session.post(
                self.TOKEN_ENDPOINT,
                auth=(self.client_id, self.client_secret),
                data={"grant_type": "account_credentials", "account_id": self.account_id},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise AuthenticationError(f"Zoom token error: {e}") from e
        except ValueError as e:
            raise AuthenticationError(f"Invalid Zoom token response: {e}") from e

        if "access_token" not in data:
            raise AuthenticationError(f"Zoom token error: {data.get('reason', 'unknown error')}")

        self.token_cache.set(self.account_id, data["access_token"], data.get("expires_in", 3600))
        return data["access_token"]
