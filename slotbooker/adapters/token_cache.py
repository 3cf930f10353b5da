"""
Scoped access-token cache with explicit expiry.

Each provider client owns its own instance; nothing is shared at module level.
"""

import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import pendulum
from pendulum import DateTime


@dataclass(frozen=True)
class CachedToken:
    token: str
    expires_at: DateTime


class TokenCache:
    """
    Access tokens keyed by account.

    A token is served only while ``now < expires_at - safety_margin`` so a
    request never starts with a token about to lapse.
    """

    def __init__(
        self,
        safety_margin_seconds: int = 60,
        clock: Optional[Callable[[], DateTime]] = None
    ):
        self.safety_margin_seconds = safety_margin_seconds
        self._clock = clock or (lambda: pendulum.now("UTC"))
        self._tokens: Dict[str, CachedToken] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        """Return a still-valid token for ``key`` or None."""
        with self._lock:
            cached = self._tokens.get(key)
            if cached is None:
                return None
            cutoff = cached.expires_at.subtract(seconds=self.safety_margin_seconds)
            if self._clock() >= cutoff:
                del self._tokens[key]
                return None
            return cached.token

    def set(self, key: str, token: str, expires_in_seconds: int) -> None:
        """Store a token valid for ``expires_in_seconds`` from now."""
        expires_at = self._clock().add(seconds=int(expires_in_seconds))
        with self._lock:
            self._tokens[key] = CachedToken(token=token, expires_at=expires_at)

    def invalidate(self, key: Optional[str] = None) -> None:
        """Drop one token, or all of them when ``key`` is None."""
        with self._lock:
            if key is None:
                self._tokens.clear()
            else:
                self._tokens.pop(key, None)
