"""
Domain-specific exception hierarchy for the slot booking engine.
"""


class SlotbookerError(Exception):
    """Base class for all application-level errors."""


class ValidationError(SlotbookerError, ValueError):
    """Raised when a date, timezone, time or request payload is malformed."""


class NotFoundError(SlotbookerError):
    """Raised when a referenced template or booking does not exist."""


class ConflictError(SlotbookerError):
    """Raised when the requested slot is no longer available."""


class AssignmentImpossible(SlotbookerError):
    """Raised when no participant can be assigned to a validated slot."""


class ExternalProviderError(SlotbookerError):
    """Base class for failures of calendar and meeting providers."""


class CalendarAPIError(ExternalProviderError):
    """Raised when calendar data cannot be fetched or written."""


class MeetingProviderError(ExternalProviderError):
    """Raised when a video meeting cannot be created."""


class AuthenticationError(ExternalProviderError):
    """Raised when authentication or token handling fails."""


class ExternalProviderDegraded(SlotbookerError):
    """
    Busy data for one participant could not be retrieved.

    Never raised on the read path: the participant is treated as busy for
    the whole query window and this error is recorded alongside the result.
    """

    def __init__(self, participant_id: str, reason: str):
        super().__init__(f"Busy data unavailable for {participant_id}: {reason}")
        self.participant_id = participant_id
        self.reason = reason
