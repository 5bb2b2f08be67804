"""Engine error taxonomy."""


class LeadWatchError(Exception):
    """Base class for engine errors."""


class InvalidTimeFormat(LeadWatchError, ValueError):
    """A slot time is not a valid HH:MM in [00:00, 23:59]."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Invalid time format: {value!r} (expected HH:MM)")


class FetchFailed(LeadWatchError):
    """An external read failed or timed out."""


class AuthorizationDenied(LeadWatchError):
    """The external alert channel is not permitted."""


class NotRunning(LeadWatchError):
    """An operation was invoked on a stopped engine."""
