"""Error taxonomy surfaced to the presentation layer.

Every error names the operation that failed so the UI can show a
specific message. Only ``ValidationError`` and ``SubmitFailed`` block
a submission; lookup failures degrade label quality instead.
"""


class SafetyAlertError(Exception):
    """Base class for all errors raised by the alert engine."""

    operation: str = "unknown"

    def __init__(self, message: str, *, operation: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if operation is not None:
            self.operation = operation


class SubscriptionError(SafetyAlertError):
    """The live channel could not be opened or dropped.

    The replica freezes at its last known state ("live updates unavailable").
    """

    operation = "subscribe"


class ValidationError(SafetyAlertError):
    """A required draft field is missing. Never reaches the network."""

    operation = "validate"

    def __init__(self, fields: list[str]) -> None:
        self.fields = list(fields)
        super().__init__(f"Missing required fields: {', '.join(self.fields)}")


class LocationUnavailable(SafetyAlertError):
    """No geographic point could be obtained (permission denied or unsupported)."""

    operation = "current_position"


class LookupFailed(SafetyAlertError):
    """Place search or reverse geocoding failed.

    Degrades to coordinate-only labels or empty suggestions.
    """

    operation = "lookup"


class SubmitFailed(SafetyAlertError):
    """The remote write failed. The draft is preserved for a manual retry."""

    operation = "submit"


class SubmissionInProgress(SafetyAlertError):
    """``submit()`` was called while the workflow was not editing."""

    operation = "submit"


class PositionDenied(SafetyAlertError):
    """Raised by position providers when the device refuses or cannot locate."""

    operation = "current_position"
