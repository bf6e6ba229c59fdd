"""
Business error taxonomy.

Services raise these; the API layer maps each to an HTTP status.  Any
other exception escaping a service is an unexpected failure and is
surfaced as a generic server error.
"""

from __future__ import annotations


class BookingEngineError(Exception):
    """Base class for expected, caller-facing business errors."""


class ValidationError(BookingEngineError):
    """Missing or malformed booking input.  Nothing was persisted."""


class SlotUnavailableError(BookingEngineError):
    """The requested slot conflicts with existing bookings."""

    def __init__(self, message: str, alternatives: list[dict] | None = None):
        super().__init__(message)
        self.alternatives = alternatives or []


class BookingBusyError(BookingEngineError):
    """The date lock stayed held for the whole wait.  Safe to retry."""


class NotFound(BookingEngineError):
    """Appointment, customer or technician lookup miss."""


class Forbidden(BookingEngineError):
    """Authorization or tracking-consent gate failed."""


class InvalidStateTransition(BookingEngineError):
    """Raised when an appointment status change violates the state machine."""
