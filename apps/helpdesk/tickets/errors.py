from __future__ import annotations


class TicketServiceError(RuntimeError):
    """Base error for ticket service issues."""


class TicketNotFoundError(TicketServiceError):
    """Raised when an operation targets a destroyed or non-existent ticket."""


class InvalidReferenceError(TicketServiceError):
    """Raised when an article references a ticket that does not exist."""


class InvalidTicketTransitionError(TicketServiceError):
    """Raised when a state change is invalid for the target state."""


class OutOfOrderEventError(TicketServiceError):
    """Raised when an article predates the ticket's most recent contact."""
