"""Ticket domain models, timestamp derivation and services."""

from .clock import Clock, ManualClock, SystemClock
from .errors import (
    InvalidReferenceError,
    InvalidTicketTransitionError,
    OutOfOrderEventError,
    TicketNotFoundError,
    TicketServiceError,
)
from .models import Article, ArticleDirection, ArticleSender, Ticket, TicketTimestamps
from .service import AppendedArticle, TicketService
from .state import StateType, TicketState, TicketStateCatalog
from .timestamps import TimestampDeriver

__all__ = [
    "AppendedArticle",
    "Article",
    "ArticleDirection",
    "ArticleSender",
    "Clock",
    "InvalidReferenceError",
    "InvalidTicketTransitionError",
    "ManualClock",
    "OutOfOrderEventError",
    "StateType",
    "SystemClock",
    "Ticket",
    "TicketNotFoundError",
    "TicketService",
    "TicketServiceError",
    "TicketState",
    "TicketStateCatalog",
    "TicketTimestamps",
    "TimestampDeriver",
]
