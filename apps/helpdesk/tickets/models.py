from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ArticleSender(str, Enum):
    """Role of whoever authored an article."""

    CUSTOMER = "customer"
    AGENT = "agent"
    SYSTEM = "system"


class ArticleDirection(str, Enum):
    """Direction of an article relative to the customer."""

    INBOUND = "inbound"
    OUTBOUND = "outbound"

    @classmethod
    def for_sender(cls, sender: ArticleSender) -> "ArticleDirection":
        if sender is ArticleSender.CUSTOMER:
            return cls.INBOUND
        return cls.OUTBOUND


@dataclass(slots=True)
class Ticket:
    """Aggregate representing a support ticket and its derived timestamps."""

    id: int
    title: str
    state: str
    created_by: str
    updated_by: str
    created_at: datetime
    updated_at: datetime
    article_count: int = 0
    last_contact: datetime | None = None
    last_contact_customer: datetime | None = None
    last_contact_agent: datetime | None = None
    first_response: datetime | None = None
    close_time: datetime | None = None
    pending_time: datetime | None = None


@dataclass(slots=True)
class Article:
    """Append-only message or note attached to a ticket.

    ``id`` stays ``None`` until the article has been stored.
    """

    id: int | None
    ticket_id: int
    sender: ArticleSender
    direction: ArticleDirection
    internal: bool
    created_by: str
    created_at: datetime
    subject: str = ""
    body: str = ""
    from_: str | None = None
    to: str | None = None


@dataclass(frozen=True, slots=True)
class TicketTimestamps:
    """Read-only snapshot of the fields derived from a ticket's history."""

    article_count: int
    last_contact: datetime | None
    last_contact_customer: datetime | None
    last_contact_agent: datetime | None
    first_response: datetime | None
    close_time: datetime | None
    pending_time: datetime | None
