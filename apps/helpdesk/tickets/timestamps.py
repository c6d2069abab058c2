"""Derivation of contact, response, close and pending timestamps for tickets.

The deriver never mutates the tickets it is given. Every operation validates
its input first and returns a new :class:`Ticket`, so a rejected update leaves
the caller's copy untouched.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Iterable

from .errors import InvalidReferenceError, OutOfOrderEventError
from .models import Article, ArticleDirection, Ticket, TicketTimestamps
from .state import TicketStateCatalog


class TimestampDeriver:
    """Maintain the derived timestamps of a ticket from articles and state changes."""

    def __init__(self, catalog: TicketStateCatalog | None = None) -> None:
        self._catalog = catalog or TicketStateCatalog()

    @property
    def catalog(self) -> TicketStateCatalog:
        return self._catalog

    def on_article_appended(self, ticket: Ticket, article: Article) -> Ticket:
        if article.ticket_id != ticket.id:
            raise InvalidReferenceError(
                f"Article {article.id} references ticket {article.ticket_id}, not {ticket.id}"
            )
        if ticket.last_contact is not None and article.created_at < ticket.last_contact:
            raise OutOfOrderEventError(
                f"Article {article.id} created at {article.created_at.isoformat()} precedes "
                f"last contact {ticket.last_contact.isoformat()} of ticket {ticket.id}"
            )

        article_count = ticket.article_count + 1
        if article.internal:
            return replace(ticket, article_count=article_count)

        created_at = article.created_at
        if article.direction is ArticleDirection.INBOUND:
            return replace(
                ticket,
                article_count=article_count,
                last_contact=created_at,
                last_contact_customer=created_at,
            )

        first_response = ticket.first_response
        # nothing to respond to until the customer has been heard from
        if first_response is None and ticket.last_contact_customer is not None:
            first_response = created_at
        return replace(
            ticket,
            article_count=article_count,
            last_contact=created_at,
            last_contact_agent=created_at,
            first_response=first_response,
        )

    def on_state_changed(
        self,
        ticket: Ticket,
        new_state: str,
        *,
        now: datetime,
        pending_time: datetime | None = None,
    ) -> Ticket:
        state = self._catalog.assert_transition(new_state, pending_time)
        close_time = now if state.is_closed else ticket.close_time
        return replace(
            ticket,
            state=state.name,
            close_time=close_time,
            pending_time=pending_time if state.is_pending else None,
        )

    def replay(self, ticket: Ticket, articles: Iterable[Article]) -> Ticket:
        """Recompute the article-derived fields from the full article history."""

        rebuilt = replace(
            ticket,
            article_count=0,
            last_contact=None,
            last_contact_customer=None,
            last_contact_agent=None,
            first_response=None,
        )
        for article in sorted(articles, key=lambda item: (item.created_at, item.id)):
            rebuilt = self.on_article_appended(rebuilt, article)
        return rebuilt

    @staticmethod
    def query(ticket: Ticket) -> TicketTimestamps:
        return TicketTimestamps(
            article_count=ticket.article_count,
            last_contact=ticket.last_contact,
            last_contact_customer=ticket.last_contact_customer,
            last_contact_agent=ticket.last_contact_agent,
            first_response=ticket.first_response,
            close_time=ticket.close_time,
            pending_time=ticket.pending_time,
        )

    @staticmethod
    def latest_change(tickets: Iterable[Ticket]) -> datetime | None:
        latest: datetime | None = None
        for ticket in tickets:
            if latest is None or ticket.updated_at > latest:
                latest = ticket.updated_at
        return latest
