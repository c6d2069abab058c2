from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Iterator, Sequence

from opentelemetry import trace

from apps.helpdesk.metrics import MetricsRegistry, metrics_registry
from apps.helpdesk.metrics import definitions as metric_names

from .clock import Clock, SystemClock
from .errors import (
    InvalidReferenceError,
    InvalidTicketTransitionError,
    TicketNotFoundError,
    TicketServiceError,
)
from .locks import TicketLockRegistry
from .models import Article, ArticleDirection, ArticleSender, Ticket, TicketTimestamps
from .repository import TicketRepository
from .state import StateType
from .text import single_line
from .timestamps import TimestampDeriver

if TYPE_CHECKING:
    from apps.helpdesk.services.settings import SettingsStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AppendedArticle:
    """Stored article together with the ticket as updated by it."""

    article: Article
    ticket: Ticket


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TicketService:
    """High level orchestration for tickets, their articles and derived timestamps."""

    def __init__(
        self,
        repository: TicketRepository,
        *,
        deriver: TimestampDeriver | None = None,
        clock: Clock | None = None,
        locks: TicketLockRegistry | None = None,
        settings: SettingsStore | None = None,
        metrics: MetricsRegistry | None = None,
        tracer: trace.Tracer | None = None,
    ) -> None:
        self._repository = repository
        self._tracer = tracer or trace.get_tracer(__name__)
        self._deriver = deriver or TimestampDeriver()
        self._clock = clock or SystemClock()
        self._locks = locks or TicketLockRegistry()
        self._settings = settings
        self._metrics = metrics or metrics_registry

    @property
    def deriver(self) -> TimestampDeriver:
        return self._deriver

    @contextmanager
    def _instrument(self, operation: str) -> Iterator[None]:
        labels = {"operation": operation}
        with self._tracer.start_as_current_span(f"tickets.{operation}"):
            try:
                with self._metrics.distribution(metric_names.OPERATION_DURATION, label_names=("operation",)).time(
                    labels=labels
                ):
                    yield
            except TicketServiceError as exc:
                self._metrics.counter(metric_names.OPERATION_FAILURES, label_names=("operation",)).inc(labels=labels)
                logger.warning("Ticket operation %s rejected: %s", operation, exc)
                raise

    async def _default_state(self) -> str:
        if self._settings is not None:
            configured = await self._settings.get("ticket_default_state")
            if configured:
                return str(configured)
        return self._deriver.catalog.initial_state().name

    async def _require_ticket(self, ticket_id: int) -> Ticket:
        ticket = await self._repository.get_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    async def create_ticket(self, *, title: str, actor: str, state: str | None = None) -> Ticket:
        with self._instrument("create_ticket"):
            state_name = state or await self._default_state()
            ticket_state = self._deriver.catalog.lookup(state_name)
            if ticket_state.state_type is not StateType.OPEN:
                raise InvalidTicketTransitionError(f"Tickets must be created in an open state, got {state_name!r}")

            ticket = await self._repository.create_ticket(
                title=single_line(title),
                state=ticket_state.name,
                actor=actor,
                now=self._clock.now(),
            )
            self._metrics.counter(metric_names.TICKETS_CREATED).inc()
            logger.info("Ticket %s created by %s in state %s", ticket.id, actor, ticket.state)
            return ticket

    async def get_ticket(self, ticket_id: int) -> Ticket:
        return await self._require_ticket(ticket_id)

    async def get_timestamps(self, ticket_id: int) -> TicketTimestamps:
        ticket = await self._require_ticket(ticket_id)
        return self._deriver.query(ticket)

    async def list_tickets(self, *, state: str | None = None) -> Sequence[Ticket]:
        return await self._repository.list_tickets(state=state)

    async def list_articles(self, ticket_id: int) -> Sequence[Article]:
        await self._require_ticket(ticket_id)
        return await self._repository.list_articles(ticket_id)

    async def append_article(
        self,
        ticket_id: int,
        *,
        sender: ArticleSender,
        actor: str,
        direction: ArticleDirection | None = None,
        internal: bool = False,
        subject: str = "",
        body: str = "",
        from_: str | None = None,
        to: str | None = None,
        created_at: datetime | None = None,
    ) -> AppendedArticle:
        with self._instrument("append_article"):
            async with self._locks.hold(ticket_id):
                ticket = await self._repository.get_ticket(ticket_id)
                if ticket is None:
                    raise InvalidReferenceError(f"Article references unknown ticket {ticket_id}")

                now = self._clock.now()
                draft = Article(
                    id=None,
                    ticket_id=ticket_id,
                    sender=sender,
                    direction=direction or ArticleDirection.for_sender(sender),
                    internal=internal,
                    created_by=actor,
                    created_at=_as_utc(created_at) if created_at is not None else now,
                    subject=single_line(subject),
                    body=body,
                    from_=from_,
                    to=to,
                )
                updated = self._deriver.on_article_appended(ticket, draft)
                updated = replace(updated, updated_by=actor, updated_at=now)

                article = await self._repository.append_article(draft, updated)
                if article is None:
                    raise InvalidReferenceError(f"Article references unknown ticket {ticket_id}")

            self._metrics.counter(metric_names.ARTICLES_APPENDED, label_names=("direction", "internal")).inc(
                labels={"direction": article.direction.value, "internal": str(article.internal).lower()}
            )
            if ticket.first_response is None and updated.first_response is not None:
                self._metrics.counter(metric_names.FIRST_RESPONSES).inc()
            logger.debug(
                "Article %s (%s, internal=%s) appended to ticket %s",
                article.id,
                article.direction.value,
                article.internal,
                ticket_id,
            )
            return AppendedArticle(article=article, ticket=updated)

    async def change_state(
        self,
        ticket_id: int,
        *,
        new_state: str,
        actor: str,
        pending_time: datetime | None = None,
    ) -> Ticket:
        with self._instrument("change_state"):
            async with self._locks.hold(ticket_id):
                ticket = await self._require_ticket(ticket_id)
                now = self._clock.now()
                updated = self._deriver.on_state_changed(
                    ticket,
                    new_state,
                    now=now,
                    pending_time=_as_utc(pending_time) if pending_time is not None else None,
                )
                updated = replace(updated, updated_by=actor, updated_at=now)
                saved = await self._repository.save_ticket(updated)
                if saved is None:
                    raise TicketNotFoundError(f"Ticket {ticket_id} not found")

            state_type = self._deriver.catalog.lookup(saved.state).state_type
            self._metrics.counter(metric_names.STATE_CHANGES, label_names=("state_type",)).inc(
                labels={"state_type": state_type.value}
            )
            logger.info("Ticket %s moved %s -> %s by %s", ticket_id, ticket.state, saved.state, actor)
            return saved

    async def update_ticket(self, ticket_id: int, *, title: str, actor: str) -> Ticket:
        with self._instrument("update_ticket"):
            async with self._locks.hold(ticket_id):
                ticket = await self._require_ticket(ticket_id)
                updated = replace(ticket, title=single_line(title), updated_by=actor, updated_at=self._clock.now())
                saved = await self._repository.save_ticket(updated)
                if saved is None:
                    raise TicketNotFoundError(f"Ticket {ticket_id} not found")
                return saved

    async def touch_ticket(self, ticket_id: int, *, actor: str) -> Ticket:
        """Bump the ticket's modification time without changing anything else."""

        with self._instrument("touch_ticket"):
            async with self._locks.hold(ticket_id):
                ticket = await self._require_ticket(ticket_id)
                saved = await self._repository.save_ticket(
                    replace(ticket, updated_by=actor, updated_at=self._clock.now())
                )
                if saved is None:
                    raise TicketNotFoundError(f"Ticket {ticket_id} not found")
                return saved

    async def rebuild_timestamps(self, ticket_id: int, *, actor: str) -> Ticket:
        """Recompute article-derived fields from the stored article history."""

        with self._instrument("rebuild_timestamps"):
            async with self._locks.hold(ticket_id):
                ticket = await self._require_ticket(ticket_id)
                articles = await self._repository.list_articles(ticket_id)
                rebuilt = self._deriver.replay(ticket, articles)
                if rebuilt == ticket:
                    return ticket
                saved = await self._repository.save_ticket(
                    replace(rebuilt, updated_by=actor, updated_at=self._clock.now())
                )
                if saved is None:
                    raise TicketNotFoundError(f"Ticket {ticket_id} not found")
                logger.info("Rebuilt timestamps of ticket %s from %d articles", ticket_id, len(articles))
                return saved

    async def destroy_ticket(self, ticket_id: int) -> None:
        with self._instrument("destroy_ticket"):
            async with self._locks.hold(ticket_id):
                deleted = await self._repository.delete_ticket(ticket_id)
                if not deleted:
                    raise TicketNotFoundError(f"Ticket {ticket_id} not found")
            self._metrics.counter(metric_names.TICKETS_DESTROYED).inc()
            logger.info("Ticket %s destroyed", ticket_id)

    async def latest_change(self) -> datetime | None:
        return await self._repository.latest_change()
