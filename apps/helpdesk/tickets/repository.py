from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from packages.db.models import TicketArticleTable, TicketTable

from .models import Article, ArticleDirection, ArticleSender, Ticket


class TicketRepository:
    """Persistence helper wrapping the `tickets` and `ticket_articles` tables."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine: AsyncEngine | None = engine

    async def ensure_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("Session factory is not bound to an async engine")
        async with self._engine.begin() as connection:
            await connection.run_sync(SQLModel.metadata.create_all)

    async def create_ticket(self, *, title: str, state: str, actor: str, now: datetime) -> Ticket:
        async with self._session_factory() as session:
            async with session.begin():
                row = TicketTable(
                    title=title,
                    state=state,
                    article_count=0,
                    created_by=actor,
                    updated_by=actor,
                    created_at=now,
                    updated_at=now,
                )
                session.add(row)
                await session.flush()
                return self._table_to_ticket(row)

    async def get_ticket(self, ticket_id: int) -> Ticket | None:
        async with self._session_factory() as session:
            row = await session.get(TicketTable, ticket_id)
            if row is None:
                return None
            return self._table_to_ticket(row)

    async def list_tickets(self, *, state: str | None = None) -> Sequence[Ticket]:
        statement = select(TicketTable)
        if state is not None:
            statement = statement.where(TicketTable.state == state)
        statement = statement.order_by(TicketTable.created_at.desc(), TicketTable.id.desc())
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._table_to_ticket(row) for row in result.scalars().all()]

    async def list_articles(self, ticket_id: int) -> Sequence[Article]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(TicketArticleTable)
                .where(TicketArticleTable.ticket_id == ticket_id)
                .order_by(TicketArticleTable.created_at.asc(), TicketArticleTable.id.asc())
            )
            return [self._table_to_article(row) for row in result.scalars().all()]

    async def append_article(self, article: Article, ticket: Ticket) -> Article | None:
        """Store the article and the ticket's updated fields in one transaction."""

        async with self._session_factory() as session:
            async with session.begin():
                ticket_row = await session.get(TicketTable, article.ticket_id)
                if ticket_row is None:
                    return None
                article_row = TicketArticleTable(
                    ticket_id=article.ticket_id,
                    sender=article.sender.value,
                    direction=article.direction.value,
                    internal=article.internal,
                    subject=article.subject,
                    body=article.body,
                    from_=article.from_,
                    to=article.to,
                    created_by=article.created_by,
                    created_at=article.created_at,
                )
                session.add(article_row)
                self._copy_ticket_fields(ticket, ticket_row)
                await session.flush()
                return replace(article, id=article_row.id)

    async def save_ticket(self, ticket: Ticket) -> Ticket | None:
        async with self._session_factory() as session:
            async with session.begin():
                row = await session.get(TicketTable, ticket.id)
                if row is None:
                    return None
                self._copy_ticket_fields(ticket, row)
                await session.flush()
                return self._table_to_ticket(row)

    async def delete_ticket(self, ticket_id: int) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                row = await session.get(TicketTable, ticket_id)
                if row is None:
                    return False
                await session.execute(delete(TicketArticleTable).where(TicketArticleTable.ticket_id == ticket_id))
                await session.delete(row)
                return True

    async def latest_change(self) -> datetime | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(TicketTable.updated_at).order_by(TicketTable.updated_at.desc()).limit(1)
            )
            value = result.scalars().first()
        if value is None:
            return None
        return _ensure_datetime(value)

    @staticmethod
    def _copy_ticket_fields(ticket: Ticket, row: TicketTable) -> None:
        row.title = ticket.title
        row.state = ticket.state
        row.article_count = ticket.article_count
        row.last_contact = ticket.last_contact
        row.last_contact_customer = ticket.last_contact_customer
        row.last_contact_agent = ticket.last_contact_agent
        row.first_response = ticket.first_response
        row.close_time = ticket.close_time
        row.pending_time = ticket.pending_time
        row.updated_by = ticket.updated_by
        row.updated_at = ticket.updated_at

    @staticmethod
    def _table_to_ticket(row: TicketTable) -> Ticket:
        return Ticket(
            id=int(row.id),
            title=row.title,
            state=row.state,
            created_by=row.created_by,
            updated_by=row.updated_by,
            created_at=_ensure_datetime(row.created_at),
            updated_at=_ensure_datetime(row.updated_at),
            article_count=row.article_count,
            last_contact=_optional_datetime(row.last_contact),
            last_contact_customer=_optional_datetime(row.last_contact_customer),
            last_contact_agent=_optional_datetime(row.last_contact_agent),
            first_response=_optional_datetime(row.first_response),
            close_time=_optional_datetime(row.close_time),
            pending_time=_optional_datetime(row.pending_time),
        )

    @staticmethod
    def _table_to_article(row: TicketArticleTable) -> Article:
        return Article(
            id=row.id,
            ticket_id=row.ticket_id,
            sender=ArticleSender(row.sender),
            direction=ArticleDirection(row.direction),
            internal=bool(row.internal),
            created_by=row.created_by,
            created_at=_ensure_datetime(row.created_at),
            subject=row.subject,
            body=row.body,
            from_=row.from_,
            to=row.to,
        )


def _ensure_datetime(value: datetime | None) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    raise TypeError("Expected datetime value from database")


def _optional_datetime(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return _ensure_datetime(value)
