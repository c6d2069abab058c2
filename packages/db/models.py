"""SQLModel table definitions for the helpdesk data layer."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, JSON, String, Text
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


class TicketTable(SQLModel, table=True):
    """Ticket records together with their derived contact timestamps."""

    __tablename__ = "tickets"

    id: int | None = Field(default=None, sa_column=Column(Integer, primary_key=True, autoincrement=True))
    title: str = Field(sa_column=Column(String(250), nullable=False))
    state: str = Field(sa_column=Column(String(100), nullable=False))
    article_count: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    last_contact: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    last_contact_customer: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    last_contact_agent: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    first_response: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    close_time: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    pending_time: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    created_by: str = Field(sa_column=Column(String(255), nullable=False))
    updated_by: str = Field(sa_column=Column(String(255), nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(
        default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )


class TicketArticleTable(SQLModel, table=True):
    """Messages and notes attached to a ticket."""

    __tablename__ = "ticket_articles"
    __table_args__ = (Index("ix_ticket_articles_ticket_created", "ticket_id", "created_at", "id"),)

    id: int | None = Field(default=None, sa_column=Column(Integer, primary_key=True, autoincrement=True))
    ticket_id: int = Field(
        sa_column=Column(Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False)
    )
    sender: str = Field(sa_column=Column(String(20), nullable=False))
    direction: str = Field(sa_column=Column(String(20), nullable=False))
    internal: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    subject: str = Field(default="", sa_column=Column(String(250), nullable=False, default=""))
    body: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    from_: str | None = Field(default=None, sa_column=Column("from", String(255), nullable=True))
    to: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    created_by: str = Field(sa_column=Column(String(255), nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class SettingTable(SQLModel, table=True):
    """Runtime editable product settings."""

    __tablename__ = "settings"

    id: int | None = Field(default=None, sa_column=Column(Integer, primary_key=True, autoincrement=True))
    name: str = Field(sa_column=Column(String(200), nullable=False, unique=True))
    description: str = Field(default="", sa_column=Column(String(500), nullable=False, default=""))
    value: Any = Field(default=None, sa_column=Column(JSON, nullable=True))
    initial_value: Any = Field(default=None, sa_column=Column(JSON, nullable=True))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
