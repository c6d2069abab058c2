from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from apps.helpdesk.metrics import MetricsRegistry
from apps.helpdesk.metrics import definitions as metric_names
from apps.helpdesk.services.settings import SettingsStore
from apps.helpdesk.tickets.clock import ManualClock
from apps.helpdesk.tickets.errors import (
    InvalidReferenceError,
    InvalidTicketTransitionError,
    OutOfOrderEventError,
    TicketNotFoundError,
)
from apps.helpdesk.tickets.models import ArticleDirection, ArticleSender
from apps.helpdesk.tickets.repository import TicketRepository
from apps.helpdesk.tickets.service import TicketService


@pytest.mark.asyncio
async def test_ticket_lifecycle_derives_contact_timestamps(service: TicketService, clock: ManualClock):
    ticket = await service.create_ticket(title="some title\n äöüß", actor="agent")
    assert ticket.title == "some title  äöüß"
    assert ticket.state == "new"

    t0 = clock.advance(minutes=1)
    inbound = await service.append_article(
        ticket.id,
        sender=ArticleSender.CUSTOMER,
        subject="some subject",
        body="some message article_inbound",
        actor="customer",
    )
    ticket = inbound.ticket
    assert inbound.article.direction is ArticleDirection.INBOUND
    assert ticket.article_count == 1
    assert ticket.last_contact == t0
    assert ticket.last_contact_customer == t0
    assert ticket.last_contact_agent is None
    assert ticket.first_response is None
    assert ticket.close_time is None

    clock.advance(minutes=1)
    note = await service.append_article(
        ticket.id,
        sender=ArticleSender.AGENT,
        internal=True,
        subject="some\nnote",
        body="some\n message",
        actor="agent",
    )
    assert note.article.subject == "some note"
    assert note.article.body == "some\n message"
    ticket = note.ticket
    assert ticket.article_count == 2
    assert ticket.last_contact == t0
    assert ticket.last_contact_agent is None
    assert ticket.first_response is None

    t1 = clock.advance(seconds=10)
    outbound = await service.append_article(ticket.id, sender=ArticleSender.AGENT, body="reply", actor="agent")
    ticket = outbound.ticket
    assert ticket.article_count == 3
    assert ticket.last_contact == t1
    assert ticket.last_contact_customer == t0
    assert ticket.last_contact_agent == t1
    assert ticket.first_response == t1
    assert ticket.close_time is None

    t2 = clock.advance(minutes=5)
    ticket = await service.change_state(ticket.id, new_state="closed", actor="agent")
    assert ticket.article_count == 3
    assert ticket.first_response == t1
    assert ticket.close_time == t2

    pending = datetime(1977, 10, 27, 22, 0, tzinfo=timezone.utc)
    clock.advance(minutes=5)
    ticket = await service.change_state(
        ticket.id, new_state="pending reminder", pending_time=pending, actor="agent"
    )
    assert ticket.state == "pending reminder"
    assert ticket.pending_time == pending

    t3 = clock.advance(minutes=5)
    ticket = await service.change_state(ticket.id, new_state="closed", actor="agent")
    assert ticket.state == "closed"
    assert ticket.pending_time is None
    assert ticket.close_time == t3

    stored = await service.get_ticket(ticket.id)
    assert service.deriver.query(stored) == service.deriver.query(ticket)

    await service.destroy_ticket(ticket.id)
    with pytest.raises(TicketNotFoundError):
        await service.get_ticket(ticket.id)


@pytest.mark.asyncio
async def test_latest_change_follows_updates_touches_and_destroy(service: TicketService, clock: ManualClock):
    ticket1 = await service.create_ticket(title="latest change 1", actor="agent")
    assert await service.latest_change() == ticket1.updated_at

    clock.advance(seconds=1)
    ticket2 = await service.create_ticket(title="latest change 2", actor="agent")
    assert await service.latest_change() == ticket2.updated_at

    clock.advance(seconds=1)
    ticket1 = await service.update_ticket(ticket1.id, title="latest change 1 - 1", actor="agent")
    assert await service.latest_change() == ticket1.updated_at

    clock.advance(seconds=1)
    ticket1 = await service.touch_ticket(ticket1.id, actor="agent")
    assert await service.latest_change() == ticket1.updated_at

    await service.destroy_ticket(ticket1.id)
    assert await service.latest_change() == ticket2.updated_at


@pytest.mark.asyncio
async def test_latest_change_is_none_without_tickets(service: TicketService):
    assert await service.latest_change() is None


@pytest.mark.asyncio
async def test_article_for_missing_ticket_is_invalid_reference(service: TicketService):
    with pytest.raises(InvalidReferenceError):
        await service.append_article(404, sender=ArticleSender.CUSTOMER, actor="customer")


@pytest.mark.asyncio
async def test_rejected_operations_leave_ticket_unchanged(service: TicketService, clock: ManualClock):
    ticket = await service.create_ticket(title="Printer", actor="agent")
    clock.advance(minutes=10)
    ticket = (await service.append_article(ticket.id, sender=ArticleSender.CUSTOMER, actor="customer")).ticket

    with pytest.raises(OutOfOrderEventError):
        await service.append_article(
            ticket.id,
            sender=ArticleSender.AGENT,
            created_at=ticket.last_contact - timedelta(minutes=1),
            actor="agent",
        )
    with pytest.raises(InvalidTicketTransitionError):
        await service.change_state(ticket.id, new_state="pending close", actor="agent")
    with pytest.raises(InvalidTicketTransitionError):
        await service.change_state(
            ticket.id, new_state="open", pending_time=clock.now() + timedelta(days=1), actor="agent"
        )

    assert await service.get_ticket(ticket.id) == ticket
    assert len(await service.list_articles(ticket.id)) == 1


@pytest.mark.asyncio
async def test_missing_ticket_operations_raise_not_found(service: TicketService):
    with pytest.raises(TicketNotFoundError):
        await service.change_state(7, new_state="closed", actor="agent")
    with pytest.raises(TicketNotFoundError):
        await service.touch_ticket(7, actor="agent")
    with pytest.raises(TicketNotFoundError):
        await service.destroy_ticket(7)
    with pytest.raises(TicketNotFoundError):
        await service.list_articles(7)


@pytest.mark.asyncio
async def test_tickets_must_start_in_open_state(service: TicketService):
    with pytest.raises(InvalidTicketTransitionError):
        await service.create_ticket(title="Printer", actor="agent", state="closed")
    ticket = await service.create_ticket(title="Printer", actor="agent", state="open")
    assert ticket.state == "open"


@pytest.mark.asyncio
async def test_default_state_comes_from_settings(
    repository: TicketRepository, settings_store: SettingsStore, clock: ManualClock, metrics: MetricsRegistry
):
    await settings_store.ensure_defaults()
    await settings_store.set("ticket_default_state", "open")
    service = TicketService(repository, clock=clock, settings=settings_store, metrics=metrics)

    ticket = await service.create_ticket(title="Printer", actor="agent")

    assert ticket.state == "open"


@pytest.mark.asyncio
async def test_concurrent_appends_on_one_ticket_are_serialized(service: TicketService, clock: ManualClock):
    ticket = await service.create_ticket(title="Printer", actor="agent")
    clock.advance(minutes=1)
    await service.append_article(ticket.id, sender=ArticleSender.CUSTOMER, actor="customer")

    clock.advance(minutes=1)
    results = await asyncio.gather(
        *(service.append_article(ticket.id, sender=ArticleSender.AGENT, actor=f"agent-{n}") for n in range(5))
    )

    stored = await service.get_ticket(ticket.id)
    assert stored.article_count == 6
    assert sorted(result.ticket.article_count for result in results) == [2, 3, 4, 5, 6]
    assert stored.first_response == clock.now()


@pytest.mark.asyncio
async def test_rebuild_timestamps_repairs_drifted_fields(
    service: TicketService, repository: TicketRepository, clock: ManualClock
):
    ticket = await service.create_ticket(title="Printer", actor="agent")
    t0 = clock.advance(minutes=1)
    await service.append_article(ticket.id, sender=ArticleSender.CUSTOMER, actor="customer")
    t1 = clock.advance(minutes=1)
    ticket = (await service.append_article(ticket.id, sender=ArticleSender.AGENT, actor="agent")).ticket

    await repository.save_ticket(replace(ticket, article_count=0, first_response=None, last_contact=None))

    rebuilt = await service.rebuild_timestamps(ticket.id, actor="agent")

    assert rebuilt.article_count == 2
    assert rebuilt.last_contact_customer == t0
    assert rebuilt.first_response == t1
    assert rebuilt.last_contact == t1


@pytest.mark.asyncio
async def test_operations_are_counted(service: TicketService, metrics: MetricsRegistry, clock: ManualClock):
    ticket = await service.create_ticket(title="Printer", actor="agent")
    clock.advance(minutes=1)
    await service.append_article(ticket.id, sender=ArticleSender.CUSTOMER, actor="customer")
    await service.append_article(ticket.id, sender=ArticleSender.AGENT, actor="agent")
    with pytest.raises(InvalidTicketTransitionError):
        await service.change_state(ticket.id, new_state="pending reminder", actor="agent")

    assert metrics.counter(metric_names.TICKETS_CREATED).value() == 1
    assert metrics.counter(metric_names.FIRST_RESPONSES).value() == 1
    appended = metrics.counter(metric_names.ARTICLES_APPENDED, label_names=("direction", "internal"))
    assert appended.value(labels={"direction": "inbound", "internal": "false"}) == 1
    failures = metrics.counter(metric_names.OPERATION_FAILURES, label_names=("operation",))
    assert failures.value(labels={"operation": "change_state"}) == 1
