from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from apps.helpdesk.dependencies.tickets import TicketServiceDep
from apps.helpdesk.tickets.errors import (
    InvalidReferenceError,
    InvalidTicketTransitionError,
    OutOfOrderEventError,
    TicketNotFoundError,
)
from apps.helpdesk.tickets.models import Article, ArticleDirection, ArticleSender, Ticket

router = APIRouter(prefix="/tickets", tags=["tickets"])


class TicketCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=250)
    state: str | None = Field(default=None, max_length=100)
    actor: str = Field(default="system", min_length=1, max_length=255)


class TicketUpdateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=250)
    actor: str = Field(default="system", min_length=1, max_length=255)


class TicketTouchRequest(BaseModel):
    actor: str = Field(default="system", min_length=1, max_length=255)


class TicketStateChangeRequest(BaseModel):
    state: str = Field(..., min_length=1, max_length=100)
    pending_time: datetime | None = None
    actor: str = Field(default="system", min_length=1, max_length=255)


class ArticleCreateRequest(BaseModel):
    sender: ArticleSender
    direction: ArticleDirection | None = None
    internal: bool = False
    subject: str = Field(default="", max_length=250)
    body: str = ""
    from_: str | None = Field(default=None, alias="from", max_length=255)
    to: str | None = Field(default=None, max_length=255)
    created_at: datetime | None = None
    actor: str = Field(default="system", min_length=1, max_length=255)

    model_config = ConfigDict(populate_by_name=True)


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    state: str
    article_count: int
    last_contact: datetime | None
    last_contact_customer: datetime | None
    last_contact_agent: datetime | None
    first_response: datetime | None
    close_time: datetime | None
    pending_time: datetime | None
    created_by: str
    updated_by: str
    created_at: datetime
    updated_at: datetime


class ArticleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    ticket_id: int
    sender: ArticleSender
    direction: ArticleDirection
    internal: bool
    subject: str
    body: str
    from_: str | None = Field(default=None, alias="from")
    to: str | None
    created_by: str
    created_at: datetime


class ArticleAppendResponse(BaseModel):
    article: ArticleResponse
    ticket: TicketResponse


class LatestChangeResponse(BaseModel):
    latest_change: datetime | None


def _to_response(ticket: Ticket) -> TicketResponse:
    return TicketResponse.model_validate(ticket)


def _to_article_response(article: Article) -> ArticleResponse:
    return ArticleResponse.model_validate(article)


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(payload: TicketCreateRequest, service: TicketServiceDep) -> TicketResponse:
    try:
        ticket = await service.create_ticket(title=payload.title, actor=payload.actor, state=payload.state)
    except InvalidTicketTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _to_response(ticket)


@router.get("", response_model=list[TicketResponse])
async def list_tickets(
    service: TicketServiceDep,
    state_filter: str | None = Query(default=None, alias="state"),
) -> list[TicketResponse]:
    tickets = await service.list_tickets(state=state_filter)
    return [_to_response(ticket) for ticket in tickets]


@router.get("/latest-change", response_model=LatestChangeResponse)
async def latest_change(service: TicketServiceDep) -> LatestChangeResponse:
    return LatestChangeResponse(latest_change=await service.latest_change())


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(ticket_id: int, service: TicketServiceDep) -> TicketResponse:
    try:
        ticket = await service.get_ticket(ticket_id)
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _to_response(ticket)


@router.patch("/{ticket_id}", response_model=TicketResponse)
async def update_ticket(ticket_id: int, payload: TicketUpdateRequest, service: TicketServiceDep) -> TicketResponse:
    try:
        ticket = await service.update_ticket(ticket_id, title=payload.title, actor=payload.actor)
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _to_response(ticket)


@router.post("/{ticket_id}/touch", response_model=TicketResponse)
async def touch_ticket(ticket_id: int, payload: TicketTouchRequest, service: TicketServiceDep) -> TicketResponse:
    try:
        ticket = await service.touch_ticket(ticket_id, actor=payload.actor)
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _to_response(ticket)


@router.delete("/{ticket_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_ticket(ticket_id: int, service: TicketServiceDep) -> None:
    try:
        await service.destroy_ticket(ticket_id)
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post(
    "/{ticket_id}/articles",
    response_model=ArticleAppendResponse,
    status_code=status.HTTP_201_CREATED,
)
async def append_article(
    ticket_id: int,
    payload: ArticleCreateRequest,
    service: TicketServiceDep,
) -> ArticleAppendResponse:
    try:
        result = await service.append_article(
            ticket_id,
            sender=payload.sender,
            direction=payload.direction,
            internal=payload.internal,
            subject=payload.subject,
            body=payload.body,
            from_=payload.from_,
            to=payload.to,
            created_at=payload.created_at,
            actor=payload.actor,
        )
    except InvalidReferenceError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except OutOfOrderEventError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return ArticleAppendResponse(
        article=_to_article_response(result.article),
        ticket=_to_response(result.ticket),
    )


@router.get("/{ticket_id}/articles", response_model=list[ArticleResponse])
async def list_articles(ticket_id: int, service: TicketServiceDep) -> list[ArticleResponse]:
    try:
        articles = await service.list_articles(ticket_id)
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return [_to_article_response(article) for article in articles]


@router.post("/{ticket_id}/state", response_model=TicketResponse)
async def change_ticket_state(
    ticket_id: int,
    payload: TicketStateChangeRequest,
    service: TicketServiceDep,
) -> TicketResponse:
    try:
        ticket = await service.change_state(
            ticket_id,
            new_state=payload.state,
            pending_time=payload.pending_time,
            actor=payload.actor,
        )
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidTicketTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _to_response(ticket)
