"""Metric definitions used across the application."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class MetricDefinition:
    """Describe a metric that should exist in the registry."""

    name: str
    metric_type: str
    description: str
    label_names: tuple[str, ...] = ()


TICKETS_CREATED = "tickets_created_total"
TICKETS_DESTROYED = "tickets_destroyed_total"
ARTICLES_APPENDED = "ticket_articles_appended_total"
FIRST_RESPONSES = "ticket_first_responses_total"
STATE_CHANGES = "ticket_state_changes_total"
OPERATION_FAILURES = "ticket_operation_failures_total"
OPERATION_DURATION = "ticket_operation_duration_seconds"


DEFAULT_METRIC_DEFINITIONS: tuple[MetricDefinition, ...] = (
    MetricDefinition(
        name=TICKETS_CREATED,
        metric_type="counter",
        description="Number of tickets created.",
    ),
    MetricDefinition(
        name=TICKETS_DESTROYED,
        metric_type="counter",
        description="Number of tickets destroyed.",
    ),
    MetricDefinition(
        name=ARTICLES_APPENDED,
        metric_type="counter",
        description="Articles appended to tickets.",
        label_names=("direction", "internal"),
    ),
    MetricDefinition(
        name=FIRST_RESPONSES,
        metric_type="counter",
        description="Tickets that received their first agent response.",
    ),
    MetricDefinition(
        name=STATE_CHANGES,
        metric_type="counter",
        description="Ticket state changes by target state class.",
        label_names=("state_type",),
    ),
    MetricDefinition(
        name=OPERATION_FAILURES,
        metric_type="counter",
        description="Rejected ticket operations.",
        label_names=("operation",),
    ),
    MetricDefinition(
        name=OPERATION_DURATION,
        metric_type="distribution",
        description="Duration of ticket operations in seconds.",
        label_names=("operation",),
    ),
)
