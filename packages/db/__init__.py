"""Database models and utilities."""

from .models import SettingTable, TicketArticleTable, TicketTable

__all__ = [
    "SettingTable",
    "TicketArticleTable",
    "TicketTable",
]
