"""Repositories for reservation state."""

from staybook.repositories.base import CalendarRepository
from staybook.repositories.memory import InMemoryCalendarRepository
from staybook.repositories.sql import SqlCalendarRepository

__all__ = [
    "CalendarRepository",
    "InMemoryCalendarRepository",
    "SqlCalendarRepository",
]
