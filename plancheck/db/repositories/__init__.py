"""Repository package for database access."""

from .runs import SqliteRunRepository

__all__ = [
    "SqliteRunRepository",
]
