"""Repository package for database access."""

from .users import SqliteUserRepository
from .tasks import SqliteTaskRepository
from .tags import SqliteTagRepository

__all__ = [
    "SqliteUserRepository",
    "SqliteTaskRepository",
    "SqliteTagRepository",
]
