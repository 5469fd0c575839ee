"""Structured errors raised by the persistence layer.

Repositories never let raw driver exceptions (``sqlite3.Error``,
``asyncpg.PostgresError``) escape; they are chained as ``__cause__`` of one of
the errors below.
"""
from __future__ import annotations

from typing import Literal

LinkPhase = Literal["check", "insert"]


class TaskhubError(Exception):
    """Base class for taskhub storage errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
        # Set when rolling back the enclosing transaction failed as well.
        self.rollback_error: BaseException | None = None


class PersistenceError(TaskhubError):
    """Lower-level storage failure during create/read/update/delete."""


class NotFoundError(TaskhubError):
    """Update or delete targeted an identity with no row."""

    def __init__(self, entity: str, entity_id: int) -> None:
        super().__init__(f"{entity} not found with ID: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class LinkError(PersistenceError):
    """Failure while checking for or inserting a join-table pair."""

    def __init__(self, message: str, *, phase: LinkPhase) -> None:
        super().__init__(message)
        self.phase = phase
