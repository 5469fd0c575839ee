"""Partial update planning.

Builds an UPDATE that touches only the columns whose requested value differs
from the persisted row. Candidates that are ``None`` mean "no change
requested" and are skipped. Columns are emitted in the caller's fixed order so
the statement text and parameter list are reproducible.
"""
from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

Placeholder = Callable[[int], str]

# (model attribute, column) pairs in statement order.
USER_FIELDS: tuple[tuple[str, str], ...] = (("name", "name"),)
TASK_FIELDS: tuple[tuple[str, str], ...] = (
    ("title", "title"),
    ("description", "description"),
    ("assignedUserId", "assigned_user_id"),
)
TAG_FIELDS: tuple[tuple[str, str], ...] = (("name", "name"),)


def qmark(position: int) -> str:
    """SQLite placeholder."""
    return "?"


def numbered(position: int) -> str:
    """asyncpg placeholder ($1, $2, ...)."""
    return f"${position}"


@dataclass(frozen=True)
class UpdatePlan:
    sql: str
    params: tuple[Any, ...]
    changed: tuple[str, ...]


def changes_from(update: BaseModel, fields: Sequence[tuple[str, str]]) -> dict[str, Any]:
    """Map an update model onto column names, keeping ``None`` as "unchanged"."""
    return {column: getattr(update, attr) for attr, column in fields}


def plan_update(
    table: str,
    entity_id: int,
    current: Mapping[str, Any],
    changes: Mapping[str, Any],
    placeholder: Placeholder = qmark,
) -> UpdatePlan | None:
    """Return the minimal UPDATE for ``changes`` against ``current``, or None for a no-op.

    ``changes`` maps column to candidate value; columns are considered in its
    iteration order, which ``changes_from`` fixes to the field table order.
    """
    assignments: list[str] = []
    params: list[Any] = []
    changed: list[str] = []

    for column, candidate in changes.items():
        if candidate is None or candidate == current[column]:
            continue
        params.append(candidate)
        assignments.append(f"{column} = {placeholder(len(params))}")
        changed.append(column)

    if not assignments:
        return None

    params.append(entity_id)
    sql = f"UPDATE {table} SET {', '.join(assignments)} WHERE id = {placeholder(len(params))}"
    return UpdatePlan(sql=sql, params=tuple(params), changed=tuple(changed))
