"""Document-style writes on top of relational tables.

Every CRM record is addressed by a natural key (user id plus a provider or
email-derived id), so writes are expressed as merge-upserts: insert the row if
it is missing, otherwise update only the columns supplied by the caller.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def _insert_for(session: Session, table):  # type: ignore[no-untyped-def]
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"merge upserts are not supported on {dialect}")


def merge_upsert(
    session: Session,
    model: type,
    *,
    key: dict[str, Any],
    values: dict[str, Any],
    insert_only: dict[str, Any] | None = None,
) -> None:
    """Create the row for ``key`` or shallow-merge ``values`` into it.

    ``insert_only`` columns are written when the row is created and never on
    conflict (e.g. ``created_at``).
    """
    table = model.__table__
    stmt = _insert_for(session, table).values(**key, **values, **(insert_only or {}))
    if values:
        stmt = stmt.on_conflict_do_update(index_elements=list(key), set_=values)
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=list(key))
    session.execute(stmt)


def insert_if_absent(session: Session, model: type, *, key: dict[str, Any], values: dict[str, Any]) -> bool:
    """Conditional create. Returns False when a row with ``key`` already exists."""
    table = model.__table__
    stmt = (
        _insert_for(session, table)
        .values(**key, **values)
        .on_conflict_do_nothing(index_elements=list(key))
    )
    res = session.execute(stmt)
    return bool(res.rowcount)


@contextmanager
def statement_timeout(session: Session, *, timeout_ms: int) -> Iterator[None]:
    """Cap each statement in the block, then restore the previous limit.

    A no-op on backends without server-side statement timeouts. When the block
    raises, the caller's SAVEPOINT rollback discards the setting instead.
    """
    if session.get_bind().dialect.name != "postgresql":
        yield
        return
    previous = session.execute(text("SELECT current_setting('statement_timeout')")).scalar_one()
    _set_timeout(session, f"{max(1, int(timeout_ms))}ms")
    yield
    _set_timeout(session, previous)


def _set_timeout(session: Session, value: str) -> None:
    session.execute(text("SELECT set_config('statement_timeout', :value, true)"), {"value": value})
