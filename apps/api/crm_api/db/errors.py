from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import DBAPIError

# SQLSTATE class 53: insufficient resources (disk full, out of memory, too many connections).
_PG_INSUFFICIENT_RESOURCES_CLASS = "53"
_PG_QUERY_CANCELED = "57014"
_SQLITE_FULL = 13


class StoreQuotaExceededError(RuntimeError):
    """The database refused work because it ran out of a resource."""


class StoreWriteTimeoutError(RuntimeError):
    pass


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_resource_exhausted(exc: BaseException) -> bool:
    if isinstance(exc, StoreQuotaExceededError):
        return True
    if not isinstance(exc, DBAPIError):
        return False
    sqlstate = _sqlstate(exc)
    if sqlstate and sqlstate.startswith(_PG_INSUFFICIENT_RESOURCES_CLASS):
        return True
    return getattr(exc.orig, "sqlite_errorcode", None) == _SQLITE_FULL


def is_statement_timeout(exc: BaseException) -> bool:
    if isinstance(exc, StoreWriteTimeoutError):
        return True
    return isinstance(exc, DBAPIError) and _sqlstate(exc) == _PG_QUERY_CANCELED


@contextmanager
def translate_store_errors(*, timeout_message: str | None = None) -> Iterator[None]:
    try:
        yield
    except DBAPIError as e:
        if is_resource_exhausted(e):
            raise StoreQuotaExceededError("Database quota exceeded") from e
        if timeout_message and is_statement_timeout(e):
            raise StoreWriteTimeoutError(timeout_message) from e
        raise
