"""
Persistence interface.

The order core talks to storage through five shapes only: query, insert,
update, count and delete, keyed on an `id` primary-key column. `SupabaseStore`
implements them on top of supabase-py; tests use an in-memory store.

Filters are exact-match column filters. A `None` filter value matches NULL.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Protocol

from postgrest.exceptions import APIError

from domain.errors import DuplicateKeyError, PersistenceError

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE for unique_violation
_UNIQUE_VIOLATION = "23505"

Row = dict[str, Any]


class Store(Protocol):
    def query(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Row]: ...

    def insert(self, table: str, record: Mapping[str, Any]) -> Row: ...

    def update(self, table: str, record_id: str, patch: Mapping[str, Any]) -> None: ...

    def count(self, table: str, filters: Optional[Mapping[str, Any]] = None) -> int: ...

    def delete(self, table: str, record_id: str) -> None: ...


def _filter_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


class SupabaseStore:
    """Store backed by a Supabase (PostgREST) client."""

    def __init__(self, client: Any) -> None:
        self._client = client

    def _apply_filters(self, builder: Any, filters: Optional[Mapping[str, Any]]) -> Any:
        for column, value in (filters or {}).items():
            if value is None:
                builder = builder.is_(column, "null")
            else:
                builder = builder.eq(column, _filter_value(value))
        return builder

    def _execute(self, builder: Any, action: str) -> Any:
        try:
            response = builder.execute()
        except APIError as e:
            logger.debug("Supabase rejected %s: code=%s message=%s", action, e.code, e.message)
            if getattr(e, "code", None) == _UNIQUE_VIOLATION:
                raise DuplicateKeyError(f"Failed to {action}: {e.message}") from e
            raise PersistenceError(f"Failed to {action}: {e.message}") from e
        except Exception as e:
            # Network errors from the underlying HTTP client
            raise PersistenceError(f"Failed to {action}: {e}") from e

        error = getattr(response, "error", None)
        if error:
            raise PersistenceError(f"Failed to {action}: {error}")
        return response

    def query(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Row]:
        builder = self._apply_filters(self._client.table(table).select("*"), filters)
        if order_by:
            builder = builder.order(order_by, desc=descending)
        if limit is not None:
            builder = builder.limit(limit)

        response = self._execute(builder, f"query {table}")
        return list(getattr(response, "data", None) or [])

    def insert(self, table: str, record: Mapping[str, Any]) -> Row:
        response = self._execute(self._client.table(table).insert(dict(record)), f"insert into {table}")
        rows = getattr(response, "data", None) or []
        return dict(rows[0]) if rows else dict(record)

    def update(self, table: str, record_id: str, patch: Mapping[str, Any]) -> None:
        builder = self._client.table(table).update(dict(patch)).eq("id", record_id)
        self._execute(builder, f"update {table}")

    def count(self, table: str, filters: Optional[Mapping[str, Any]] = None) -> int:
        builder = self._apply_filters(self._client.table(table).select("id", count="exact"), filters)
        response = self._execute(builder, f"count {table}")
        return int(getattr(response, "count", None) or 0)

    def delete(self, table: str, record_id: str) -> None:
        builder = self._client.table(table).delete().eq("id", record_id)
        self._execute(builder, f"delete from {table}")


__all__ = ["Row", "Store", "SupabaseStore"]
