"""
cancelflow.store
Pure data-access layer for the two tables the flow touches.
Contains **no business logic**: no fallbacks, no retries, no variant rules.

Tables
------
cancellations   one row per (user_id, subscription_id)
subscriptions   offer columns updated when the downsell is accepted/declined

Every backend raises cancelflow.errors types:
  SchemaConstraintError  upsert found no unique key to conflict on (42P10)
  PersistenceError       anything else the database or network reports
"""
from __future__ import annotations

import abc
import logging
from typing import Any, Dict, List, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client

from cancelflow.config import Settings, get_settings
from cancelflow.errors import PersistenceError, SchemaConstraintError

log = logging.getLogger(__name__)

CONFLICT_COLUMNS = "user_id,subscription_id"

Row = Dict[str, Any]


class CancellationStore(abc.ABC):
    """What the gateway needs from storage."""

    @abc.abstractmethod
    async def upsert(self, row: Row) -> Row:
        """Insert or overwrite the row for (user_id, subscription_id)."""

    @abc.abstractmethod
    async def insert_if_absent(self, row: Row) -> Optional[Row]:
        """Insert unless (user_id, subscription_id) exists; None when it did."""

    @abc.abstractmethod
    async def insert(self, row: Row) -> Row:
        ...

    @abc.abstractmethod
    async def update(self, user_id: str, subscription_id: str, values: Row) -> Optional[Row]:
        ...

    @abc.abstractmethod
    async def select(self, user_id: str, subscription_id: Optional[str] = None) -> List[Row]:
        ...

    @abc.abstractmethod
    async def update_offer(self, subscription_id: str, user_id: str, values: Row) -> List[Row]:
        """Update subscriptions row keyed by (id, user_id); returns matched rows."""


# ────────────────────────────────────────────────────────────────────────────
# Supabase / PostgREST
# ────────────────────────────────────────────────────────────────────────────
def _translate(exc: APIError) -> PersistenceError:
    code = getattr(exc, "code", None)
    message = getattr(exc, "message", None) or "Database error occurred"
    if code == SchemaConstraintError.CODE:
        return SchemaConstraintError(message, code)
    return PersistenceError(message, code)


class SupabaseCancellationStore(CancellationStore):
    def __init__(self, client: Optional[AsyncClient] = None, settings: Optional[Settings] = None):
        self._sb = client
        self.settings = settings or get_settings()

    async def client(self) -> AsyncClient:
        if self._sb is None:
            url, key = self.settings.supabase_url, self.settings.supabase_key
            if not url or not key:
                raise RuntimeError("SUPABASE_URL / KEY env vars must be set")
            self._sb = await acreate_client(url, key)
        return self._sb

    async def _table(self, name: str):
        return (await self.client()).table(name)

    @staticmethod
    async def _execute(query) -> List[Row]:
        try:
            res = await query.execute()
        except APIError as exc:
            raise _translate(exc) from exc
        except httpx.HTTPError as exc:
            raise PersistenceError(f"Network error occurred: {exc}", "network") from exc
        return res.data or []

    # ---- cancellations ---------------------------------------------------
    async def upsert(self, row: Row) -> Row:
        table = await self._table(self.settings.cancellations_table)
        rows = await self._execute(
            table.upsert(row, on_conflict=CONFLICT_COLUMNS, ignore_duplicates=False)
        )
        return rows[0] if rows else row

    async def insert_if_absent(self, row: Row) -> Optional[Row]:
        table = await self._table(self.settings.cancellations_table)
        rows = await self._execute(
            table.upsert(row, on_conflict=CONFLICT_COLUMNS, ignore_duplicates=True)
        )
        return rows[0] if rows else None

    async def insert(self, row: Row) -> Row:
        table = await self._table(self.settings.cancellations_table)
        rows = await self._execute(table.insert(row))
        return rows[0] if rows else row

    async def update(self, user_id: str, subscription_id: str, values: Row) -> Optional[Row]:
        table = await self._table(self.settings.cancellations_table)
        rows = await self._execute(
            table.update(values).eq("user_id", user_id).eq("subscription_id", subscription_id)
        )
        return rows[0] if rows else None

    async def select(self, user_id: str, subscription_id: Optional[str] = None) -> List[Row]:
        table = await self._table(self.settings.cancellations_table)
        q = table.select("*").eq("user_id", user_id)
        if subscription_id is not None:
            q = q.eq("subscription_id", subscription_id)
        return await self._execute(q.order("updated_at", desc=True))

    # ---- subscriptions ---------------------------------------------------
    async def update_offer(self, subscription_id: str, user_id: str, values: Row) -> List[Row]:
        table = await self._table(self.settings.subscriptions_table)
        return await self._execute(
            table.update(values).eq("id", subscription_id).eq("user_id", user_id)
        )


__all__ = ["Row", "CONFLICT_COLUMNS", "CancellationStore", "SupabaseCancellationStore"]
