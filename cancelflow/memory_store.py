"""
In-process CancellationStore for tests and local runs.

`unique_constraint=False` behaves like a database that never got the
(user_id, subscription_id) unique index: upserts fail with 42P10 and plain
inserts happily create duplicates.
"""
from __future__ import annotations

import copy
from typing import Dict, List, Optional

from cancelflow.errors import PersistenceError, SchemaConstraintError
from cancelflow.store import CancellationStore, Row


class InMemoryCancellationStore(CancellationStore):
    def __init__(self, unique_constraint: bool = True):
        self.unique_constraint = unique_constraint
        self.rows: List[Row] = []
        self.subscriptions: Dict[str, Row] = {}
        self.calls: List[str] = []
        self.fail_with: Optional[Exception] = None   # raised by the next write

    # ---- helpers ---------------------------------------------------------
    def add_subscription(self, subscription_id: str, user_id: str, **fields) -> Row:
        row = {"id": subscription_id, "user_id": user_id, "offer_percent": 0,
               "offer_accepted": False, "status": "active", **fields}
        self.subscriptions[subscription_id] = row
        return row

    def _find(self, user_id: str, subscription_id: str) -> List[Row]:
        return [r for r in self.rows
                if r["user_id"] == user_id and r["subscription_id"] == subscription_id]

    def _write(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_with is not None:
            exc, self.fail_with = self.fail_with, None
            raise exc

    def _no_constraint(self) -> None:
        if not self.unique_constraint:
            raise SchemaConstraintError(
                "there is no unique or exclusion constraint matching the ON CONFLICT specification",
                SchemaConstraintError.CODE,
            )

    # ---- cancellations ---------------------------------------------------
    async def upsert(self, row: Row) -> Row:
        self._write("upsert")
        self._no_constraint()
        existing = self._find(row["user_id"], row["subscription_id"])
        if existing:
            existing[0].update(copy.deepcopy(row))
            return copy.deepcopy(existing[0])
        self.rows.append(copy.deepcopy(row))
        return copy.deepcopy(row)

    async def insert_if_absent(self, row: Row) -> Optional[Row]:
        self._write("insert_if_absent")
        self._no_constraint()
        if self._find(row["user_id"], row["subscription_id"]):
            return None
        self.rows.append(copy.deepcopy(row))
        return copy.deepcopy(row)

    async def insert(self, row: Row) -> Row:
        self._write("insert")
        if self.unique_constraint and self._find(row["user_id"], row["subscription_id"]):
            raise PersistenceError("duplicate key value violates unique constraint", "23505")
        self.rows.append(copy.deepcopy(row))
        return copy.deepcopy(row)

    async def update(self, user_id: str, subscription_id: str, values: Row) -> Optional[Row]:
        self._write("update")
        matched = self._find(user_id, subscription_id)
        for r in matched:
            r.update(copy.deepcopy(values))
        return copy.deepcopy(matched[0]) if matched else None

    async def select(self, user_id: str, subscription_id: Optional[str] = None) -> List[Row]:
        self.calls.append("select")
        out = [r for r in self.rows if r["user_id"] == user_id
               and (subscription_id is None or r["subscription_id"] == subscription_id)]
        out.sort(key=lambda r: r.get("updated_at") or "", reverse=True)
        return copy.deepcopy(out)

    # ---- subscriptions ---------------------------------------------------
    async def update_offer(self, subscription_id: str, user_id: str, values: Row) -> List[Row]:
        self._write("update_offer")
        row = self.subscriptions.get(subscription_id)
        if row is None or row["user_id"] != user_id:
            return []
        row.update(values)
        return [copy.deepcopy(row)]


__all__ = ["InMemoryCancellationStore"]
