"""
cancelflow.gateway
──────────────────
Persistence contract the flow relies on, on top of a CancellationStore:

  • commit         – idempotent save keyed by (user_id, subscription_id)
  • fetch          – zero-or-one most recent record, never invents data
  • stored_variant / seed_variant – guarded first-time cohort write
  • update_offer   – downsell accepted / declined on the subscription

Every store call is bounded by a timeout so a dead network ends in a
PersistenceError instead of a hung session.
"""
from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Awaitable, Dict, List, Optional, Tuple, TypeVar

from cancelflow.config import get_settings
from cancelflow.errors import NotFoundError, PersistenceError, SchemaConstraintError, ValidationError
from cancelflow.state import FlowResult, utcnow_iso
from cancelflow.store import CancellationStore, Row

log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_OFFER_PERCENT = 50


def _latest(rows: List[Row]) -> Optional[Row]:
    if not rows:
        return None
    return max(rows, key=lambda r: r.get("updated_at") or "")


class PersistenceGateway:
    def __init__(self, store: CancellationStore, timeout: Optional[float] = None):
        self.store = store
        self.timeout = timeout if timeout is not None else get_settings().request_timeout
        self._inflight: Dict[Tuple[str, str], "asyncio.Task[Row]"] = {}

    async def _call(self, awaitable: Awaitable[T], what: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, self.timeout)
        except asyncio.TimeoutError as exc:
            raise PersistenceError(f"{what} timed out after {self.timeout:g}s", "timeout") from exc

    # ─────────────────────────── save
    async def commit(self, result: FlowResult) -> Row:
        """
        Save the final flow result. Concurrent calls for the same
        (user_id, subscription_id) share one write.
        """
        key = (result.user_id, result.subscription_id)
        task = self._inflight.get(key)
        if task is None or task.done():
            task = asyncio.ensure_future(self._commit(result.to_row()))
            self._inflight[key] = task
            task.add_done_callback(functools.partial(self._forget, key))
        else:
            log.info("Commit for %s/%s already in flight, joining it", *key)
        return await asyncio.shield(task)

    def _forget(self, key: Tuple[str, str], task: "asyncio.Task[Row]") -> None:
        # a newer commit may already own the slot
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _commit(self, row: Row) -> Row:
        user_id, subscription_id = row["user_id"], row["subscription_id"]
        try:
            try:
                saved = await self._call(self.store.upsert(row), "save")
            except SchemaConstraintError as exc:
                log.warning(
                    "cancellations has no unique (user_id, subscription_id) constraint, "
                    "falling back to insert; see scripts/check_cancellations.py for the migration (%s)", exc.message,
                )
                saved = await self._write_without_constraint(row)
        except PersistenceError as exc:
            log.error("Saving cancellation for %s/%s failed: %s", user_id, subscription_id, exc)
            raise
        log.info("Cancellation saved for %s/%s (variant %s)",
                 user_id, subscription_id, row.get("downsell_variant"))
        return saved

    async def _write_without_constraint(self, row: Row) -> Row:
        user_id, subscription_id = row["user_id"], row["subscription_id"]
        existing = await self._call(self.store.select(user_id, subscription_id), "lookup")
        if existing:
            updated = await self._call(self.store.update(user_id, subscription_id, row), "update")
            if updated is None:
                raise PersistenceError("Record vanished during update", "not_found")
            return updated
        return await self._call(self.store.insert(row), "insert")

    # ─────────────────────────── read
    async def fetch(self, user_id: str, subscription_id: Optional[str] = None) -> Optional[Row]:
        rows = await self._call(self.store.select(user_id, subscription_id), "fetch")
        return _latest(rows)

    async def stored_variant(self, user_id: str) -> Optional[str]:
        rows = await self._call(self.store.select(user_id), "fetch")
        pinned = [r for r in rows if r.get("downsell_variant")]
        rec = _latest(pinned)
        return rec["downsell_variant"] if rec else None

    # ─────────────────────────── variant seeding
    async def seed_variant(self, user_id: str, subscription_id: str, variant: str) -> str:
        """
        Write `variant` only if nothing is stored for the pair yet, then
        return whatever storage now holds for the user.
        """
        row = FlowResult(user_id=user_id, subscription_id=subscription_id,
                         downsell_variant=variant).to_row()
        try:
            await self._call(self.store.insert_if_absent(row), "seed variant")
        except SchemaConstraintError as exc:
            log.warning("No unique constraint while seeding variant for %s, "
                        "checking before insert (%s)", user_id, exc.message)
            if not await self._call(self.store.select(user_id, subscription_id), "lookup"):
                await self._call(self.store.insert(row), "insert")

        stored = await self.stored_variant(user_id)
        if stored is None:
            raise PersistenceError(f"Variant for {user_id} was not persisted", "not_persisted")
        return stored

    # ─────────────────────────── offer
    async def update_offer(
        self,
        user_id: str,
        subscription_id: str,
        accepted: bool,
        percent: int = DEFAULT_OFFER_PERCENT,
    ) -> Row:
        if not 1 <= percent <= 100:
            raise ValidationError({"offer_percent": "Invalid offer percentage. Must be between 1 and 100"})

        now = utcnow_iso()
        values: Dict[str, Any] = {
            "offer_percent": percent,
            "offer_accepted": accepted,
            "updated_at": now,
            "offer_accepted_at": now if accepted else None,
            "offer_declined_at": None if accepted else now,
        }
        rows = await self._call(self.store.update_offer(subscription_id, user_id, values), "offer update")
        if not rows:
            raise NotFoundError("Subscription not found", "404")
        log.info("Offer %s for subscription %s", "accepted" if accepted else "declined", subscription_id)
        return rows[0]


__all__ = ["PersistenceGateway", "DEFAULT_OFFER_PERCENT"]
