"""
cancelflow.variants
───────────────────
A/B cohort assignment.

  • deterministic_variant – stable hash of the user id (system of record)
  • secure_variant        – `secrets`-backed coin flip, first-time seeding only
  • assign                – pinning: an existing variant always wins
  • VariantAssigner       – read stored variant, else seed exactly once
"""
from __future__ import annotations

import logging
import secrets
from typing import TYPE_CHECKING, Optional, Tuple

from cancelflow.config import get_settings
from cancelflow.schema import Variant

if TYPE_CHECKING:
    from cancelflow.gateway import PersistenceGateway

log = logging.getLogger(__name__)


def deterministic_variant(user_id: str) -> Variant:
    """
    31-multiplier rolling hash over UTF-16 code units, wrapped to a signed
    32-bit int; even → "A", odd → "B". Matches cohorts already stored by the
    web client.
    """
    h = 0
    raw = user_id.encode("utf-16-le")
    for i in range(0, len(raw), 2):
        unit = raw[i] | (raw[i + 1] << 8)
        h = (h * 31 + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return "A" if abs(h) % 2 == 0 else "B"


def secure_variant() -> Variant:
    return "A" if secrets.randbelow(2) == 0 else "B"


def assign(
    user_id: str,
    existing_variant: Optional[str] = None,
    *,
    strategy: Optional[str] = None,
) -> Variant:
    """Return `existing_variant` untouched, otherwise generate one."""
    if existing_variant:
        return existing_variant  # type: ignore[return-value]
    if (strategy or get_settings().variant_strategy) == "secure":
        return secure_variant()
    return deterministic_variant(user_id)


def should_show_downsell_offer(variant: str) -> bool:
    return variant == "B"


class VariantAssigner:
    """Compare-and-set around the stored cohort for one user."""

    def __init__(self, gateway: "PersistenceGateway", strategy: Optional[str] = None):
        self.gateway = gateway
        self.strategy = strategy

    async def resolve(self, user_id: str, subscription_id: str) -> Tuple[Variant, bool]:
        """
        Returns (variant, created). `created` is True only for the single
        call that wrote a fresh variant to storage.
        """
        stored = await self.gateway.stored_variant(user_id)
        if stored:
            log.info("User %s keeps pinned variant %s", user_id, stored)
            return stored, False  # type: ignore[return-value]

        fresh = assign(user_id, strategy=self.strategy)
        winner = await self.gateway.seed_variant(user_id, subscription_id, fresh)
        if winner != fresh:
            # someone else seeded first; theirs is authoritative
            log.info("User %s was seeded concurrently with %s", user_id, winner)
            return winner, False  # type: ignore[return-value]
        log.info("User %s assigned new variant %s", user_id, fresh)
        return fresh, True


__all__ = [
    "deterministic_variant",
    "secure_variant",
    "assign",
    "should_show_downsell_offer",
    "VariantAssigner",
]
