"""
cancelflow.session
==================
`FlowSession` – one controller per open cancellation flow.

    session = FlowSession(user_id, subscription_id, gateway)
    await session.open()                 # pins / seeds the A/B variant
    await session.load()                 # or resume from the last saved record
    session.answer("cancelReason", "too-expensive")
    await session.press("continue")      # validate → resolve → move
    ...                                  # the close button commits

Nothing here is process-wide: two sessions never share a FlowState.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from cancelflow.errors import PersistenceError
from cancelflow.flow import default_graph
from cancelflow.gateway import DEFAULT_OFFER_PERCENT, PersistenceGateway
from cancelflow.navigator import Navigator, Progress, Transition
from cancelflow.schema import Step, StepGraph
from cancelflow.state import FlowState
from cancelflow.store import Row
from cancelflow.variants import VariantAssigner

log = logging.getLogger(__name__)


class FlowSession:
    def __init__(
        self,
        user_id: str,
        subscription_id: str,
        gateway: PersistenceGateway,
        *,
        graph: Optional[StepGraph] = None,
        assigner: Optional[VariantAssigner] = None,
        offer_percent: int = DEFAULT_OFFER_PERCENT,
    ):
        self.user_id = user_id
        self.subscription_id = subscription_id
        self.gateway = gateway
        self.graph = graph or default_graph()
        self.assigner = assigner or VariantAssigner(gateway)
        self.offer_percent = offer_percent

        self.state = FlowState()
        self.navigator = Navigator(self.graph, self.state)
        self.saved: Optional[Row] = None
        self.last_error: Optional[PersistenceError] = None

    # ─────────────────────────── lifecycle
    async def open(self) -> str:
        variant, created = await self.assigner.resolve(self.user_id, self.subscription_id)
        self.navigator.reset(variant)
        self.saved = None
        self.last_error = None
        log.info("Flow opened for %s with variant %s%s",
                 self.user_id, variant, " (new)" if created else "")
        return variant

    async def load(self) -> bool:
        """
        Resume from the most recent saved record for this subscription.
        Returns False, leaving the state alone, when nothing is stored.
        """
        try:
            row = await self.gateway.fetch(self.user_id, self.subscription_id)
        except PersistenceError as exc:
            self.last_error = exc
            log.error("Loading flow for %s failed: %s", self.user_id, exc)
            raise
        if row is None:
            return False
        self.navigator.restore(row)
        self.saved = row
        self.last_error = None
        log.info("Flow loaded for %s with variant %s at %s",
                 self.user_id, self.state.variant, self.step.id)
        return True

    async def finish(self) -> Row:
        """Commit the flow once; the FlowState only flips to completed on success."""
        result = self.navigator.result(self.user_id, self.subscription_id)
        try:
            saved = await self.gateway.commit(result)
        except PersistenceError as exc:
            self.last_error = exc
            raise
        self.state.completed = True
        self.state.final_decision = result.final_decision
        self.saved = saved
        self.last_error = None
        return saved

    # ─────────────────────────── user actions
    @property
    def step(self) -> Step:
        return self.navigator.current_step

    def answer(self, key: str, value: Any, step_id: Optional[str] = None) -> None:
        self.navigator.set_answer(key, value, step_id)

    def back(self) -> Transition:
        return self.navigator.retreat()

    def progress(self) -> Optional[Progress]:
        return self.navigator.progress()

    async def press(self, button_id: str) -> Transition:
        button = self.step.button(button_id)
        transition = self.navigator.press(button_id)

        if transition.outcome == "moved" and button is not None and button.accepts_offer is not None:
            try:
                await self.gateway.update_offer(self.user_id, self.subscription_id,
                                                button.accepts_offer, self.offer_percent)
            except PersistenceError as exc:
                self.last_error = exc
                log.error("Offer update for %s failed: %s", self.subscription_id, exc)
                raise

        if transition.outcome == "close" and not self.state.completed:
            await self.finish()
        return transition


__all__ = ["FlowSession"]
