"""
cancelflow.state
================
Defines the Pydantic models that carry one user's progress through the flow.

• `FlowState`  – mutable, one per open session, never shared
• `FlowResult` – the snapshot written at the terminal step (and, with empty
                 answers, when a variant is first seeded)
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, Field

from cancelflow.schema import Variant

FinalDecision = Literal["cancelled", "kept"]

# answer key → FlowState attribute (denormalised into their own columns)
CORE_FIELDS: Dict[str, str] = {
    "gotJob": "got_job",
    "cancelReason": "cancel_reason",
    "companyVisaSupport": "company_visa_support",
}


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class FlowState(BaseModel):
    """
    • `current_index` – pointer into the flattened step order
    • `path`          – step ids visited to get here (progress is derived from it)
    • `answers`       – step id → answer key → value; follow-ups use composite keys
    • `errors`        – answer key → message for the current step
    """
    current_index: int = 0
    path: List[str] = Field(default_factory=list)
    variant: Optional[Variant] = None
    answers: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    errors: Dict[str, str] = Field(default_factory=dict)
    completed: bool = False

    got_job: Optional[str] = None
    cancel_reason: Optional[str] = None
    company_visa_support: Optional[str] = None
    accepted_downsell: bool = False
    final_decision: Optional[FinalDecision] = None

    def answers_for(self, step_id: str) -> Dict[str, Any]:
        return self.answers.get(step_id, {})

    def set_answer(self, step_id: str, key: str, value: Any) -> None:
        self.answers.setdefault(step_id, {})[key] = value
        attr = CORE_FIELDS.get(key)
        if attr is not None:
            setattr(self, attr, value)

    def drop_answer(self, step_id: str, key: str) -> None:
        self.answers.get(step_id, {}).pop(key, None)
        self.errors.pop(key, None)

    def answers_on(self, step_ids: Iterable[str]) -> Dict[str, Any]:
        """Flat answer map for the given steps only, in path order."""
        data: Dict[str, Any] = {}
        for sid in dict.fromkeys(step_ids):
            data.update(self.answers_for(sid))
        return data

    def sync_core_fields(self, step_ids: Iterable[str]) -> None:
        """Re-derive the denormalised columns from the answers on `step_ids`."""
        data = self.answers_on(step_ids)
        for key, attr in CORE_FIELDS.items():
            setattr(self, attr, data.get(key))


class FlowResult(BaseModel):
    """Row shape for the `cancellations` table."""
    user_id: str = Field(min_length=1)
    subscription_id: str = Field(min_length=1)
    downsell_variant: Variant
    flow_data: Dict[str, Any] = Field(default_factory=dict)
    current_step: int = 1
    completed: bool = False

    got_job: Optional[str] = None
    cancel_reason: Optional[str] = None
    company_visa_support: Optional[str] = None
    accepted_downsell: bool = False
    final_decision: Optional[FinalDecision] = None

    def to_row(self) -> Dict[str, Any]:
        row = self.model_dump(mode="json")
        row["updated_at"] = utcnow_iso()
        return row


__all__ = ["FlowState", "FlowResult", "CORE_FIELDS", "FinalDecision", "utcnow_iso"]
