"""
cancelflow.schema
=================
Pydantic models that define the **only valid shape** for a flow:

• StepGraph          – the whole wizard, immutable once built
• Step               – one screen: content, questions, buttons, branch rules
• Question / FollowUp – what the user answers
• Button             – what the user presses
• ConditionalBranch  – ordered "if answer == X go to Y" overrides
• DecisionRoutes     – answer × variant table for the opening decision step

Presentational keys the engine does not know about (styles, colours, image
flags…) are ignored so a flow exported for the UI still validates here.
"""
from __future__ import annotations

from typing import Dict, Iterator, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, model_validator

from cancelflow.errors import ConfigurationError

Variant = Literal["A", "B"]
VARIANTS: Tuple[str, ...] = ("A", "B")

QuestionType = Literal[
    "choice",
    "short-text",
    "long-text",
    "single-select-with-followup",
    "informational",
]
InputType = Literal["choice", "short-text", "long-text", "numeric"]
ButtonAction = Literal["advance", "retreat", "branch", "close"]

FORWARD_ACTIONS = ("advance", "branch")


def followup_key(parent_id: str, value: str) -> str:
    """Composite answer key for the follow-up exposed by `value`."""
    return f"{parent_id}_{value}"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


# ─────────────────────────────── questions ──────────────────────────────
class Option(_Frozen):
    value: str
    label: str = ""


class FollowUp(_Frozen):
    value: str                              # option value that exposes it
    text: str = ""
    input_type: InputType = "short-text"
    required: bool = True
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    options: Tuple[Option, ...] = ()
    error_message: Optional[str] = None

    @model_validator(mode="after")
    def _choice_needs_options(self):
        if self.input_type == "choice" and not self.options:
            raise ValueError(f"follow-up '{self.value}' is a choice without options")
        return self


class Question(_Frozen):
    id: str
    text: str = ""
    type: QuestionType
    required: bool = True
    options: Tuple[Option, ...] = ()
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    error_message: Optional[str] = None
    follow_ups: Tuple[FollowUp, ...] = ()

    @model_validator(mode="after")
    def _check_options(self):
        if self.type in ("choice", "single-select-with-followup") and not self.options:
            raise ValueError(f"question '{self.id}' needs an option set")
        if self.follow_ups and self.type != "single-select-with-followup":
            raise ValueError(f"question '{self.id}' declares follow-ups but is '{self.type}'")
        values = self.option_values
        for fu in self.follow_ups:
            if fu.value not in values:
                raise ValueError(f"follow-up '{fu.value}' of '{self.id}' is not an option")
        return self

    @property
    def option_values(self) -> Tuple[str, ...]:
        return tuple(o.value for o in self.options)

    def follow_up_for(self, value: Optional[str]) -> Optional[FollowUp]:
        for fu in self.follow_ups:
            if fu.value == value:
                return fu
        return None


# ──────────────────────────────── buttons ───────────────────────────────
class Button(_Frozen):
    id: str
    label: str = ""
    action: ButtonAction
    next_step_id: Optional[str] = None
    disabled_until: Tuple[str, ...] = ()
    value: Optional[str] = None             # recorded under Step.branch_key
    accepts_offer: Optional[bool] = None    # True = accept, False = decline


# ─────────────────────────────── branching ──────────────────────────────
class BranchCondition(_Frozen):
    step_id: str
    question_id: str
    value: str


class ConditionalBranch(_Frozen):
    condition: BranchCondition
    next_step_id: str


class DecisionRoutes(_Frozen):
    """answer → variant → step id for the opening decision step."""
    step_id: str
    answer_key: str
    routes: Dict[str, Dict[Variant, str]]

    def targets(self) -> Iterator[str]:
        for by_variant in self.routes.values():
            yield from by_variant.values()


# ───────────────────────────────── steps ────────────────────────────────
class Step(_Frozen):
    id: str
    number: int = 0                          # declarative only
    heading: str = ""
    heading2: Optional[str] = None
    sub_heading: Optional[str] = None
    description: str = ""
    note: Optional[str] = None

    branch_key: Optional[str] = None
    prev_step_id: Optional[str] = None
    questions: Tuple[Question, ...] = ()
    buttons: Tuple[Button, ...] = ()
    offer_button: Optional[Button] = None
    conditional_branches: Tuple[ConditionalBranch, ...] = ()

    # progress indicator only
    counts_toward_progress: bool = False
    show_progress: bool = True

    @model_validator(mode="after")
    def _check_local_ids(self):
        qids = [q.id for q in self.questions]
        if len(set(qids)) != len(qids):
            raise ValueError(f"step '{self.id}' repeats a question id")
        bids = [b.id for b in self.all_buttons()]
        if len(set(bids)) != len(bids):
            raise ValueError(f"step '{self.id}' repeats a button id")
        for b in self.all_buttons():
            missing = [q for q in b.disabled_until if q not in qids]
            if missing:
                raise ValueError(
                    f"button '{b.id}' on step '{self.id}' waits on unknown question(s) {missing}"
                )
        return self

    def all_buttons(self) -> List[Button]:
        return list(self.buttons) + ([self.offer_button] if self.offer_button else [])

    def button(self, button_id: str) -> Optional[Button]:
        for b in self.all_buttons():
            if b.id == button_id:
                return b
        return None

    def question(self, question_id: str) -> Optional[Question]:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None

    def forward_button(self) -> Optional[Button]:
        """First regular (non-offer) button that moves forward."""
        for b in self.buttons:
            if b.action in FORWARD_ACTIONS:
                return b
        return None

    @property
    def is_terminal(self) -> bool:
        return all(b.action not in FORWARD_ACTIONS for b in self.all_buttons())


# ───────────────────────────────── graph ────────────────────────────────
class StepGraph(_Frozen):
    steps: Tuple[Step, ...]
    decision: Optional[DecisionRoutes] = None
    initial_step_id: Optional[str] = None

    @model_validator(mode="after")
    def _check_graph(self):
        if not self.steps:
            raise ValueError("flow must define at least one step")

        ids = [s.id for s in self.steps]
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        if dupes:
            raise ValueError(f"duplicate step id(s): {dupes}")

        known = set(ids)

        def _need(target: Optional[str], where: str) -> None:
            if target is not None and target not in known:
                raise ValueError(f"{where} points at unknown step '{target}'")

        _need(self.initial_step_id, "initial_step_id")
        for s in self.steps:
            _need(s.prev_step_id, f"step '{s.id}' prev_step_id")
            for b in s.all_buttons():
                _need(b.next_step_id, f"button '{s.id}/{b.id}'")
            for rule in s.conditional_branches:
                _need(rule.next_step_id, f"branch rule on '{s.id}'")
                _need(rule.condition.step_id, f"branch condition on '{s.id}'")

        if self.decision is not None:
            _need(self.decision.step_id, "decision step")
            for target in self.decision.targets():
                _need(target, f"decision route of '{self.decision.step_id}'")
        return self

    # ---- lookups ------------------------------------------------------
    @property
    def initial_step(self) -> Step:
        if self.initial_step_id is None:
            return self.steps[0]
        return self.step(self.initial_step_id)

    def has_step(self, step_id: str) -> bool:
        return any(s.id == step_id for s in self.steps)

    def step(self, step_id: str) -> Step:
        for s in self.steps:
            if s.id == step_id:
                return s
        raise ConfigurationError(f"unknown step '{step_id}'")

    def index_of(self, step_id: str) -> int:
        for i, s in enumerate(self.steps):
            if s.id == step_id:
                return i
        raise ConfigurationError(f"unknown step '{step_id}'")

    def is_decision_step(self, step_id: str) -> bool:
        return self.decision is not None and self.decision.step_id == step_id


__all__ = [
    "Variant",
    "VARIANTS",
    "Option",
    "FollowUp",
    "Question",
    "Button",
    "BranchCondition",
    "ConditionalBranch",
    "DecisionRoutes",
    "Step",
    "StepGraph",
    "followup_key",
]
