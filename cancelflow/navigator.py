"""
cancelflow.navigator
====================
Owns position, answers and errors for one flow.

Forward presses go through the transition pipeline (validate → resolve) and
land on a concrete ordinal index; back presses follow the step's declared
`prev_step_id`. Progress is recomputed from the active path on every call,
never stored, because the same step sits at different positions on
different branches / variants.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from cancelflow.branching import recorded, resolve_next
from cancelflow.errors import ConfigurationError
from cancelflow.schema import Step, StepGraph, followup_key
from cancelflow.state import CORE_FIELDS, FlowResult, FlowState
from cancelflow.transitions import run_transition
from cancelflow.validator import button_enabled, validate_field

log = logging.getLogger(__name__)

NavOutcome = Literal["moved", "invalid", "misconfigured", "close", "stay"]


class Transition(BaseModel):
    outcome: NavOutcome
    step_id: str                        # where the user is after the press
    errors: Dict[str, str] = Field(default_factory=dict)
    message: Optional[str] = None


class Progress(BaseModel):
    position: int                       # 0 = not a counted step (e.g. "Completed")
    total: int


class Navigator:
    def __init__(self, graph: StepGraph, state: Optional[FlowState] = None):
        self.graph = graph
        self.state = state if state is not None else FlowState()
        if not self.state.path:
            self._place(self.graph.initial_step.id, reset_path=True)

    # ─────────────────────────── position
    @property
    def current_step(self) -> Step:
        return self.graph.steps[self.state.current_index]

    def reset(self, variant: Optional[str] = None) -> None:
        self.state.answers.clear()
        self.state.errors.clear()
        self.state.completed = False
        self.state.got_job = self.state.cancel_reason = self.state.company_visa_support = None
        self.state.accepted_downsell = False
        self.state.final_decision = None
        if variant is not None:
            self.state.variant = variant
        self._place(self.graph.initial_step.id, reset_path=True)

    def _place(self, step_id: str, *, reset_path: bool = False) -> None:
        self.state.current_index = self.graph.index_of(step_id)
        if reset_path:
            self.state.path = [step_id]
        else:
            self.state.path.append(step_id)

    # ─────────────────────────── answers
    def set_answer(self, key: str, value: Any, step_id: Optional[str] = None) -> None:
        step = self.graph.step(step_id) if step_id else self.current_step
        self.state.set_answer(step.id, key, value)

        # a follow-up only lives while its parent still selects its trigger
        question = step.question(key)
        if question is not None:
            for fu in question.follow_ups:
                if fu.value != value:
                    self.state.drop_answer(step.id, followup_key(question.id, fu.value))

        if step.id == self.current_step.id and self.state.errors:
            self._recheck_errors(step)

    def _recheck_errors(self, step: Step) -> None:
        answers = self.state.answers_for(step.id)
        for key in list(self.state.errors):
            err = validate_field(step, key, answers)
            if err is None:
                self.state.errors.pop(key)
            else:
                self.state.errors[key] = err

    def is_enabled(self, button_id: str) -> bool:
        step = self.current_step
        button = step.button(button_id)
        return button is not None and button_enabled(step, button, self.state.answers_for(step.id))

    # ─────────────────────────── moves
    def press(self, button_id: str) -> Transition:
        step = self.current_step
        button = step.button(button_id)
        if button is None:
            log.warning("Ignoring unknown button %s on step %s", button_id, step.id)
            return Transition(outcome="misconfigured", step_id=step.id,
                              message=f"step '{step.id}' has no button '{button_id}'")
        if button.action == "retreat":
            return self.retreat()

        if button.value is not None and step.branch_key:
            self.state.set_answer(step.id, step.branch_key, button.value)

        res = run_transition(self.graph, step.id, button_id,
                             self.state.answers, self.state.variant)

        if res.outcome == "invalid":
            self.state.errors = dict(res.errors)
            return Transition(outcome="invalid", step_id=step.id, errors=res.errors)
        if res.outcome == "misconfigured":
            return Transition(outcome="misconfigured", step_id=step.id, message=res.message)

        self.state.errors = {}
        if res.outcome == "close":
            return Transition(outcome="close", step_id=step.id)

        if button.accepts_offer is not None:
            self.state.accepted_downsell = button.accepts_offer
        self._place(res.target)
        log.debug("Moved %s → %s via %s", step.id, res.target, button_id)
        return Transition(outcome="moved", step_id=res.target)

    def retreat(self) -> Transition:
        step = self.current_step
        if step.prev_step_id:
            target = step.prev_step_id
        elif self.state.current_index > 0:
            target = self.graph.steps[self.state.current_index - 1].id
        else:
            return Transition(outcome="stay", step_id=step.id)

        path = self.state.path
        if target in path:
            cut = len(path) - path[::-1].index(target)
            removed = path[cut:]
            del path[cut:]
        else:
            removed = path[-1:]
            path[-1:] = [target]
        self.state.current_index = self.graph.index_of(target)
        self.state.errors = {}

        # answers on steps left behind stop counting
        self.state.sync_core_fields(path)
        if any(self.graph.step(sid).offer_button is not None for sid in removed + [target]):
            self.state.accepted_downsell = False
        return Transition(outcome="moved", step_id=target)

    # ─────────────────────────── derived views
    def _project(self, step: Step) -> Optional[str]:
        if self.graph.is_decision_step(step.id):
            if recorded(self.state.answers, step.id, self.graph.decision.answer_key) is None:
                return None
        button = step.forward_button()
        if self.state.accepted_downsell and step.offer_button is not None and step.offer_button.accepts_offer:
            button = step.offer_button
        if button is None:
            return None
        try:
            return resolve_next(self.graph, step, button.id, self.state.answers, self.state.variant)
        except ConfigurationError:
            return None

    def active_path(self) -> List[str]:
        """Visited steps plus the path ahead as the current answers would resolve it."""
        path = list(self.state.path)
        seen = set(path)
        cursor = self.current_step
        while not cursor.is_terminal:
            nxt = self._project(cursor)
            if nxt is None or nxt in seen:
                break
            path.append(nxt)
            seen.add(nxt)
            cursor = self.graph.step(nxt)
        return path

    def progress(self) -> Optional[Progress]:
        step = self.current_step
        if not step.show_progress:
            return None
        counted = [sid for sid in self.active_path() if self.graph.step(sid).counts_toward_progress]
        position = counted.index(step.id) + 1 if step.id in counted else 0
        return Progress(position=position, total=len(counted))

    def flow_data(self) -> Dict[str, Any]:
        """Answers from the steps on the visited path; abandoned branches are left out."""
        return self.state.answers_on(self.state.path)

    def result(self, user_id: str, subscription_id: str) -> FlowResult:
        if self.state.variant is None:
            raise ConfigurationError("flow has no variant yet, open the session first")
        s = self.state
        data = self.flow_data()
        accepted = s.accepted_downsell and any(
            self.graph.step(sid).offer_button is not None for sid in s.path
        )
        return FlowResult(
            user_id=user_id,
            subscription_id=subscription_id,
            downsell_variant=s.variant,
            flow_data=data,
            current_step=s.current_index + 1,
            completed=True,
            **{attr: data.get(key) for key, attr in CORE_FIELDS.items()},
            accepted_downsell=accepted,
            final_decision="kept" if accepted else "cancelled",
        )

    # ─────────────────────────── resume
    def _answer_owners(self) -> Dict[str, List[str]]:
        owners: Dict[str, List[str]] = {}
        for step in self.graph.steps:
            keys = [q.id for q in step.questions]
            keys += [followup_key(q.id, fu.value) for q in step.questions for fu in q.follow_ups]
            if step.branch_key:
                keys.append(step.branch_key)
            for key in dict.fromkeys(keys):
                owners.setdefault(key, []).append(step.id)
        return owners

    def _replay_path(self, target: str) -> List[str]:
        start = self.graph.initial_step.id
        path = [start]
        cursor = self.graph.initial_step
        while cursor.id != target:
            nxt = self._project(cursor)
            if nxt is None or nxt in path:
                return [start, target]
            path.append(nxt)
            cursor = self.graph.step(nxt)
        return path

    def restore(self, row: Dict[str, Any]) -> None:
        """
        Rebuild the state from a saved cancellation record. The stored
        variant is taken as is; a record without one leaves the flow
        without a variant.
        """
        self.reset()
        s = self.state
        s.variant = row.get("downsell_variant") or None

        data = dict(row.get("flow_data") or {})
        for key, attr in CORE_FIELDS.items():
            if row.get(attr) is not None:
                data.setdefault(key, row[attr])
        owners = self._answer_owners()
        for key, value in data.items():
            for sid in owners.get(key, ()):
                s.answers.setdefault(sid, {})[key] = value
        for key, attr in CORE_FIELDS.items():
            setattr(s, attr, data.get(key))

        s.accepted_downsell = bool(row.get("accepted_downsell"))
        s.final_decision = row.get("final_decision")
        s.completed = bool(row.get("completed"))

        index = min(max(int(row.get("current_step") or 1), 1), len(self.graph.steps)) - 1
        target = self.graph.steps[index].id
        s.path = self._replay_path(target)
        s.current_index = index


__all__ = ["Navigator", "NavOutcome", "Transition", "Progress"]
