"""
cancelflow.transitions
======================
LangGraph pipeline run for every forward button press:

    Validate ──(errors / close / bad button)──► Deliver
        │
        └──────────────► Resolve ─────────────► Deliver

One compiled pipeline per StepGraph, built on first use and reused by every
session that shares that graph.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Literal, Optional, Tuple

from langgraph.graph import END, StateGraph
from langgraph.pregel import Pregel
from pydantic import BaseModel, Field

from cancelflow.branching import resolve_next
from cancelflow.errors import ConfigurationError
from cancelflow.schema import FORWARD_ACTIONS, StepGraph
from cancelflow.validator import validate_step

log = logging.getLogger(__name__)

Outcome = Literal["moved", "invalid", "misconfigured", "close"]


# ─────────────────────────── 1 · shared state ──────────────────────────
class TransitionState(BaseModel):
    step_id: str
    button_id: str
    variant: Optional[str] = None
    answers: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    errors: Dict[str, str] = Field(default_factory=dict)
    target: Optional[str] = None
    outcome: Optional[Outcome] = None
    message: Optional[str] = None


# ─────────────────────────── 2 · nodes ──────────────────────────────────
def _make_nodes(flow: StepGraph):

    def validate_node(state: TransitionState) -> Dict[str, Any]:
        step = flow.step(state.step_id)
        button = step.button(state.button_id)
        if button is None:
            return {"outcome": "misconfigured",
                    "message": f"step '{step.id}' has no button '{state.button_id}'"}
        if button.action == "close":
            return {"outcome": "close", "errors": {}}
        if button.action not in FORWARD_ACTIONS:
            return {"outcome": "misconfigured",
                    "message": f"button '{step.id}/{button.id}' does not move forward"}

        errors = validate_step(step, state.answers.get(step.id, {}))
        return {"errors": errors, "outcome": "invalid" if errors else None}

    def resolve_node(state: TransitionState) -> Dict[str, Any]:
        step = flow.step(state.step_id)
        try:
            target = resolve_next(flow, step, state.button_id, state.answers, state.variant)
        except ConfigurationError as exc:
            log.warning("No navigation from %s: %s", step.id, exc)
            return {"outcome": "misconfigured", "message": str(exc)}
        return {"outcome": "moved", "target": target}

    def deliver_node(state: TransitionState) -> Dict[str, Any]:
        return {"outcome": state.outcome}

    return validate_node, resolve_node, deliver_node


def _after_validate(state: TransitionState) -> str:
    return "Resolve" if state.outcome is None else "Deliver"


# ─────────────────────────── 3 · graph builder ─────────────────────────
_graph_lock = threading.RLock()
_COMPILED: Dict[int, Tuple[StepGraph, Pregel]] = {}


def build_transition_graph(flow: StepGraph) -> Pregel:
    validate_node, resolve_node, deliver_node = _make_nodes(flow)

    sg = StateGraph(TransitionState)
    sg.add_node("Validate", validate_node)
    sg.add_node("Resolve", resolve_node)
    sg.add_node("Deliver", deliver_node)

    sg.set_entry_point("Validate")
    sg.add_conditional_edges(
        "Validate",
        _after_validate,
        {"Resolve": "Resolve", "Deliver": "Deliver"},
    )
    sg.add_edge("Resolve", "Deliver")
    sg.add_edge("Deliver", END)
    return sg.compile()


def transition_graph(flow: StepGraph) -> Pregel:
    with _graph_lock:
        hit = _COMPILED.get(id(flow))
        if hit is None or hit[0] is not flow:
            hit = (flow, build_transition_graph(flow))
            _COMPILED[id(flow)] = hit
        return hit[1]


# ─────────────────────────── 4 · public helper ─────────────────────────
def run_transition(
    flow: StepGraph,
    step_id: str,
    button_id: str,
    answers: Dict[str, Dict[str, Any]],
    variant: Optional[str],
) -> TransitionState:
    init_state = TransitionState(step_id=step_id, button_id=button_id,
                                 variant=variant, answers=answers)
    final = transition_graph(flow).invoke(init_state)
    # invoke() hands back a plain mapping of channel values
    return TransitionState.model_validate(dict(final))


__all__ = ["Outcome", "TransitionState", "build_transition_graph", "transition_graph", "run_transition"]
