"""
cancelflow.branching
====================
Turns (step, pressed button, recorded answers, variant) into the id of the
next step.

1. The opening decision step is looked up in `StepGraph.decision` first:
   answer × variant → target, nothing else is consulted.
2. Every other step: the button's default target, overridden by the first
   ConditionalBranch (declaration order) whose predicate matches.

Anything that cannot produce a real step id raises ConfigurationError.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from cancelflow.errors import ConfigurationError
from cancelflow.schema import ConditionalBranch, Step, StepGraph

Answers = Dict[str, Dict[str, Any]]     # step id → answer key → value


def recorded(answers: Answers, step_id: str, key: str) -> Any:
    return answers.get(step_id, {}).get(key)


def first_match(rules: Iterable[ConditionalBranch], answers: Answers) -> Optional[ConditionalBranch]:
    """Top-to-bottom scan; the first rule whose predicate holds wins."""
    for rule in rules:
        cond = rule.condition
        if recorded(answers, cond.step_id, cond.question_id) == cond.value:
            return rule
    return None


def _resolve_decision(graph: StepGraph, step: Step, answer: Any, variant: str) -> str:
    routes = graph.decision.routes.get(str(answer)) if answer is not None else None
    if routes is None:
        raise ConfigurationError(f"decision step '{step.id}' has no route for answer {answer!r}")
    target = routes.get(variant)
    if target is None:
        raise ConfigurationError(
            f"decision step '{step.id}' has no route for answer {answer!r} / variant {variant!r}"
        )
    return target


def resolve_next(
    graph: StepGraph,
    step: Step,
    button_id: str,
    answers: Answers,
    variant: str,
) -> str:
    button = step.button(button_id)
    if button is None:
        raise ConfigurationError(f"step '{step.id}' has no button '{button_id}'")

    if graph.is_decision_step(step.id):
        answer = recorded(answers, step.id, graph.decision.answer_key)
        if answer is None:
            answer = button.value
        target = _resolve_decision(graph, step, answer, variant)
    else:
        rule = first_match(step.conditional_branches, answers)
        target = rule.next_step_id if rule is not None else button.next_step_id

    if target is None:
        raise ConfigurationError(f"button '{step.id}/{button_id}' has no target and no rule matched")
    if not graph.has_step(target):
        raise ConfigurationError(f"button '{step.id}/{button_id}' resolves to unknown step '{target}'")
    return target


__all__ = ["Answers", "recorded", "first_match", "resolve_next"]
