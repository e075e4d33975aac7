"""
cancelflow.validator
Per-question rules + per-step aggregation.

Usage
-----
from cancelflow.validator import validate_step
errors = validate_step(step, answers)   # {} when the step is valid
"""
from __future__ import annotations

import math
from typing import Any, Callable, Dict, Optional, Tuple, Union

from cancelflow.config import get_settings
from cancelflow.schema import Button, FollowUp, Question, Step, followup_key

Field = Union[Question, FollowUp]

REQUIRED = "This field is required"
INVALID_OPTION = "Please select a valid option"
NOT_A_NUMBER = "Enter a number"

SHORT_TEXT_MAX = 100
LONG_TEXT_MAX = 1000


# ----------------------------------------------------------------------
# 1. Validator registry
#    Each validator gets the answer and its question/follow-up definition
#    and returns (bool, error_msg)
# ----------------------------------------------------------------------
def _is_blank(val: Any) -> bool:
    return val is None or (isinstance(val, str) and val.strip() == "")


def _choice(val: Any, field: Field) -> Tuple[bool, Optional[str]]:
    if any(val == o.value for o in field.options):
        return True, None
    return False, INVALID_OPTION


def _short_text(val: Any, field: Field) -> Tuple[bool, Optional[str]]:
    limit = field.max_length or SHORT_TEXT_MAX
    if len(str(val).strip()) > limit:
        return False, f"Maximum {limit} characters allowed"
    return True, None


def _long_text(val: Any, field: Field) -> Tuple[bool, Optional[str]]:
    text = str(val).strip()
    low = field.min_length if field.min_length is not None else get_settings().long_text_min_length
    high = field.max_length or LONG_TEXT_MAX
    if len(text) < low:
        return False, field.error_message or (
            f"Please enter at least {low} characters so we can understand your feedback"
        )
    if len(text) > high:
        return False, f"Maximum {high} characters allowed"
    return True, None


def _numeric(val: Any, field: Field) -> Tuple[bool, Optional[str]]:
    if isinstance(val, bool):
        return False, NOT_A_NUMBER
    try:
        num = float(str(val).strip().lstrip("$")) if isinstance(val, str) else float(val)
    except (TypeError, ValueError):
        return False, NOT_A_NUMBER
    if not math.isfinite(num):
        return False, NOT_A_NUMBER
    low, high = getattr(field, "min_value", None), getattr(field, "max_value", None)
    if low is not None and num < low:
        return False, f"Must be at least {low:g}"
    if high is not None and num > high:
        return False, f"Must be at most {high:g}"
    return True, None


def _informational(val: Any, field: Field) -> Tuple[bool, Optional[str]]:
    return True, None


VALIDATORS: Dict[str, Callable[[Any, Field], Tuple[bool, Optional[str]]]] = {
    "choice": _choice,
    "single-select-with-followup": _choice,
    "short-text": _short_text,
    "long-text": _long_text,
    "numeric": _numeric,
    "informational": _informational,
}


# ----------------------------------------------------------------------
# 2. Single answers
# ----------------------------------------------------------------------
def check(field: Field, value: Any) -> Optional[str]:
    """Error message for one answer, or None when it is acceptable."""
    kind = field.type if isinstance(field, Question) else field.input_type
    if kind == "informational":
        return None
    if _is_blank(value):
        return REQUIRED if field.required else None
    ok, err = VALIDATORS[kind](value, field)
    return None if ok else err


def validate_question(question: Question, answers: Dict[str, Any]) -> Dict[str, str]:
    """Errors for a question and, when exposed, its follow-up."""
    errors: Dict[str, str] = {}
    value = answers.get(question.id)
    err = check(question, value)
    if err:
        errors[question.id] = err
        return errors

    follow_up = question.follow_up_for(value)
    if follow_up is not None:
        key = followup_key(question.id, follow_up.value)
        err = check(follow_up, answers.get(key))
        if err:
            errors[key] = err
    return errors


# ----------------------------------------------------------------------
# 3. Steps
# ----------------------------------------------------------------------
def validate_step(step: Step, answers: Dict[str, Any]) -> Dict[str, str]:
    """
    Full error map for `step` given its answers.
    Absence of a key means that field is valid.
    """
    errors: Dict[str, str] = {}
    for q in step.questions:
        errors.update(validate_question(q, answers))
    return errors


def validate_field(step: Step, key: str, answers: Dict[str, Any]) -> Optional[str]:
    """Re-check one answer key (plain question id or follow-up composite key)."""
    question = step.question(key)
    if question is not None:
        return check(question, answers.get(key))

    for q in step.questions:
        for fu in q.follow_ups:
            if followup_key(q.id, fu.value) == key:
                if answers.get(q.id) != fu.value:
                    return None  # not exposed, nothing to validate
                return check(fu, answers.get(key))
    return None


def button_enabled(step: Step, button: Button, answers: Dict[str, Any]) -> bool:
    for qid in button.disabled_until:
        question = step.question(qid)
        if question is not None and validate_question(question, answers):
            return False
    return True


__all__ = [
    "VALIDATORS",
    "check",
    "validate_question",
    "validate_step",
    "validate_field",
    "button_enabled",
]
