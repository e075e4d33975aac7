import pytest

from cancelflow.flow import CANCELLATION_FLOW
from cancelflow.schema import FollowUp, Question
from cancelflow.validator import (
    REQUIRED,
    button_enabled,
    check,
    validate_field,
    validate_step,
)

FEEDBACK = Question(id="helpFeedback", type="long-text")


def test_long_text_boundary_at_default_minimum():
    assert check(FEEDBACK, "x" * 24) is not None
    assert check(FEEDBACK, "x" * 25) is None


def test_long_text_is_measured_after_trimming():
    assert check(FEEDBACK, "   " + "x" * 24 + "   ") is not None
    assert check(FEEDBACK, "  " + "x" * 25 + "\n") is None


def test_long_text_minimum_comes_from_settings(monkeypatch):
    from cancelflow.config import get_settings

    monkeypatch.setenv("CANCELFLOW_LONG_TEXT_MIN_LENGTH", "10")
    get_settings.cache_clear()
    assert check(FEEDBACK, "x" * 10) is None


def test_long_text_maximum():
    q = Question(id="q", type="long-text", max_length=30)
    assert check(q, "x" * 31) == "Maximum 30 characters allowed"


def test_optional_long_text_may_be_empty():
    q = Question(id="q", type="long-text", required=False)
    assert check(q, "") is None
    assert check(q, "too short") is not None


def test_required_blank_answers():
    assert check(FEEDBACK, None) == REQUIRED
    assert check(FEEDBACK, "   ") == REQUIRED


def test_choice_must_be_an_option():
    q = CANCELLATION_FLOW.step("job-source").question("jobViaMM")
    assert check(q, "yes") is None
    assert check(q, "maybe") == "Please select a valid option"


def test_informational_always_valid():
    q = CANCELLATION_FLOW.step("cancel-confirmation").question("cancelComplete")
    assert check(q, None) is None
    assert validate_step(CANCELLATION_FLOW.step("cancel-confirmation"), {}) == {}


@pytest.mark.parametrize("value, ok", [("15", True), (15, True), ("$15.50", True),
                                       ("abc", False), ("-1", False), (True, False)])
def test_numeric_follow_up(value, ok):
    fu = FollowUp(value="too-expensive", input_type="numeric", min_value=0)
    assert (check(fu, value) is None) is ok


def test_short_text_follow_up_limits():
    fu = FollowUp(value="yes", input_type="short-text")
    assert check(fu, "H-1B") is None
    assert check(fu, "x" * 101) == "Maximum 100 characters allowed"


def test_select_with_followup_requires_exposed_follow_up():
    step = CANCELLATION_FLOW.step("cancel-reason")
    errors = validate_step(step, {"cancelReason": "too-expensive"})
    assert errors == {"cancelReason_too-expensive": REQUIRED}

    assert validate_step(step, {"cancelReason": "too-expensive",
                                "cancelReason_too-expensive": "15"}) == {}


def test_select_with_followup_invalid_parent_hides_follow_up():
    step = CANCELLATION_FLOW.step("cancel-reason")
    errors = validate_step(step, {"cancelReason": "bogus"})
    assert set(errors) == {"cancelReason"}


def test_long_text_follow_up_uses_custom_message():
    step = CANCELLATION_FLOW.step("cancel-reason")
    errors = validate_step(step, {"cancelReason": "other", "cancelReason_other": "meh"})
    assert errors["cancelReason_other"].startswith("Please enter at least 25 characters")


def test_validate_field_ignores_unexposed_follow_up():
    step = CANCELLATION_FLOW.step("cancel-reason")
    answers = {"cancelReason": "other"}
    assert validate_field(step, "cancelReason_too-expensive", answers) is None
    assert validate_field(step, "cancelReason_other", answers) == REQUIRED
    answers["cancelReason_other"] = "meh"
    assert validate_field(step, "cancelReason_other", answers) == step.questions[0].follow_ups[-1].error_message


def test_step_errors_aggregate_every_question():
    step = CANCELLATION_FLOW.step("job-source")
    errors = validate_step(step, {"jobViaMM": "yes"})
    assert set(errors) == {"jobsAppliedViaMM", "emailsDirect", "interviewsDone"}


def test_button_enabled_tracks_disabled_until():
    step = CANCELLATION_FLOW.step("help-feedback")
    button = step.button("continue")
    assert not button_enabled(step, button, {"helpFeedback": "short"})
    assert button_enabled(step, button, {"helpFeedback": "x" * 25})

    reason = CANCELLATION_FLOW.step("cancel-reason")
    go = reason.button("continue")
    assert not button_enabled(reason, go, {"cancelReason": "too-expensive"})
    assert button_enabled(reason, go, {"cancelReason": "too-expensive",
                                       "cancelReason_too-expensive": "12"})


@pytest.mark.parametrize("value", [["yes"], {"yes": 1}, 3.5])
def test_choice_rejects_non_scalar_answers(value):
    q = CANCELLATION_FLOW.step("job-source").question("jobViaMM")
    assert check(q, value) == "Please select a valid option"
