import pytest
from pydantic import ValidationError as ModelError

from cancelflow.errors import ConfigurationError
from cancelflow.flow import CANCELLATION_FLOW, CANCELLATION_FLOW_SPEC, load_step_graph
from cancelflow.schema import Question, StepGraph


def _steps(*steps):
    return {"steps": list(steps)}


def test_builtin_flow_is_valid():
    ids = [s.id for s in CANCELLATION_FLOW.steps]
    assert len(ids) == len(set(ids))
    assert CANCELLATION_FLOW.initial_step.id == "got-job"
    assert CANCELLATION_FLOW.is_decision_step("got-job")


def test_duplicate_step_ids_rejected():
    with pytest.raises(ModelError, match="duplicate step id"):
        StepGraph.model_validate(_steps({"id": "a"}, {"id": "a"}))


def test_dangling_button_target_rejected():
    spec = _steps({"id": "a", "buttons": [{"id": "go", "action": "advance", "next_step_id": "nowhere"}]})
    with pytest.raises(ModelError, match="unknown step 'nowhere'"):
        StepGraph.model_validate(spec)


def test_dangling_branch_target_rejected():
    spec = _steps(
        {"id": "a", "conditional_branches": [
            {"condition": {"step_id": "a", "question_id": "q", "value": "x"}, "next_step_id": "ghost"},
        ]},
    )
    with pytest.raises(ModelError):
        StepGraph.model_validate(spec)


def test_dangling_prev_step_rejected():
    with pytest.raises(ModelError):
        StepGraph.model_validate(_steps({"id": "a", "prev_step_id": "zzz"}))


def test_disabled_until_must_name_a_question():
    spec = _steps({"id": "a", "buttons": [{"id": "go", "action": "close", "disabled_until": ["missing"]}]})
    with pytest.raises(ModelError, match="unknown question"):
        StepGraph.model_validate(spec)


def test_follow_up_must_hang_off_an_option():
    with pytest.raises(ModelError):
        Question.model_validate({
            "id": "reason", "type": "single-select-with-followup",
            "options": [{"value": "a"}],
            "follow_ups": [{"value": "b", "input_type": "short-text"}],
        })


def test_choice_needs_options():
    with pytest.raises(ModelError):
        Question.model_validate({"id": "q", "type": "choice"})


def test_graph_is_immutable():
    with pytest.raises(ModelError):
        CANCELLATION_FLOW.steps[0].id = "changed"


def test_unknown_step_lookup_raises_configuration_error():
    with pytest.raises(ConfigurationError):
        CANCELLATION_FLOW.step("nope")


def test_presentational_keys_are_ignored():
    g = StepGraph.model_validate(_steps({"id": "a", "hide_image_on_mobile": True, "style": "accent"}))
    assert g.step("a").id == "a"


def test_load_step_graph_from_json(tmp_path):
    import json

    path = tmp_path / "flow.json"
    path.write_text(json.dumps(CANCELLATION_FLOW_SPEC))
    loaded = load_step_graph(path)
    assert [s.id for s in loaded.steps] == [s.id for s in CANCELLATION_FLOW.steps]
