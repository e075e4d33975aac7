from cancelflow.transitions import run_transition, transition_graph


def test_pipeline_is_compiled_once_per_graph(graph):
    assert transition_graph(graph) is transition_graph(graph)


def test_invalid_step_never_resolves(graph):
    res = run_transition(graph, "job-source", "continue", {}, "A")
    assert res.outcome == "invalid"
    assert res.target is None
    assert "jobViaMM" in res.errors


def test_valid_step_resolves_target(graph):
    answers = {"help-feedback": {"helpFeedback": "x" * 30}, "job-source": {"jobViaMM": "no"}}
    res = run_transition(graph, "help-feedback", "continue", answers, "A")
    assert (res.outcome, res.target) == ("moved", "visa-status-no")
    assert res.errors == {}


def test_close_button_short_circuits(graph):
    res = run_transition(graph, "cancel-confirmation", "confirm-cancel", {}, "A")
    assert res.outcome == "close"


def test_unknown_button_is_misconfigured(graph):
    res = run_transition(graph, "got-job", "nope", {}, "B")
    assert res.outcome == "misconfigured"
    assert "nope" in res.message
