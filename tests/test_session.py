import pytest

from cancelflow.errors import PersistenceError
from cancelflow.session import FlowSession
from cancelflow.variants import deterministic_variant
from tests.conftest import SUB, USER

REASON = "The roles listed never matched what I was looking for."


def _session(gateway, variant=None):
    session = FlowSession(USER, SUB, gateway)
    if variant is not None:
        gateway.store.rows.append({"user_id": USER, "subscription_id": SUB,
                                   "downsell_variant": variant, "updated_at": "2025-01-01"})
    return session


async def _walk_to_confirmation(session):
    await session.press("got-job-no")
    if session.step.id == "downsell-offer-check":
        await session.press("continue-cancellation")
    for key, value in (("jobsAppliedViaMM_NoJob", "6-20"), ("emailsDirect_NoJob", "1-5"),
                       ("interviewsDone_NoJob", "0")):
        session.answer(key, value)
    await session.press("continue")
    session.answer("cancelReason", "not-enough-jobs")
    session.answer("cancelReason_not-enough-jobs", REASON)
    await session.press("continue")
    assert session.step.id == "cancel-confirmation"


@pytest.mark.asyncio
async def test_open_seeds_variant_once(gateway, store):
    first = await FlowSession(USER, SUB, gateway).open()
    second = await FlowSession(USER, SUB, gateway).open()

    assert first == second == deterministic_variant(USER)
    assert store.calls.count("insert_if_absent") == 1
    assert len(store.rows) == 1


@pytest.mark.asyncio
async def test_open_resets_state(gateway):
    session = _session(gateway, "A")
    await session.open()
    await session.press("got-job-yes")
    await session.open()
    assert session.step.id == "got-job"
    assert session.state.answers == {}


@pytest.mark.asyncio
@pytest.mark.parametrize("variant", ["A", "B"])
async def test_full_cancellation_commits_on_close(gateway, store, variant):
    session = _session(gateway, variant)
    assert await session.open() == variant
    await _walk_to_confirmation(session)

    t = await session.press("confirm-cancel")
    assert t.outcome == "close"
    assert session.state.completed is True
    assert session.state.final_decision == "cancelled"

    assert len(store.rows) == 1
    row = store.rows[0]
    assert row["downsell_variant"] == variant
    assert row["cancel_reason"] == "not-enough-jobs"
    assert row["flow_data"]["cancelReason_not-enough-jobs"] == REASON
    assert row["final_decision"] == "cancelled"


@pytest.mark.asyncio
async def test_declined_offer_is_recorded(gateway, store):
    session = _session(gateway, "B")
    await session.open()
    await session.press("got-job-no")
    await session.press("continue-cancellation")

    assert store.subscriptions[SUB]["offer_accepted"] is False
    assert store.subscriptions[SUB]["offer_declined_at"] is not None


@pytest.mark.asyncio
async def test_accepted_offer_keeps_subscription(gateway, store):
    session = _session(gateway, "B")
    await session.open()
    await session.press("got-job-no")
    await session.press("discount-offer")
    assert store.subscriptions[SUB]["offer_accepted"] is True
    assert session.progress() is None

    await session.press("continue")
    await session.press("finish")
    assert session.state.final_decision == "kept"
    assert store.rows[0]["accepted_downsell"] is True


@pytest.mark.asyncio
async def test_offer_failure_is_reported(gateway, store):
    session = _session(gateway, "B")
    await session.open()
    await session.press("got-job-no")

    store.fail_with = PersistenceError("offline", "network")
    with pytest.raises(PersistenceError):
        await session.press("discount-offer")
    assert session.last_error.code == "network"


@pytest.mark.asyncio
async def test_commit_failure_leaves_flow_incomplete(gateway, store):
    session = _session(gateway, "A")
    await session.open()
    await _walk_to_confirmation(session)

    store.fail_with = PersistenceError("connection reset", "network")
    with pytest.raises(PersistenceError):
        await session.press("confirm-cancel")
    assert session.state.completed is False
    assert session.last_error.as_dict()["code"] == "network"
    assert session.step.id == "cancel-confirmation"

    # retry succeeds and still leaves a single record
    await session.press("confirm-cancel")
    assert session.state.completed is True
    assert session.last_error is None
    assert len(store.rows) == 1


@pytest.mark.asyncio
async def test_back_and_progress(gateway):
    session = _session(gateway, "A")
    await session.open()
    await session.press("got-job-no")
    assert (session.progress().position, session.progress().total) == (1, 2)
    assert session.back().step_id == "got-job"


@pytest.mark.asyncio
async def test_load_resumes_saved_flow(gateway, store):
    session = _session(gateway, "B")
    await session.open()
    await session.press("got-job-no")
    await session.press("continue-cancellation")
    session.answer("emailsDirect_NoJob", "1-5")
    await gateway.commit(session.navigator.result(USER, SUB))

    resumed = FlowSession(USER, SUB, gateway)
    assert await resumed.load() is True
    assert resumed.state.variant == "B"
    assert resumed.step.id == "usage-feedback"
    assert resumed.state.answers_for("usage-feedback") == {"emailsDirect_NoJob": "1-5"}
    assert resumed.saved["downsell_variant"] == "B"
    assert resumed.back().step_id == "got-job"


@pytest.mark.asyncio
async def test_load_without_record_leaves_state_alone(gateway, store):
    session = FlowSession(USER, SUB, gateway)
    assert await session.load() is False
    assert session.state.variant is None
    assert session.step.id == "got-job"
    assert "insert_if_absent" not in store.calls


@pytest.mark.asyncio
async def test_load_failure_is_reported(gateway, store, monkeypatch):
    async def broken(user_id, subscription_id=None):
        raise PersistenceError("offline", "network")

    monkeypatch.setattr(store, "select", broken)
    session = FlowSession(USER, SUB, gateway)
    with pytest.raises(PersistenceError):
        await session.load()
    assert session.last_error.code == "network"
