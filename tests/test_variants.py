import pytest

from cancelflow.variants import (
    VariantAssigner,
    assign,
    deterministic_variant,
    secure_variant,
    should_show_downsell_offer,
)
from tests.conftest import SUB, USER

USERS = ["", "a", "b", "ab", USER, "user-42", "ünïcødé", "🙂-emoji"]


@pytest.mark.parametrize("user_id", USERS)
@pytest.mark.parametrize("existing", ["A", "B"])
def test_existing_variant_is_always_returned(user_id, existing):
    assert assign(user_id, existing_variant=existing) == existing
    assert assign(user_id, existing_variant=existing, strategy="secure") == existing


@pytest.mark.parametrize("user_id", USERS)
def test_deterministic_within_process(user_id):
    first = assign(user_id)
    assert all(assign(user_id) == first for _ in range(20))
    assert first in ("A", "B")


def test_hash_matches_known_values():
    # h("a") = 97 (odd), h("b") = 98 (even), h("ab") = 97*31 + 98 = 3105 (odd)
    assert deterministic_variant("") == "A"
    assert deterministic_variant("a") == "B"
    assert deterministic_variant("b") == "A"
    assert deterministic_variant("ab") == "B"


def test_secure_strategy_only_used_when_configured(monkeypatch):
    monkeypatch.setattr("cancelflow.variants.secure_variant", lambda: "B")
    assert assign("b", strategy="secure") == "B"
    assert assign("b") == "A"


def test_secure_variant_produces_labels():
    assert {secure_variant() for _ in range(200)} <= {"A", "B"}


def test_downsell_only_for_b():
    assert should_show_downsell_offer("B")
    assert not should_show_downsell_offer("A")


@pytest.mark.asyncio
async def test_resolve_seeds_exactly_once(gateway, store):
    assigner = VariantAssigner(gateway)

    variant, created = await assigner.resolve(USER, SUB)
    assert created is True
    assert variant == deterministic_variant(USER)
    assert store.calls.count("insert_if_absent") == 1

    again, created = await assigner.resolve(USER, SUB)
    assert (again, created) == (variant, False)
    assert store.calls.count("insert_if_absent") == 1


@pytest.mark.asyncio
async def test_resolve_never_overwrites_stored_variant(gateway, store):
    other = "B" if deterministic_variant(USER) == "A" else "A"
    store.rows.append({"user_id": USER, "subscription_id": SUB, "downsell_variant": other,
                       "updated_at": "2025-01-01T00:00:00+00:00"})

    variant, created = await VariantAssigner(gateway).resolve(USER, SUB)
    assert (variant, created) == (other, False)
    assert "insert_if_absent" not in store.calls


@pytest.mark.asyncio
async def test_concurrent_seed_keeps_first_writer(gateway, store, monkeypatch):
    stored = "B" if deterministic_variant(USER) == "A" else "A"
    calls = {"n": 0}
    real_select = store.select

    async def racing_select(user_id, subscription_id=None):
        # first read sees nothing, then a competing writer lands
        calls["n"] += 1
        if calls["n"] == 1:
            store.rows.append({"user_id": USER, "subscription_id": SUB,
                               "downsell_variant": stored, "updated_at": "2025-01-01"})
            return []
        return await real_select(user_id, subscription_id)

    monkeypatch.setattr(store, "select", racing_select)
    variant, created = await VariantAssigner(gateway).resolve(USER, SUB)
    assert (variant, created) == (stored, False)
    assert len(store.rows) == 1
