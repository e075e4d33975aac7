"""
Shared fixtures
───────────────
• No test touches Supabase: the gateway runs on InMemoryCancellationStore,
  and the Supabase store tests hand it a mocked AsyncClient.
• Settings are rebuilt from a clean environment for every test.
"""
import pytest

from cancelflow.config import get_settings
from cancelflow.flow import CANCELLATION_FLOW
from cancelflow.gateway import PersistenceGateway
from cancelflow.memory_store import InMemoryCancellationStore
from cancelflow.navigator import Navigator
from cancelflow.state import FlowState

USER = "550e8400-e29b-41d4-a716-446655440001"
SUB = "550e8400-e29b-41d4-a716-446655440001"


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    for var in ("CANCELFLOW_LONG_TEXT_MIN_LENGTH", "CANCELFLOW_VARIANT_STRATEGY",
                "CANCELFLOW_REQUEST_TIMEOUT", "CANCELFLOW_FLOW_PATH"):
        monkeypatch.delenv(var, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def graph():
    return CANCELLATION_FLOW


@pytest.fixture
def make_nav(graph):
    def _make(variant="A"):
        nav = Navigator(graph, FlowState())
        nav.reset(variant)
        return nav
    return _make


@pytest.fixture
def store():
    s = InMemoryCancellationStore()
    s.add_subscription(SUB, USER, monthly_price=2500)
    return s


@pytest.fixture
def gateway(store):
    return PersistenceGateway(store, timeout=1.0)
