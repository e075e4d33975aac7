# cancelflow/__init__.py
"""
Package marker + explicit export of the pieces callers wire together:
the flow graph, a session controller, and the persistence gateway.
"""
from cancelflow.flow import CANCELLATION_FLOW, default_graph, load_step_graph  # noqa: F401
from cancelflow.gateway import PersistenceGateway  # noqa: F401
from cancelflow.session import FlowSession  # noqa: F401
from cancelflow.store import SupabaseCancellationStore  # noqa: F401
