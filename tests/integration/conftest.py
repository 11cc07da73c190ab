import pytest

from mdsflow.actions import RegistryActionRunner
from mdsflow.definitions import WorkflowCatalog
from mdsflow.engine import EventStream, WorkflowEngine
from mdsflow.persistence import InMemoryStateStore


@pytest.fixture
def store():
    return InMemoryStateStore()


@pytest.fixture
def received():
    return []


@pytest.fixture
def events(received):
    stream = EventStream()
    stream.subscribe(received.append)
    return stream


@pytest.fixture
def make_engine(store, events):
    """Build an engine over the shared store with extra action handlers."""

    def _make(*definitions, handlers=None, **kwargs):
        kwargs.setdefault("events", events)
        return WorkflowEngine(
            kwargs.pop("store", store),
            WorkflowCatalog(definitions),
            action_runner=RegistryActionRunner(handlers=handlers),
            **kwargs,
        )

    return _make
