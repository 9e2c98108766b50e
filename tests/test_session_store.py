from conftest import TOKEN
from proposal_acceptance.gateway import InMemoryProposalGateway
from proposal_acceptance.session_store import WorkflowSessionStore
from proposal_acceptance.workflow import ProposalWorkflow


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def new_workflow() -> ProposalWorkflow:
    return ProposalWorkflow(TOKEN, InMemoryProposalGateway())


def test_idle_sessions_are_evicted_and_closed():
    clock = FakeClock()
    store = WorkflowSessionStore(ttl=60, clock=clock)
    idle_id, idle = store.create_session(new_workflow)
    clock.now += 30
    busy_id, _ = store.create_session(new_workflow)

    clock.now += 45
    assert store.get_session(busy_id) is not None

    assert store.get_session(idle_id) is None
    assert idle.closed
    assert len(store) == 1


def test_access_keeps_a_session_alive():
    clock = FakeClock()
    store = WorkflowSessionStore(ttl=60, clock=clock)
    session_id, workflow = store.create_session(new_workflow)

    for _ in range(5):
        clock.now += 50
        assert store.get_session(session_id) is workflow

    assert not workflow.closed


def test_sweep_runs_on_create():
    clock = FakeClock()
    store = WorkflowSessionStore(ttl=10, clock=clock)
    for _ in range(3):
        store.create_session(new_workflow)

    clock.now += 11
    store.create_session(new_workflow)

    assert len(store) == 1


def test_discard_closes_workflow():
    store = WorkflowSessionStore()
    session_id, workflow = store.create_session(new_workflow)

    assert store.discard_session(session_id)
    assert workflow.closed
    assert not store.discard_session(session_id)
