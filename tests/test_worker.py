"""Tests for the background worker."""

from conftest import FakeRenderer

from app.models.instance import WorkflowInstance
from app.orchestrator import submit_instance
from app.schemas.workflow import GenerationRequest
from app.worker import Worker


def _queue(db, session_id, reference_keys):
    submit_instance(
        db,
        GenerationRequest(
            session_id=session_id,
            uid="user-1",
            face_keys=reference_keys["face_keys"],
            office_keys=reference_keys["office_keys"],
        ),
    )


def _status(session_factory, instance_id):
    db = session_factory()
    try:
        return db.get(WorkflowInstance, instance_id).status
    finally:
        db.close()


def test_claim_moves_instance_to_running(test_db, session_factory, reference_keys, make_orchestrator):
    _queue(test_db, "one", reference_keys)
    _queue(test_db, "two", reference_keys)
    worker = Worker(make_orchestrator(), session_factory=session_factory, poll_interval=0)

    claimed = {worker.claim_next(), worker.claim_next()}

    assert claimed == {"one", "two"}
    assert worker.claim_next() is None
    assert _status(session_factory, "one") == "running"
    assert _status(session_factory, "two") == "running"


def test_run_once_completes_instance(test_db, session_factory, reference_keys, make_orchestrator):
    _queue(test_db, "abc", reference_keys)
    worker = Worker(make_orchestrator(), session_factory=session_factory, poll_interval=0)

    assert worker.run_once() is True
    assert worker.run_once() is False
    assert _status(session_factory, "abc") == "complete"


def test_recover_interrupted_resumes(test_db, session_factory, reference_keys, make_orchestrator):
    """Instances left running by a dead process are re-queued and finished."""
    _queue(test_db, "abc", reference_keys)
    worker = Worker(make_orchestrator(), session_factory=session_factory, poll_interval=0)
    assert worker.claim_next() == "abc"

    assert worker.recover_interrupted() == 1
    assert _status(session_factory, "abc") == "queued"

    renderer = FakeRenderer()
    Worker(make_orchestrator(renderer=renderer), session_factory=session_factory).run_once()
    assert _status(session_factory, "abc") == "complete"
    assert renderer.variations == [1, 2, 3, 4]


def test_unexpected_error_marks_instance_errored(test_db, session_factory, reference_keys):
    _queue(test_db, "abc", reference_keys)

    class BrokenOrchestrator:
        def run(self, instance_id):
            raise RuntimeError("database went away")

    worker = Worker(BrokenOrchestrator(), session_factory=session_factory)
    worker.run_once()

    db = session_factory()
    try:
        instance = db.get(WorkflowInstance, "abc")
        assert instance.status == "errored"
        assert instance.error == "database went away"
    finally:
        db.close()
