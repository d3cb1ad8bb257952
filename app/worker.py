"""Background worker for executing workflow instances."""

import logging
import threading
import time
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.config import settings
from app.database import SessionLocal, ensure_schema
from app.models.instance import STATUS_ERRORED, STATUS_QUEUED, STATUS_RUNNING, WorkflowInstance
from app.orchestrator import GenerationOrchestrator
from app.services.blob_store import get_blob_store
from app.services.image_renderer import ImageRenderer
from app.services.llm_client import LLMClient
from app.services.prompt_synthesizer import PromptSynthesizer

logger = logging.getLogger(__name__)


def build_orchestrator(session_factory: Callable[[], Session] = SessionLocal) -> GenerationOrchestrator:
    """Wire the orchestrator from application settings."""
    return GenerationOrchestrator(
        session_factory=session_factory,
        blob_store=get_blob_store(),
        synthesizer=PromptSynthesizer(LLMClient()),
        renderer=ImageRenderer(),
    )


class Worker:
    """Claims queued instances and runs them to completion."""

    def __init__(
        self,
        orchestrator: GenerationOrchestrator,
        session_factory: Callable[[], Session] = SessionLocal,
        poll_interval: Optional[float] = None,
    ):
        """Initialize worker."""
        self.orchestrator = orchestrator
        self.session_factory = session_factory
        self.poll_interval = poll_interval if poll_interval is not None else settings.WORKER_POLL_INTERVAL

    def recover_interrupted(self) -> int:
        """Re-queue instances left running by a previous process.

        They resume from their committed steps when claimed again.
        """
        db = self.session_factory()
        try:
            result = db.execute(
                update(WorkflowInstance)
                .where(WorkflowInstance.status == STATUS_RUNNING)
                .values(status=STATUS_QUEUED, updated_at=datetime.utcnow())
            )
            db.commit()
            if result.rowcount:
                logger.warning(f"Re-queued {result.rowcount} interrupted instance(s)")
            return result.rowcount
        finally:
            db.close()

    def claim_next(self) -> Optional[str]:
        """Atomically move the oldest queued instance to running."""
        db = self.session_factory()
        try:
            candidates = (
                db.query(WorkflowInstance.instance_id)
                .filter(WorkflowInstance.status == STATUS_QUEUED)
                .order_by(WorkflowInstance.created_at)
                .limit(10)
                .all()
            )
            for (instance_id,) in candidates:
                result = db.execute(
                    update(WorkflowInstance)
                    .where(
                        WorkflowInstance.instance_id == instance_id,
                        WorkflowInstance.status == STATUS_QUEUED,
                    )
                    .values(status=STATUS_RUNNING, updated_at=datetime.utcnow())
                )
                db.commit()
                if result.rowcount == 1:
                    return instance_id
            return None
        finally:
            db.close()

    def process(self, instance_id: str) -> Optional[str]:
        """Run one claimed instance."""
        logger.info(f"Processing instance {instance_id}")
        try:
            return self.orchestrator.run(instance_id)
        except Exception as e:
            logger.error(f"Instance {instance_id} crashed: {e}", exc_info=True)
            self._mark_errored(instance_id, str(e))
            return STATUS_ERRORED

    def _mark_errored(self, instance_id: str, error: str) -> None:
        db = self.session_factory()
        try:
            db.execute(
                update(WorkflowInstance)
                .where(WorkflowInstance.instance_id == instance_id)
                .values(status=STATUS_ERRORED, error=error)
            )
            db.commit()
        finally:
            db.close()

    def run_once(self) -> bool:
        """Claim and process a single instance. Returns False when idle."""
        instance_id = self.claim_next()
        if instance_id is None:
            return False
        self.process(instance_id)
        return True

    def run(self, stop_event: Optional[threading.Event] = None):
        """Main worker loop.

        Args:
            stop_event: Optional threading.Event to signal worker to stop
        """
        logger.info("Worker loop started")

        while True:
            if stop_event and stop_event.is_set():
                logger.info("Worker stop signal received")
                break

            try:
                if not self.run_once():
                    if stop_event:
                        stop_event.wait(self.poll_interval)
                    else:
                        time.sleep(self.poll_interval)

            except KeyboardInterrupt:
                logger.info("Worker shutting down")
                break
            except Exception as e:
                logger.error(f"Worker error: {e}", exc_info=True)
                time.sleep(self.poll_interval)


def start_workers(stop_event: threading.Event, concurrency: Optional[int] = None) -> List[threading.Thread]:
    """Recover interrupted instances and start worker threads.

    Each thread runs one instance at a time; distinct instances run
    concurrently across threads.
    """
    orchestrator = build_orchestrator()
    Worker(orchestrator).recover_interrupted()

    threads = []
    for i in range(concurrency or settings.WORKER_CONCURRENCY):
        worker = Worker(orchestrator)
        thread = threading.Thread(
            target=worker.run,
            kwargs={"stop_event": stop_event},
            name=f"workflow-worker-{i}",
            daemon=True,
        )
        thread.start()
        threads.append(thread)

    logger.info(f"Started {len(threads)} worker thread(s)")
    return threads


def main():
    """Entry point for standalone worker."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    ensure_schema()

    stop_event = threading.Event()
    threads = start_workers(stop_event)
    try:
        for thread in threads:
            thread.join()
    except KeyboardInterrupt:
        logger.info("Worker shutting down")
        stop_event.set()


if __name__ == "__main__":
    main()
