"""Durable generation workflow.

An instance runs ``generate-prompt`` followed by one ``generate-variation-{i}``
step per variation instruction, then aggregates the committed result keys
into ``output.resultUrls``. Every step outcome is written to
``workflow_steps`` in its own transaction before the next step starts, and a
(re)started run skips any step that already has a row. Cancellation is only
observed between steps.
"""

import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.instance import (
    STATUS_COMPLETE,
    STATUS_ERRORED,
    STATUS_QUEUED,
    STATUS_RUNNING,
    STATUS_TERMINATED,
    TERMINAL_STATUSES,
    WorkflowInstance,
)
from app.models.step import STEP_COMMITTED, STEP_FAILED, WorkflowStep
from app.schemas.workflow import GeneratedArtifact, GenerationRequest
from app.services.blob_store import BlobStore
from app.services.image_renderer import VARIATION_INSTRUCTIONS, ImageRenderer
from app.services.prompt_synthesizer import PromptSynthesizer
from app.services.references import ReferenceFetcher
from app.steps.base import StepFailedError
from app.steps.prompt import PROMPT_STEP, PromptStep
from app.steps.variation import VariationStep

logger = logging.getLogger(__name__)


def submit_instance(db: Session, request: GenerationRequest) -> Tuple[WorkflowInstance, bool]:
    """
    Create a queued instance for the session, or re-attach to the existing one.

    Args:
        db: Database session
        request: Validated generation request

    Returns:
        Tuple of (instance, created)
    """
    existing = db.get(WorkflowInstance, request.session_id)
    if existing is not None:
        logger.info(f"[{request.session_id}] Re-attaching to existing instance ({existing.status})")
        return existing, False

    instance = WorkflowInstance(
        instance_id=request.session_id,
        uid=request.uid,
        face_keys=list(request.face_keys),
        office_keys=list(request.office_keys),
        status=STATUS_QUEUED,
        cancel_requested=False,
    )
    db.add(instance)
    try:
        db.commit()
    except IntegrityError:
        # Concurrent submission of the same session won the insert
        db.rollback()
        existing = db.get(WorkflowInstance, request.session_id)
        logger.info(f"[{request.session_id}] Concurrent submission, re-attaching")
        return existing, False

    logger.info(
        f"[{request.session_id}] Queued instance for user {request.uid} "
        f"(face refs: {len(request.face_keys)}, office refs: {len(request.office_keys)})"
    )
    return instance, True


def request_termination(db: Session, instance_id: str) -> Optional[WorkflowInstance]:
    """
    Record an external cancellation request.

    A queued instance is terminated at once. A running one is terminated by
    the orchestrator at the next step boundary. Terminal instances are left
    untouched.

    Returns:
        The instance, or None if unknown
    """
    instance = db.get(WorkflowInstance, instance_id)
    if instance is None:
        return None

    db.execute(
        update(WorkflowInstance)
        .where(
            WorkflowInstance.instance_id == instance_id,
            WorkflowInstance.status.notin_(TERMINAL_STATUSES),
        )
        .values(cancel_requested=True)
    )
    # Workers only claim queued rows, so this cannot race a claim
    db.execute(
        update(WorkflowInstance)
        .where(
            WorkflowInstance.instance_id == instance_id,
            WorkflowInstance.status == STATUS_QUEUED,
        )
        .values(status=STATUS_TERMINATED)
    )
    db.commit()
    db.refresh(instance)
    logger.info(f"[{instance_id}] Termination requested (status: {instance.status})")
    return instance


class GenerationOrchestrator:
    """Executes workflow instances step by step against durable state."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        blob_store: BlobStore,
        synthesizer: PromptSynthesizer,
        renderer: ImageRenderer,
        sleep: Callable[[float], None] = time.sleep,
        prompt_attempts: Optional[int] = None,
        prompt_backoff: Optional[float] = None,
        variation_attempts: Optional[int] = None,
        variation_backoff: Optional[float] = None,
    ):
        """Initialize the orchestrator and its step registry."""
        self.session_factory = session_factory
        self.blob_store = blob_store
        self.fetcher = ReferenceFetcher(blob_store)

        self.prompt_step = PromptStep(
            synthesizer,
            max_attempts=prompt_attempts,
            backoff=prompt_backoff,
            sleep=sleep,
        )
        self.variation_steps = [
            VariationStep(
                index,
                instruction,
                self.fetcher,
                renderer,
                blob_store,
                max_attempts=variation_attempts,
                backoff=variation_backoff,
                sleep=sleep,
            )
            for index, instruction in enumerate(VARIATION_INSTRUCTIONS, start=1)
        ]

    def run(self, instance_id: str) -> Optional[str]:
        """
        Run an instance to a terminal state, skipping committed steps.

        Args:
            instance_id: Instance (session) id

        Returns:
            Final status, or None if the instance does not exist
        """
        db = self.session_factory()
        try:
            instance = db.get(WorkflowInstance, instance_id)
            if instance is None:
                logger.error(f"[{instance_id}] Unknown instance")
                return None
            if instance.is_terminal:
                logger.info(f"[{instance_id}] Already {instance.status}, nothing to do")
                return instance.status

            if self._cancel_requested(db, instance):
                return self._finish(db, instance, STATUS_TERMINATED)

            if instance.status != STATUS_RUNNING:
                instance.status = STATUS_RUNNING
                db.commit()

            committed = self._load_steps(db, instance_id)
            if committed:
                logger.info(f"[{instance_id}] Resuming with committed steps: {sorted(committed)}")

            payload = {
                "instance_id": instance_id,
                "face_keys": list(instance.face_keys),
                "office_keys": list(instance.office_keys),
            }

            # generate-prompt
            prompt_row = committed.get(PROMPT_STEP)
            if prompt_row is None:
                try:
                    prompt, attempts = self.prompt_step.execute(payload)
                except StepFailedError as e:
                    self._record_step(db, instance_id, PROMPT_STEP, STEP_FAILED, None, e.attempts, str(e.cause))
                    return self._finish(db, instance, STATUS_ERRORED, error=str(e))
                self._record_step(db, instance_id, PROMPT_STEP, STEP_COMMITTED, prompt, attempts)
            elif prompt_row.status != STEP_COMMITTED:
                return self._finish(
                    db, instance, STATUS_ERRORED, error=prompt_row.last_error or "Prompt generation failed"
                )
            else:
                prompt = prompt_row.result
            payload["prompt"] = prompt

            # generate-variation-{i}
            for step in self.variation_steps:
                if self._cancel_requested(db, instance):
                    return self._finish(db, instance, STATUS_TERMINATED)

                if step.name in committed:
                    logger.info(f"[{instance_id}] Skipping committed step {step.name}")
                    continue

                try:
                    key, attempts = step.execute(payload)
                except StepFailedError as e:
                    # Drop-and-continue: the variation is omitted from the output
                    logger.warning(f"[{instance_id}] Dropping variation {step.index}: {e.cause}")
                    self._record_step(db, instance_id, step.name, STEP_FAILED, None, e.attempts, str(e.cause))
                    continue
                self._record_step(db, instance_id, step.name, STEP_COMMITTED, key, attempts)

            # aggregate
            output = self.aggregate(self._load_steps(db, instance_id))
            logger.info(f"[{instance_id}] Generated {len(output['resultUrls'])} images")
            return self._finish(db, instance, STATUS_COMPLETE, output=output)
        finally:
            db.close()

    def artifacts(self, steps: Dict[str, WorkflowStep]) -> List[GeneratedArtifact]:
        """Committed variation results, in variation order."""
        artifacts = []
        for step in self.variation_steps:
            row = steps.get(step.name)
            if row is not None and row.status == STEP_COMMITTED and row.result:
                artifacts.append(GeneratedArtifact(key=row.result, variation_index=step.index))
        return artifacts

    def aggregate(self, steps: Dict[str, WorkflowStep]) -> Dict[str, List[str]]:
        """Build the run output from committed state only."""
        return {"resultUrls": [self.blob_store.public_url(a.key) for a in self.artifacts(steps)]}

    @staticmethod
    def _load_steps(db: Session, instance_id: str) -> Dict[str, WorkflowStep]:
        rows = db.query(WorkflowStep).filter(WorkflowStep.instance_id == instance_id).all()
        return {row.step_name: row for row in rows}

    @staticmethod
    def _record_step(
        db: Session,
        instance_id: str,
        step_name: str,
        status: str,
        result: Optional[str],
        attempts: int,
        error: Optional[str] = None,
    ) -> None:
        """Commit a step outcome. Must complete before the next step starts."""
        db.add(
            WorkflowStep(
                instance_id=instance_id,
                step_name=step_name,
                status=status,
                result=result,
                attempts=attempts,
                last_error=error,
            )
        )
        db.commit()
        logger.info(f"[{instance_id}] Committed step {step_name} ({status}, attempts: {attempts})")

    @staticmethod
    def _cancel_requested(db: Session, instance: WorkflowInstance) -> bool:
        db.refresh(instance)
        return bool(instance.cancel_requested)

    @staticmethod
    def _finish(
        db: Session,
        instance: WorkflowInstance,
        status: str,
        output: Optional[Dict] = None,
        error: Optional[str] = None,
    ) -> str:
        instance.status = status
        instance.output = output
        instance.error = error
        db.commit()

        if status == STATUS_ERRORED:
            logger.error(f"[{instance.instance_id}] Instance errored: {error}")
        else:
            logger.info(f"[{instance.instance_id}] Instance {status}")
        return status
