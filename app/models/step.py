"""Committed step results for workflow instances."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Text, UniqueConstraint

from app.database import Base

STEP_COMMITTED = "committed"
STEP_FAILED = "failed"  # retries exhausted, result recorded as absent


class WorkflowStep(Base):
    """Durable outcome of a single named step.

    A row exists only once the step has finished (successfully or by
    exhausting its retries). Its presence is what lets a resumed run skip
    the step.
    """

    __tablename__ = "workflow_steps"

    step_pk = Column(Integer, primary_key=True, autoincrement=True)
    instance_id = Column(
        Text,
        ForeignKey("workflow_instances.instance_id", ondelete="CASCADE"),
        nullable=False,
    )
    step_name = Column(Text, nullable=False)  # 'generate-prompt', 'generate-variation-1', ...
    status = Column(Text, nullable=False)  # 'committed', 'failed'
    result = Column(Text)  # prompt text or result blob key; NULL when failed
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text)
    committed_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("instance_id", "step_name", name="uq_steps_instance_step"),
        {"schema": None},
    )
