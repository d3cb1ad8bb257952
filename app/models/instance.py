"""Workflow instance model."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, Index, Text

from app.database import Base

# Instance lifecycle
STATUS_QUEUED = "queued"
STATUS_RUNNING = "running"
STATUS_COMPLETE = "complete"
STATUS_ERRORED = "errored"
STATUS_TERMINATED = "terminated"

TERMINAL_STATUSES = (STATUS_COMPLETE, STATUS_ERRORED, STATUS_TERMINATED)


class WorkflowInstance(Base):
    """One durable generation run, keyed by the client's session id."""

    __tablename__ = "workflow_instances"

    instance_id = Column(Text, primary_key=True)  # == sessionId
    uid = Column(Text, nullable=False)
    face_keys = Column(JSON, nullable=False)
    office_keys = Column(JSON, nullable=False)
    status = Column(Text, nullable=False, default=STATUS_QUEUED)
    output = Column(JSON)  # {"resultUrls": [...]} once aggregated
    error = Column(Text)
    cancel_requested = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_instances_status", "status"),
        {"schema": None},
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
