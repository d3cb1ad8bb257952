"""SQLAlchemy ORM models."""

from app.models.instance import WorkflowInstance
from app.models.step import WorkflowStep

__all__ = [
    "WorkflowInstance",
    "WorkflowStep",
]
