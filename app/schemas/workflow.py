"""Workflow request/response schemas."""

from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

BlobKey = Annotated[str, Field(min_length=1)]


class CamelModel(BaseModel):
    """Base model exchanging camelCase JSON with browser clients."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerationRequest(CamelModel):
    """Input to an orchestrator run."""

    session_id: str = Field(min_length=1, pattern=r"^[A-Za-z0-9_-]+$")
    uid: str = Field(min_length=1)
    face_keys: List[BlobKey] = Field(min_length=1)
    office_keys: List[BlobKey] = Field(min_length=1)


class GenerateResponse(CamelModel):
    """Handle returned once an instance has been queued or re-attached."""

    instance_id: str
    status: str


class WorkflowOutput(CamelModel):
    """Aggregated result of a completed run."""

    result_urls: List[str]


class StatusResponse(CamelModel):
    """Instance state exactly as the orchestrator recorded it."""

    status: str
    output: Optional[WorkflowOutput] = None
    error: Optional[str] = None


class ReferenceImage(BaseModel):
    """Decoded reference payload. Never persisted in step state."""

    data: bytes
    mime_type: str


class GeneratedArtifact(BaseModel):
    """One rendered image stored in the blob store."""

    key: str
    variation_index: int


class CustomGenerateRequest(CamelModel):
    """Free-form single image request."""

    prompt: str = Field(min_length=1)
    reference_keys: Optional[List[BlobKey]] = None


class CustomGenerateResponse(CamelModel):
    """Stored free-form image."""

    key: str
    url: str
    success: bool = True
