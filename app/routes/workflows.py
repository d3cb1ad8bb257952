"""Workflow routes."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from google.genai import errors as genai_errors
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.instance import WorkflowInstance
from app.orchestrator import request_termination, submit_instance
from app.schemas.workflow import (
    CustomGenerateRequest,
    CustomGenerateResponse,
    GenerateResponse,
    GenerationRequest,
    StatusResponse,
)
from app.services.blob_store import BlobStore, custom_key, get_blob_store
from app.services.image_renderer import ImageRenderer, NoImageReturnedError, get_image_renderer
from app.services.references import ReferenceFetcher, ReferenceNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["workflows"])


def _status_response(instance: WorkflowInstance) -> StatusResponse:
    return StatusResponse(
        status=instance.status,
        output=instance.output,
        error=instance.error,
    )


@router.post("/generate", response_model=GenerateResponse, status_code=202)
def generate(
    data: GenerationRequest,
    db: Session = Depends(get_db),
):
    """Queue a generation run for the session, or re-attach to its instance."""
    instance, _ = submit_instance(db, data)
    return GenerateResponse(instance_id=instance.instance_id, status=instance.status)


@router.get("/status", response_model=StatusResponse)
def get_status(
    instance_id: str = Query(..., alias="instanceId", min_length=1),
    db: Session = Depends(get_db),
):
    """Return the instance's status, output and error as recorded."""
    instance = db.get(WorkflowInstance, instance_id)
    if not instance:
        raise HTTPException(status_code=404, detail="Instance not found")

    return _status_response(instance)


@router.post("/terminate", response_model=StatusResponse)
def terminate(
    instance_id: str = Query(..., alias="instanceId", min_length=1),
    db: Session = Depends(get_db),
):
    """Request cancellation; honored at the next step boundary."""
    instance = request_termination(db, instance_id)
    if not instance:
        raise HTTPException(status_code=404, detail="Instance not found")

    return _status_response(instance)


@router.post("/generate-custom", response_model=CustomGenerateResponse)
def generate_custom(
    data: CustomGenerateRequest,
    blob_store: BlobStore = Depends(get_blob_store),
    renderer: ImageRenderer = Depends(get_image_renderer),
):
    """Render a single free-form image synchronously."""
    logger.info(f"Custom generation with {len(data.reference_keys or [])} reference(s): {data.prompt[:100]}")

    try:
        references = ReferenceFetcher(blob_store).fetch(data.reference_keys or [])
    except ReferenceNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    try:
        image = renderer.render_freeform(data.prompt, references)
    except NoImageReturnedError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except genai_errors.APIError as e:
        logger.error(f"Image model error: {e}")
        raise HTTPException(status_code=502, detail=f"Image model error: {e}")

    key = custom_key()
    blob_store.put(key, image, "image/jpeg")

    return CustomGenerateResponse(key=key, url=blob_store.public_url(key))
