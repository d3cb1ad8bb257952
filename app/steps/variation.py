"""generate-variation-{i} steps."""

import logging
from typing import Any, Dict

from tenacity import wait_incrementing

from app.config import settings
from app.services.blob_store import BlobStore, result_key
from app.services.image_renderer import ImageRenderer
from app.services.references import ReferenceFetcher, ReferenceNotFoundError
from app.steps.base import BaseStep

logger = logging.getLogger(__name__)

RESULT_CONTENT_TYPE = "image/jpeg"


def variation_step_name(index: int) -> str:
    return f"generate-variation-{index}"


class VariationStep(BaseStep):
    """Renders one variation and stores it under its deterministic key.

    References are fetched again on every attempt so the durable result
    stays a single key string.
    """

    # A missing object will not appear on retry
    no_retry_on = (ReferenceNotFoundError,)

    def __init__(
        self,
        index: int,
        instruction: str,
        fetcher: ReferenceFetcher,
        renderer: ImageRenderer,
        blob_store: BlobStore,
        max_attempts: int = None,
        backoff: float = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.index = index
        self.name = variation_step_name(index)
        self.instruction = instruction
        self.fetcher = fetcher
        self.renderer = renderer
        self.blob_store = blob_store
        self.max_attempts = max_attempts or settings.VARIATION_STEP_ATTEMPTS
        self.backoff = backoff if backoff is not None else settings.VARIATION_STEP_BACKOFF

    def _wait(self):
        # 10s, 20s, 30s, ...
        return wait_incrementing(start=self.backoff, increment=self.backoff)

    def _run(self, payload: Dict[str, Any]) -> str:
        instance_id = payload["instance_id"]

        face_images = self.fetcher.fetch(payload["face_keys"][: settings.MAX_FACE_REFS])
        office_images = self.fetcher.fetch(payload["office_keys"][: settings.MAX_OFFICE_REFS])

        image = self.renderer.render(payload["prompt"], self.instruction, face_images, office_images)

        key = result_key(instance_id, self.index)
        self.blob_store.put(key, image, RESULT_CONTENT_TYPE)
        logger.info(f"[{instance_id}] Variation {self.index} stored at {key}")
        return key
