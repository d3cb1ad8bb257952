"""generate-prompt step."""

import logging
from typing import Any, Dict

from tenacity import wait_exponential

from app.config import settings
from app.steps.base import BaseStep
from app.services.prompt_synthesizer import PromptSynthesizer

logger = logging.getLogger(__name__)

PROMPT_STEP = "generate-prompt"


class PromptStep(BaseStep):
    """Synthesizes the generation directive shared by all variations."""

    name = PROMPT_STEP

    def __init__(self, synthesizer: PromptSynthesizer, max_attempts: int = None, backoff: float = None, **kwargs):
        super().__init__(**kwargs)
        self.synthesizer = synthesizer
        self.max_attempts = max_attempts or settings.PROMPT_STEP_ATTEMPTS
        self.backoff = backoff if backoff is not None else settings.PROMPT_STEP_BACKOFF

    def _wait(self):
        # 5s, 10s, 20s, ...
        return wait_exponential(multiplier=self.backoff)

    def _run(self, payload: Dict[str, Any]) -> str:
        face_count = min(len(payload["face_keys"]), settings.MAX_FACE_REFS)
        office_count = min(len(payload["office_keys"]), settings.MAX_OFFICE_REFS)
        prompt = self.synthesizer.synthesize(face_count, office_count)
        logger.info(f"[{payload['instance_id']}] Prompt generated: {prompt[:100]}...")
        return prompt
