"""Generation directive synthesis with a static fallback."""

import logging

import httpx

from app.services.llm_client import LLMClient, LLMResponseError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a professional photography prompt engineer specializing in corporate "
    "headshots and business photography.\n"
    "Create a highly detailed, photorealistic image generation prompt for a corporate "
    "photoshoot session."
)

FALLBACK_PROMPT = (
    "Professional corporate headshot of a business person in a modern Polish office "
    "environment.\n"
    "Natural window light with soft studio fill, shot on Sony A7R V with 85mm lens at f/2.0.\n"
    "Photorealistic, sharp focus on face with beautiful bokeh background, warm professional "
    "color grading."
)


def build_user_prompt(face_count: int, office_count: int) -> str:
    """User instruction parameterized only by reference counts."""
    return f"""Generate a professional corporate photography prompt for a business headshot session.
The session uses {face_count} face reference photo(s) of the person and {office_count} photo(s) of their office/workspace.

Requirements for the prompt:
- Photorealistic, professional corporate headshot
- Natural office lighting (window light + soft studio fill)
- Keep the person's identity, facial expression and clothing exactly as in the references
- Use the referenced office as the setting
- Sharp focus on face, slightly blurred background (bokeh)
- High-end camera quality feel (shot on Sony A7R V, 85mm lens, f/2.0)
- Color grading: clean, professional, slightly warm tones

Generate ONLY the image prompt, nothing else. Make it 2-3 sentences."""


class PromptSynthesizer:
    """Turns reference counts into a natural-language generation directive."""

    MAX_TOKENS = 300
    TEMPERATURE = 0.7

    def __init__(self, llm_client: LLMClient):
        self.llm = llm_client

    def synthesize(self, face_count: int, office_count: int) -> str:
        """
        Ask the chat model for a directive, falling back to a static one.

        Never raises for external failures: any transport error, non-2xx
        response or unusable body yields ``FALLBACK_PROMPT``.
        """
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_user_prompt(face_count, office_count)},
        ]
        try:
            return self.llm.chat_completion(
                messages=messages,
                temperature=self.TEMPERATURE,
                max_tokens=self.MAX_TOKENS,
            )
        except (httpx.HTTPError, LLMResponseError) as e:
            logger.warning(f"Prompt synthesis failed, using fallback prompt: {e}")
            return FALLBACK_PROMPT
