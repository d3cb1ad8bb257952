"""Multimodal image rendering with Gemini."""

import base64
import logging
from typing import Any, List, Optional, Sequence

from google import genai
from google.genai import types

from app.config import settings
from app.schemas.workflow import ReferenceImage

logger = logging.getLogger(__name__)

FACE_INSTRUCTION = (
    "Face reference photos of the person. Preserve this person's facial identity, "
    "facial expression and clothing exactly as shown:"
)
OFFICE_INSTRUCTION = (
    "Office/workspace reference photos. Preserve this environment exactly and use it "
    "as the background/setting:"
)

# Pose and framing only; expression always comes from the references.
VARIATION_INSTRUCTIONS = [
    "Generate variation 1: Looking directly at the camera, head-and-shoulders framing. "
    "Keep the facial expression exactly as in the reference photos.",
    "Generate variation 2: Three-quarter angle towards the camera, head-and-shoulders framing. "
    "Keep the facial expression exactly as in the reference photos.",
    "Generate variation 3: Gaze slightly off-camera, medium shot at the desk or workspace. "
    "Keep the facial expression exactly as in the reference photos.",
    "Generate variation 4: Looking directly at the camera, waist-up framing showing more of the office. "
    "Keep the facial expression exactly as in the reference photos.",
]


class NoImageReturnedError(Exception):
    """Raised when the model response carries no inline image."""


class ImageRenderer:
    """Sends one stateless multimodal request per rendered image."""

    RESPONSE_MODALITIES = ["TEXT", "IMAGE"]

    def __init__(
        self,
        client: Optional[Any] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize the renderer.

        Args:
            client: Pre-built ``genai.Client``; created lazily from settings if omitted
            model: Image model name
            timeout: Request timeout in seconds
        """
        self._client = client
        self.model = model or settings.GEMINI_IMAGE_MODEL
        self.timeout = timeout or settings.IMAGE_TIMEOUT

    @property
    def client(self):
        if self._client is None:
            self._client = genai.Client(
                api_key=settings.GEMINI_API_KEY,
                http_options=types.HttpOptions(timeout=int(self.timeout * 1000)),
            )
        return self._client

    @staticmethod
    def _image_parts(images: Sequence[ReferenceImage]) -> List[types.Part]:
        return [types.Part.from_bytes(data=img.data, mime_type=img.mime_type) for img in images]

    def build_parts(
        self,
        prompt: str,
        variation_instruction: str,
        face_images: Sequence[ReferenceImage],
        office_images: Sequence[ReferenceImage],
    ) -> List[types.Part]:
        """Ordered request parts: faces, office, prompt, variation."""
        parts = [types.Part.from_text(text=FACE_INSTRUCTION)]
        parts.extend(self._image_parts(face_images))
        parts.append(types.Part.from_text(text=OFFICE_INSTRUCTION))
        parts.extend(self._image_parts(office_images))
        parts.append(types.Part.from_text(text=prompt))
        parts.append(types.Part.from_text(text=variation_instruction))
        return parts

    def render(
        self,
        prompt: str,
        variation_instruction: str,
        face_images: Sequence[ReferenceImage],
        office_images: Sequence[ReferenceImage],
    ) -> bytes:
        """
        Render a single image.

        Args:
            prompt: Synthesized generation directive
            variation_instruction: Pose/framing instruction for this image
            face_images: Face reference payloads
            office_images: Office reference payloads

        Returns:
            Image bytes of the first inline image in the response

        Raises:
            NoImageReturnedError: If the response has no image part
        """
        parts = self.build_parts(prompt, variation_instruction, face_images, office_images)
        return self._generate(parts)

    def render_freeform(self, prompt: str, reference_images: Sequence[ReferenceImage] = ()) -> bytes:
        """Render one image from a free-form prompt and optional references."""
        parts = self._image_parts(reference_images)
        parts.append(types.Part.from_text(text=prompt))
        return self._generate(parts)

    def _generate(self, parts: List[types.Part]) -> bytes:
        logger.info(f"Image request to {self.model} with {len(parts)} parts")
        response = self.client.models.generate_content(
            model=self.model,
            contents=[types.Content(role="user", parts=parts)],
            config=types.GenerateContentConfig(response_modalities=self.RESPONSE_MODALITIES),
        )

        image = extract_first_image(response)
        if image is None:
            raise NoImageReturnedError(f"Model {self.model} returned no image")

        logger.info(f"Image response: {len(image)} bytes")
        return image


def extract_first_image(response: Any) -> Optional[bytes]:
    """Scan candidate parts for the first inline image payload."""
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        if content is None:
            continue
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if inline is None or not inline.data:
                text = getattr(part, "text", None)
                if text:
                    logger.debug(f"Model text part: {text[:100]}")
                continue
            data = inline.data
            if isinstance(data, str):
                data = base64.b64decode(data)
            return data
    return None


_renderer: Optional[ImageRenderer] = None


def get_image_renderer() -> ImageRenderer:
    """Return the process-wide renderer built from settings."""
    global _renderer
    if _renderer is None:
        _renderer = ImageRenderer()
    return _renderer
