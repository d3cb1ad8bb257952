"""Azure OpenAI chat completion client."""

import hashlib
import json
import logging
from typing import Dict, List, Optional

import httpx

from app.config import settings

logger = logging.getLogger(__name__)


class LLMResponseError(Exception):
    """Raised when a 2xx response carries no usable completion."""


class LLMClient:
    """Client for an Azure OpenAI chat deployment."""

    def __init__(
        self,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        deployment: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the LLM client, defaulting to application settings."""
        self.endpoint = (endpoint if endpoint is not None else settings.AZURE_OPENAI_ENDPOINT).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.AZURE_OPENAI_API_KEY
        self.deployment = deployment or settings.AZURE_OPENAI_DEPLOYMENT_NAME
        self.api_version = api_version or settings.AZURE_OPENAI_API_VERSION
        self.timeout = timeout or settings.PROMPT_TIMEOUT
        self.transport = transport

    def _hash_text(self, text: str) -> str:
        """Hash text using SHA256."""
        return hashlib.sha256(text.encode()).hexdigest()

    def _build_headers(self) -> Dict[str, str]:
        """Build HTTP headers for Azure OpenAI."""
        return {
            "api-key": self.api_key,
            "Content-Type": "application/json",
        }

    @property
    def url(self) -> str:
        return f"{self.endpoint}/openai/deployments/{self.deployment}/chat/completions"

    def chat_completion(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 300,
    ) -> str:
        """
        Call the chat completions API once.

        Args:
            messages: List of message dicts with 'role' and 'content'
            temperature: Sampling temperature
            max_tokens: Maximum tokens in response

        Returns:
            Response content as string

        Raises:
            httpx.HTTPError: On transport errors, timeouts and non-2xx responses
            LLMResponseError: If the body is malformed or the content is empty
        """
        payload = {
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        request_hash = self._hash_text(json.dumps(payload, sort_keys=True))
        logger.info(f"LLM request to {self.deployment}, hash: {request_hash[:16]}")

        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            response = client.post(
                self.url,
                params={"api-version": self.api_version},
                headers=self._build_headers(),
                json=payload,
            )

            if response.status_code >= 400:
                logger.warning(f"Error {response.status_code} from Azure OpenAI: {response.text[:200]}")
            response.raise_for_status()

            try:
                result = response.json()
                content = result["choices"][0]["message"]["content"]
            except (ValueError, KeyError, IndexError, TypeError) as e:
                raise LLMResponseError(f"Malformed chat completion body: {e}") from e

            if not isinstance(content, str) or not content.strip():
                raise LLMResponseError("Chat completion returned empty content")

            response_hash = self._hash_text(content)
            logger.info(f"LLM response hash: {response_hash[:16]}")

            return content.strip()
