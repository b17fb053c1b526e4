"""Vision model client for photo classification and captioning."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import httpx

from portfolio_pipeline.core.config import VisionConfig, get_config
from portfolio_pipeline.core.exceptions import AnalysisError
from portfolio_pipeline.core.logger import get_logger
from portfolio_pipeline.models.photo import TokenUsage
from portfolio_pipeline.utils.image import encode_image

logger = get_logger(__name__)


@dataclass
class VisionResponse:
    """Raw text returned by the model plus its reported token usage."""
    text: str
    model: str
    usage: TokenUsage = field(default_factory=TokenUsage)


class VisionClient:
    """Client for a local (Ollama) or hosted (OpenAI-compatible) vision model."""

    def __init__(
        self,
        config: Optional[VisionConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize vision client."""
        self.config = config or get_config().vision
        self.timeout = httpx.Timeout(self.config.timeout)
        self._transport = transport

        if self.config.is_local:
            logger.info(f"Initialized vision client: Ollama ({self.config.ollama_model}) at {self.config.ollama_url}")
        else:
            logger.info(f"Initialized vision client: OpenAI ({self.config.openai_model})")

    @property
    def model(self) -> str:
        return self.config.model

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def check_connection(self) -> bool:
        """Check if the configured provider is reachable."""
        try:
            async with self._client() as client:
                if self.config.is_local:
                    response = await client.get(f"{self.config.ollama_url.rstrip('/')}/api/tags")
                else:
                    base_url = self.config.openai_url.split("/chat/completions")[0]
                    response = await client.get(f"{base_url}/models", headers=self._auth_headers())
                response.raise_for_status()
                return True

        except httpx.HTTPError as e:
            logger.error(f"Failed to connect to vision provider: {e}")
            return False

    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {(self.config.api_key or '').strip()}"}

    async def analyze_image(
        self,
        image_path: Union[str, Path],
        prompt: str,
        max_tokens: Optional[int] = None,
    ) -> VisionResponse:
        """Send one image and prompt to the model and return its text response."""
        image_path = Path(image_path)

        try:
            base64_image = encode_image(image_path, max_edge=self.config.max_image_edge)
        except Exception as e:
            raise AnalysisError(f"Could not read image {image_path.name}: {e}") from e

        logger.debug(f"Analyzing image {image_path} with model {self.model}")

        if self.config.is_local:
            response = await self._ollama_chat(prompt, base64_image)
        else:
            response = await self._openai_chat(prompt, base64_image, max_tokens or self.config.max_tokens)

        if not response.text.strip():
            raise AnalysisError("Empty response from model")

        return response

    async def _ollama_chat(self, prompt: str, base64_image: str) -> VisionResponse:
        request_data = {
            "model": self.config.ollama_model,
            "messages": [{
                "role": "user",
                "content": prompt,
                "images": [base64_image],
            }],
            "stream": False,
            "options": {"temperature": self.config.temperature},
        }

        async with self._client() as client:
            response = await client.post(f"{self.config.ollama_url.rstrip('/')}/api/chat", json=request_data)

        if response.is_error:
            raise AnalysisError(f"Ollama error: {response.status_code} - {response.text}")

        result = response.json()
        content = (result.get("message") or {}).get("content") or ""

        # Local inference is free; usage is only reported for cost tracking
        return VisionResponse(text=content, model=self.config.ollama_model)

    async def _openai_chat(self, prompt: str, base64_image: str, max_tokens: int) -> VisionResponse:
        request_data = {
            "model": self.config.openai_model,
            "messages": [{
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{base64_image}"}},
                ],
            }],
            "max_tokens": max_tokens,
            "temperature": self.config.temperature,
        }

        async with self._client() as client:
            response = await client.post(
                self.config.openai_url,
                json=request_data,
                headers=self._auth_headers(),
            )

        if response.is_error:
            raise AnalysisError(self._openai_error_message(response))

        result = response.json()
        choices = result.get("choices") or [{}]
        content = (choices[0].get("message") or {}).get("content") or ""
        usage = result.get("usage") or {}

        return VisionResponse(
            text=content,
            model=self.config.openai_model,
            usage=TokenUsage(
                input=int(usage.get("prompt_tokens", 0) or 0),
                output=int(usage.get("completion_tokens", 0) or 0),
            ),
        )

    @staticmethod
    def _openai_error_message(response: httpx.Response) -> str:
        try:
            body: Any = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            message = body["error"].get("message")
            if message:
                return message
        return f"API error: {response.status_code}"
