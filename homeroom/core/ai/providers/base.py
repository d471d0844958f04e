"""
Base LLM Provider Interface

Defines the abstract interface that all LLM providers must implement:
structured completion (event/todo extraction) and image reading (OCR).
"""

from abc import ABC, abstractmethod
from typing import Type, Optional, Any, List
from pydantic import BaseModel
from dataclasses import dataclass, field
import base64
import time
import logging

logger = logging.getLogger(__name__)


class ProviderResponseError(Exception):
    """The provider answered, but not with something matching the requested schema."""
    pass


@dataclass
class TokenUsage:
    """Token usage information from LLM API call."""
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class LLMResponse:
    """Unified response from any LLM provider."""
    parsed: BaseModel
    usage: TokenUsage
    raw_response: dict = field(default_factory=dict)
    latency_ms: int = 0


@dataclass
class VisionResponse:
    """Plain-text answer to an image prompt."""
    text: str
    usage: TokenUsage
    latency_ms: int = 0


def usage_from_message(message: Any, prompt: str = "", output: str = "") -> TokenUsage:
    """
    Read token usage from a LangChain AIMessage.

    Falls back to a rough 4-chars-per-token estimate when the
    provider did not report usage.
    """
    usage_metadata = getattr(message, 'usage_metadata', None) if message is not None else None
    if usage_metadata:
        prompt_tokens = usage_metadata.get('input_tokens', 0)
        completion_tokens = usage_metadata.get('output_tokens', 0)
    else:
        prompt_tokens = len(prompt) // 4
        completion_tokens = len(output) // 4
    return TokenUsage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=prompt_tokens + completion_tokens
    )


def message_text(message: Any) -> str:
    """Flatten AIMessage content (string or list of content blocks) to text."""
    content = getattr(message, 'content', message)
    if isinstance(content, str):
        return content
    parts: List[str] = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get('type') == 'text':
            parts.append(block.get('text', ''))
    return ''.join(parts)


def image_content_blocks(image_bytes: bytes, mime_type: str, prompt: str) -> list:
    """Build a multimodal user message body with the image as a data URI."""
    encoded = base64.b64encode(image_bytes).decode('ascii')
    return [
        {"type": "text", "text": prompt},
        {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{encoded}"}},
    ]


class BaseLLMProvider(ABC):
    """
    Base interface for LLM providers.

    All providers (OpenAI, Anthropic) must implement this interface.
    """

    name: str = "base"

    def __init__(self, model: str, temperature: float = 0.3, vision_model: Optional[str] = None):
        self.model = model
        self.vision_model = vision_model or model
        self.temperature = temperature

        # Usage tracking
        self.total_requests = 0
        self.total_tokens = 0
        self.total_cost = 0.0

    def _track(self, model: str, usage: TokenUsage, latency_ms: int):
        self.total_requests += 1
        self.total_tokens += usage.total_tokens
        cost = self.calculate_cost(usage, model)
        self.total_cost += cost

        logger.info(
            f"{model}: {usage.total_tokens} tokens, "
            f"${cost:.4f}, {latency_ms}ms"
        )

    async def complete(
        self,
        prompt: str,
        response_format: Type[BaseModel],
        system: Optional[str] = None,
        **kwargs
    ) -> LLMResponse:
        """
        Get structured completion from LLM.

        Args:
            prompt: User prompt
            response_format: Pydantic model for structured output
            system: Optional system message
            **kwargs: Provider-specific arguments

        Returns:
            LLMResponse with parsed result and usage

        Raises:
            ProviderResponseError: If the response does not match response_format
        """
        start_time = time.time()

        response = await self._complete_impl(prompt, response_format, system=system, **kwargs)

        response.latency_ms = int((time.time() - start_time) * 1000)
        self._track(self.model, response.usage, response.latency_ms)

        return response

    async def read_image(
        self,
        image_bytes: bytes,
        mime_type: str,
        prompt: str,
        max_tokens: int = 4000,
    ) -> VisionResponse:
        """
        Ask the vision model to read an image.

        Args:
            image_bytes: Raw image data
            mime_type: Image MIME type (image/png, image/jpeg, ...)
            prompt: Instruction for the model
            max_tokens: Output token cap

        Returns:
            VisionResponse with the model's text
        """
        start_time = time.time()

        response = await self._read_image_impl(image_bytes, mime_type, prompt, max_tokens)

        response.latency_ms = int((time.time() - start_time) * 1000)
        self._track(self.vision_model, response.usage, response.latency_ms)

        return response

    @staticmethod
    def _unpack_structured(result: Any) -> tuple:
        """
        Unpack the dict returned by with_structured_output(include_raw=True).

        Returns:
            (parsed, raw_message)

        Raises:
            ProviderResponseError: On a parsing error or an empty parse
        """
        if isinstance(result, dict) and 'parsed' in result:
            if result.get('parsing_error') is not None:
                raise ProviderResponseError(f"Malformed structured response: {result['parsing_error']}")
            parsed, raw = result.get('parsed'), result.get('raw')
        else:
            parsed, raw = result, None
        if parsed is None:
            raise ProviderResponseError("Model returned no structured output")
        return parsed, raw

    @abstractmethod
    async def _complete_impl(
        self,
        prompt: str,
        response_format: Type[BaseModel],
        system: Optional[str] = None,
        **kwargs
    ) -> LLMResponse:
        """
        Provider-specific implementation of completion.

        Must be implemented by each provider.
        """
        pass

    @abstractmethod
    async def _read_image_impl(
        self,
        image_bytes: bytes,
        mime_type: str,
        prompt: str,
        max_tokens: int,
    ) -> VisionResponse:
        """Provider-specific implementation of image reading."""
        pass

    @abstractmethod
    def calculate_cost(self, usage: TokenUsage, model: Optional[str] = None) -> float:
        """
        Calculate cost in USD from token usage.

        Must be implemented by each provider based on their pricing.
        """
        pass

    def get_stats(self) -> dict:
        """Get provider usage statistics."""
        return {
            "provider": self.name,
            "model": self.model,
            "requests": self.total_requests,
            "tokens": self.total_tokens,
            "cost": round(self.total_cost, 4),
            "avg_tokens_per_request": (
                self.total_tokens / max(1, self.total_requests)
            )
        }
