"""Test doubles for AI providers."""
from typing import List, Optional

from homeroom.core.ai.providers.base import BaseLLMProvider, LLMResponse, VisionResponse, TokenUsage
from homeroom.core.ai.extraction_schema import ExtractionResult


class FakeProvider(BaseLLMProvider):
    """
    Provider double. Each call pops the next queued response; an Exception
    instance in the queue is raised instead.
    """

    def __init__(self, name: str = "openai", results: Optional[list] = None, vision: Optional[list] = None):
        super().__init__(model=f"fake-{name}", temperature=0.0)
        self.name = name
        self.results = list(results or [])
        self.vision = list(vision or [])
        self.prompts: List[str] = []
        self.systems: List[Optional[str]] = []
        self.images: List[bytes] = []

    async def _complete_impl(self, prompt, response_format, system=None, **kwargs):
        self.prompts.append(prompt)
        self.systems.append(system)
        outcome = self.results.pop(0) if self.results else ExtractionResult()
        if isinstance(outcome, Exception):
            raise outcome
        return LLMResponse(parsed=outcome, usage=TokenUsage(10, 5, 15))

    async def _read_image_impl(self, image_bytes, mime_type, prompt, max_tokens):
        self.images.append(image_bytes)
        outcome = self.vision.pop(0) if self.vision else ""
        if isinstance(outcome, Exception):
            raise outcome
        return VisionResponse(text=outcome, usage=TokenUsage(100, 20, 120))

    def calculate_cost(self, usage, model=None):
        return 0.0
