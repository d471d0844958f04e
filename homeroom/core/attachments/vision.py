"""
Vision OCR for images and scanned PDF pages.

Tries the preferred provider first and falls back to the next one when a
call errors or comes back empty. "No text" sentinels are valid answers.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from homeroom.core.ai.prompts import get_prompt
from homeroom.core.ai.registry import ProviderRegistry

logger = logging.getLogger(__name__)

NO_TEXT_SENTINEL = "[No text content]"
NON_DOCUMENT_SENTINEL = "[Non-document image]"
SENTINELS = {NO_TEXT_SENTINEL, NON_DOCUMENT_SENTINEL}


class VisionExtractionError(Exception):
    """Every configured vision provider failed."""
    pass


@dataclass
class VisionResult:
    text: str
    provider: str

    @property
    def is_sentinel(self) -> bool:
        return self.text in SENTINELS


class VisionOCR:
    """Reads document images through the registry's providers."""

    def __init__(self, registry: ProviderRegistry, preferred: str = "openai", max_tokens: int = 4000):
        self.registry = registry
        self.preferred = preferred
        self.max_tokens = max_tokens

    async def read_image(self, image_bytes: bytes, mime_type: str) -> VisionResult:
        """
        OCR one image.

        Args:
            image_bytes: Image data
            mime_type: Image MIME type

        Returns:
            VisionResult (text may be a sentinel)

        Raises:
            VisionExtractionError: If no provider produced an answer
        """
        prompt = get_prompt("vision.read_document")
        errors = []

        for provider in self.registry.vision_order(self.preferred):
            try:
                response = await provider.read_image(image_bytes, mime_type, prompt, max_tokens=self.max_tokens)
            except Exception as e:
                logger.warning(f"{provider.name} vision extraction failed: {e}")
                errors.append(f"{provider.name}: {e}")
                continue

            text = (response.text or "").strip()
            if not text:
                errors.append(f"{provider.name}: empty response")
                continue
            return VisionResult(text=text, provider=provider.name)

        if not errors:
            raise VisionExtractionError("No vision provider configured")
        raise VisionExtractionError("; ".join(errors))
