"""
OpenAI Provider Implementation

Wraps LangChain's ChatOpenAI for structured extraction and GPT-4o vision.
"""

from typing import Optional
from .base import (
    BaseLLMProvider, LLMResponse, VisionResponse, TokenUsage,
    usage_from_message, message_text, image_content_blocks,
)
from langchain_openai import ChatOpenAI
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.messages import HumanMessage
import os
import logging

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM = "You are a careful assistant that extracts structured information from school emails."


class OpenAIProvider(BaseLLMProvider):
    """OpenAI provider using LangChain with structured outputs."""

    name = "openai"

    def __init__(
        self,
        model: str,
        temperature: float = 0.3,
        vision_model: Optional[str] = None,
        api_key: Optional[str] = None,
        vision_max_tokens: int = 4000,
    ):
        super().__init__(model, temperature, vision_model)

        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OPENAI_API_KEY environment variable not set")

        self.client = ChatOpenAI(
            model=model,
            temperature=temperature,
            api_key=api_key
        )
        # OCR wants deterministic transcription, not creativity
        self.vision_client = ChatOpenAI(
            model=self.vision_model,
            temperature=0,
            max_tokens=vision_max_tokens,
            api_key=api_key
        )

        # Pricing (per 1M tokens)
        self.pricing = {
            "gpt-4o-mini": {"input": 0.150, "output": 0.600},
            "gpt-4o": {"input": 2.50, "output": 10.00},
            "gpt-4o-2024-08-06": {"input": 2.50, "output": 10.00},
            "gpt-4o-2024-11-20": {"input": 2.50, "output": 10.00},
            "gpt-4.1-mini": {"input": 0.40, "output": 1.60},
            "gpt-4.1": {"input": 2.00, "output": 8.00},
        }

        for name in (model, self.vision_model):
            if name not in self.pricing:
                logger.warning(f"Unknown model {name}, using gpt-4o pricing")

    async def _complete_impl(
        self,
        prompt: str,
        response_format,
        system: Optional[str] = None,
        **kwargs
    ) -> LLMResponse:
        """Get structured completion from OpenAI via LangChain."""
        try:
            structured_llm = self.client.with_structured_output(response_format, include_raw=True)

            prompt_template = ChatPromptTemplate.from_messages([
                ("system", "{system}"),
                ("user", "{input}")
            ])
            chain = prompt_template | structured_llm

            result = await chain.ainvoke({"system": system or DEFAULT_SYSTEM, "input": prompt})
            parsed, raw = self._unpack_structured(result)

            usage = usage_from_message(raw, prompt=prompt, output=str(parsed))
            return LLMResponse(
                parsed=parsed,
                usage=usage,
                raw_response={"result": parsed.model_dump_json()},
            )

        except Exception as e:
            logger.error(f"OpenAI API error: {e}")
            raise

    async def _read_image_impl(self, image_bytes: bytes, mime_type: str, prompt: str, max_tokens: int) -> VisionResponse:
        """Read an image with the OpenAI vision model."""
        try:
            message = HumanMessage(content=image_content_blocks(image_bytes, mime_type, prompt))
            response = await self.vision_client.ainvoke([message])
            text = message_text(response).strip()
            return VisionResponse(text=text, usage=usage_from_message(response, prompt=prompt, output=text))
        except Exception as e:
            logger.error(f"OpenAI vision error: {e}")
            raise

    def calculate_cost(self, usage: TokenUsage, model: Optional[str] = None) -> float:
        """Calculate cost based on token usage."""
        pricing = self.pricing.get(model or self.model, self.pricing["gpt-4o"])
        input_cost = (usage.prompt_tokens / 1_000_000) * pricing["input"]
        output_cost = (usage.completion_tokens / 1_000_000) * pricing["output"]
        return input_cost + output_cost
