"""
Anthropic Provider Implementation

Wraps LangChain's ChatAnthropic for Claude models.
"""

from typing import Optional
from .base import (
    BaseLLMProvider, LLMResponse, VisionResponse, TokenUsage,
    usage_from_message, message_text, image_content_blocks,
)
from langchain_anthropic import ChatAnthropic
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.messages import HumanMessage
import os
import logging

logger = logging.getLogger(__name__)


class AnthropicProvider(BaseLLMProvider):
    """Anthropic/Claude provider using LangChain with structured outputs."""

    name = "anthropic"

    def __init__(
        self,
        model: str,
        temperature: float = 0.3,
        vision_model: Optional[str] = None,
        api_key: Optional[str] = None,
        vision_max_tokens: int = 4000,
    ):
        super().__init__(model, temperature, vision_model)

        api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable not set")

        self.client = ChatAnthropic(
            model=model,
            temperature=temperature,
            max_tokens=4096,
            anthropic_api_key=api_key
        )
        self.vision_client = ChatAnthropic(
            model=self.vision_model,
            temperature=0,
            max_tokens=vision_max_tokens,
            anthropic_api_key=api_key
        )

        # Pricing (per 1M tokens)
        self.pricing = {
            "claude-3-haiku-20240307": {"input": 0.25, "output": 1.25},
            "claude-3-5-haiku-20241022": {"input": 0.80, "output": 4.00},
            "claude-3-5-sonnet-20241022": {"input": 3.00, "output": 15.00},
            "claude-3-opus-20240229": {"input": 15.00, "output": 75.00},
        }

        for name in (model, self.vision_model):
            if name not in self.pricing:
                logger.warning(f"Unknown model {name}, using claude-3-5-sonnet pricing")

    async def _complete_impl(
        self,
        prompt: str,
        response_format,
        system: Optional[str] = None,
        **kwargs
    ) -> LLMResponse:
        """Get structured completion from Anthropic via LangChain."""
        try:
            structured_llm = self.client.with_structured_output(response_format, include_raw=True)

            messages = [("user", "{input}")]
            variables = {"input": prompt}
            if system:
                messages.insert(0, ("system", "{system}"))
                variables["system"] = system
            chain = ChatPromptTemplate.from_messages(messages) | structured_llm

            result = await chain.ainvoke(variables)
            parsed, raw = self._unpack_structured(result)

            usage = usage_from_message(raw, prompt=prompt, output=str(parsed))
            return LLMResponse(
                parsed=parsed,
                usage=usage,
                raw_response={"result": parsed.model_dump_json()},
            )

        except Exception as e:
            logger.error(f"Anthropic API error: {e}")
            raise

    async def _read_image_impl(self, image_bytes: bytes, mime_type: str, prompt: str, max_tokens: int) -> VisionResponse:
        """Read an image with Claude vision."""
        try:
            message = HumanMessage(content=image_content_blocks(image_bytes, mime_type, prompt))
            response = await self.vision_client.ainvoke([message])
            text = message_text(response).strip()
            return VisionResponse(text=text, usage=usage_from_message(response, prompt=prompt, output=text))
        except Exception as e:
            logger.error(f"Anthropic vision error: {e}")
            raise

    def calculate_cost(self, usage: TokenUsage, model: Optional[str] = None) -> float:
        """Calculate cost based on token usage."""
        pricing = self.pricing.get(
            model or self.model,
            self.pricing["claude-3-5-sonnet-20241022"]
        )
        input_cost = (usage.prompt_tokens / 1_000_000) * pricing["input"]
        output_cost = (usage.completion_tokens / 1_000_000) * pricing["output"]
        return input_cost + output_cost
