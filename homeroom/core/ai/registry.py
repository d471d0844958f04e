"""
Provider registry.

Providers are built once at startup and handed to the components that
need them (extractor, vision OCR). Tests register fakes directly.
"""
import logging
from typing import Dict, List, Optional

from homeroom.core.config import Settings, get_settings
from .providers import BaseLLMProvider, OpenAIProvider, AnthropicProvider

logger = logging.getLogger(__name__)


class UnknownProviderError(ValueError):
    """Requested provider name is not registered."""
    pass


class ProviderRegistry:
    """Named collection of configured LLM providers."""

    def __init__(self, default: str = "openai"):
        self._providers: Dict[str, BaseLLMProvider] = {}
        self.default = default

    def register(self, name: str, provider: BaseLLMProvider):
        self._providers[name] = provider

    def get(self, name: Optional[str] = None) -> BaseLLMProvider:
        """
        Look up a provider.

        Args:
            name: Provider name (defaults to the configured default)

        Raises:
            UnknownProviderError: If no provider is registered under that name
        """
        name = name or self.default
        try:
            return self._providers[name]
        except KeyError:
            raise UnknownProviderError(
                f"Unknown provider '{name}' (available: {', '.join(self.names()) or 'none'})"
            ) from None

    def names(self) -> List[str]:
        return list(self._providers)

    def __contains__(self, name: str) -> bool:
        return name in self._providers

    def vision_order(self, preferred: str = "openai") -> List[BaseLLMProvider]:
        """Providers to try for OCR: preferred first, then the rest in registration order."""
        ordered = [self._providers[preferred]] if preferred in self._providers else []
        ordered.extend(p for n, p in self._providers.items() if n != preferred)
        return ordered

    def get_stats(self) -> Dict[str, dict]:
        return {name: provider.get_stats() for name, provider in self._providers.items()}

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ProviderRegistry":
        """
        Build the registry from settings. Providers without an API key are left out.
        """
        settings = settings or get_settings()
        registry = cls(default=settings.llm_provider)

        if settings.openai_api_key:
            registry.register("openai", OpenAIProvider(
                model=settings.openai_model,
                temperature=settings.extraction_temperature,
                vision_model=settings.openai_vision_model,
                api_key=settings.openai_api_key,
                vision_max_tokens=settings.vision_max_tokens,
            ))
        if settings.anthropic_api_key:
            registry.register("anthropic", AnthropicProvider(
                model=settings.anthropic_model,
                temperature=settings.extraction_temperature,
                vision_model=settings.anthropic_vision_model,
                api_key=settings.anthropic_api_key,
                vision_max_tokens=settings.vision_max_tokens,
            ))

        if not registry.names():
            logger.warning("No AI provider configured - set OPENAI_API_KEY or ANTHROPIC_API_KEY")
        elif registry.default not in registry:
            logger.warning(f"Default provider '{registry.default}' has no API key configured")

        return registry
