"""
LLM Provider Abstraction Layer

Provides a unified interface for different LLM providers (OpenAI, Anthropic).
"""

from .base import BaseLLMProvider, LLMResponse, VisionResponse, TokenUsage, ProviderResponseError
from .openai import OpenAIProvider
from .anthropic import AnthropicProvider

__all__ = [
    'BaseLLMProvider',
    'LLMResponse',
    'VisionResponse',
    'TokenUsage',
    'ProviderResponseError',
    'OpenAIProvider',
    'AnthropicProvider',
]
