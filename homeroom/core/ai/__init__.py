"""AI extraction: providers, prompts, and the structured extraction call."""
from .extraction_schema import (
    ExtractionResult, ExtractedEvent, ExtractedTodo, HumanAnalysis, TodoType, TimeOfDay,
)
from .extractor import EventTodoExtractor, EmailContent, ExtractionError
from .registry import ProviderRegistry, UnknownProviderError

__all__ = [
    'ExtractionResult',
    'ExtractedEvent',
    'ExtractedTodo',
    'HumanAnalysis',
    'TodoType',
    'TimeOfDay',
    'EventTodoExtractor',
    'EmailContent',
    'ExtractionError',
    'ProviderRegistry',
    'UnknownProviderError',
]
