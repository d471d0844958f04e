"""Attachment text recovery: native parsing with vision OCR fallback."""
from .extractor import AttachmentTextExtractor, AttachmentExtraction
from .enricher import (
    AttachmentEnricher, AttachmentBlob, AttachmentSource, EnrichmentSummary, build_attachment_content,
)
from .vision import VisionOCR, VisionResult, VisionExtractionError

__all__ = [
    'AttachmentTextExtractor',
    'AttachmentExtraction',
    'AttachmentEnricher',
    'AttachmentBlob',
    'AttachmentSource',
    'EnrichmentSummary',
    'build_attachment_content',
    'VisionOCR',
    'VisionResult',
    'VisionExtractionError',
]
