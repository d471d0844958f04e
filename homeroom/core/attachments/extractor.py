"""
Attachment text recovery.

Decides how to get text out of one attachment:

1. Size/type screening (oversized files and the images past the
   per-email cap are skipped).
2. PDF: native text layer, falling back to per-page vision OCR for short
   scanned documents.
3. Images: vision OCR.
4. Word documents: python-docx.
5. Plain text / HTML / CSV: decode (HTML is stripped to text).
6. Anything else: skipped.

Every outcome carries a human-readable reason. Nothing here raises for a
bad attachment and nothing is written to the database.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from homeroom.core.config import Settings, get_settings
from homeroom.core.database.models import AttachmentStatus
from . import formats
from .vision import VisionOCR, VisionExtractionError

logger = logging.getLogger(__name__)

NO_PDF_TEXT_SENTINEL = "[No readable text detected in PDF]"


@dataclass
class AttachmentExtraction:
    """Result of recovering text from one attachment."""
    status: AttachmentStatus
    text: Optional[str] = None
    reason: Optional[str] = None
    method: Optional[str] = None
    page_count: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.status == AttachmentStatus.SUCCESS


def _mb(num_bytes: int) -> str:
    mb = num_bytes / (1024 * 1024)
    return f"{mb:.0f}MB" if mb == int(mb) else f"{mb:.1f}MB"


class AttachmentTextExtractor:
    """Turns attachment bytes into text (or a reason why not)."""

    def __init__(self, ocr: Optional[VisionOCR] = None, settings: Optional[Settings] = None):
        self.ocr = ocr
        self.settings = settings or get_settings()

    async def extract(
        self,
        data: bytes,
        mime_type: Optional[str],
        filename: str = "attachment",
        image_index: int = 0,
    ) -> AttachmentExtraction:
        """
        Recover text from one attachment.

        Args:
            data: Attachment bytes
            mime_type: Declared MIME type (extension is used when it is generic)
            filename: Original filename
            image_index: 0-based position of this image among the email's images

        Returns:
            AttachmentExtraction with a terminal status
        """
        mime = formats.resolve_mime_type(mime_type, filename)
        size = len(data)

        try:
            if mime in formats.PDF_MIME_TYPES:
                return await self._extract_pdf(data, filename)
            if mime in formats.IMAGE_MIME_TYPES:
                return await self._extract_image(data, mime, filename, image_index)
            if mime in formats.WORD_MIME_TYPES:
                return await self._extract_word(data, filename)
            if mime in formats.TEXT_MIME_TYPES:
                return self._extract_text(data, mime, filename)
        except Exception as e:
            logger.warning(f"Attachment extraction failed for {filename}: {e}")
            return AttachmentExtraction(AttachmentStatus.FAILED, reason=f"Extraction error: {e}")

        logger.debug(f"No extractor for {mime} / {filename} ({size} bytes)")
        return AttachmentExtraction(AttachmentStatus.SKIPPED, reason=f"Unsupported format ({mime})")

    def _too_large(self, kind: str, size: int, limit: int) -> Optional[AttachmentExtraction]:
        if size > limit:
            return AttachmentExtraction(
                AttachmentStatus.SKIPPED,
                reason=f"{kind} too large ({_mb(size)}, limit {_mb(limit)})",
            )
        return None

    async def _extract_pdf(self, data: bytes, filename: str) -> AttachmentExtraction:
        skipped = self._too_large("PDF", len(data), self.settings.max_pdf_bytes)
        if skipped:
            return skipped

        try:
            text, page_count = await asyncio.to_thread(formats.extract_pdf_text, data)
        except Exception as e:
            logger.warning(f"PDF parse failed for {filename}: {e}")
            return AttachmentExtraction(AttachmentStatus.FAILED, reason=f"PDF parse error: {e}")

        if len(text.strip()) >= self.settings.min_native_text_chars:
            return AttachmentExtraction(
                AttachmentStatus.SUCCESS, text=text.strip(), method="native_pdf", page_count=page_count,
                reason=f"Native text layer ({page_count} pages)",
            )

        if page_count > self.settings.max_ocr_pages:
            return AttachmentExtraction(
                AttachmentStatus.SKIPPED, page_count=page_count,
                reason=f"Scanned PDF too long for OCR ({page_count} pages, limit {self.settings.max_ocr_pages})",
            )

        logger.info(f"{filename}: little native text, running OCR on {page_count} page(s)")
        return await self._ocr_pdf(data, filename, page_count)

    async def _ocr_pdf(self, data: bytes, filename: str, page_count: int) -> AttachmentExtraction:
        if self.ocr is None:
            return AttachmentExtraction(
                AttachmentStatus.FAILED, page_count=page_count,
                reason="Scanned PDF but no vision provider is configured",
            )

        try:
            pages = await asyncio.to_thread(
                formats.render_pdf_pages, data, self.settings.ocr_render_scale, self.settings.max_ocr_pages
            )
        except Exception as e:
            logger.warning(f"PDF render failed for {filename}: {e}")
            return AttachmentExtraction(AttachmentStatus.FAILED, page_count=page_count,
                                        reason=f"PDF render error: {e}")

        page_texts = []
        errors = []
        for number, png in enumerate(pages, 1):
            try:
                result = await self.ocr.read_image(png, "image/png")
            except VisionExtractionError as e:
                logger.warning(f"{filename} page {number}: OCR failed: {e}")
                errors.append(f"page {number}: {e}")
                continue
            if not result.is_sentinel:
                page_texts.append(f"--- Page {number} ---\n{result.text}")

        if page_texts:
            return AttachmentExtraction(
                AttachmentStatus.SUCCESS, text="\n\n".join(page_texts), method="vision_ocr",
                page_count=page_count, reason=f"OCR text from {len(page_texts)}/{len(pages)} page(s)",
            )
        if pages and len(errors) == len(pages):
            return AttachmentExtraction(
                AttachmentStatus.FAILED, page_count=page_count,
                reason=f"OCR failed on every page ({'; '.join(errors)})",
            )
        return AttachmentExtraction(
            AttachmentStatus.SUCCESS, text=NO_PDF_TEXT_SENTINEL, method="vision_ocr",
            page_count=page_count, reason="OCR found no readable text",
        )

    async def _extract_image(self, data: bytes, mime: str, filename: str, image_index: int) -> AttachmentExtraction:
        if image_index >= self.settings.max_images_per_email:
            return AttachmentExtraction(
                AttachmentStatus.SKIPPED,
                reason=f"Image limit reached ({self.settings.max_images_per_email} per email)",
            )
        skipped = self._too_large("Image", len(data), self.settings.max_image_bytes)
        if skipped:
            return skipped
        if self.ocr is None:
            return AttachmentExtraction(AttachmentStatus.FAILED, reason="No vision provider is configured")

        try:
            result = await self.ocr.read_image(data, mime)
        except VisionExtractionError as e:
            return AttachmentExtraction(AttachmentStatus.FAILED, reason=f"Vision OCR failed: {e}")

        return AttachmentExtraction(
            AttachmentStatus.SUCCESS, text=result.text, method="vision_ocr",
            reason=f"OCR via {result.provider}",
        )

    async def _extract_word(self, data: bytes, filename: str) -> AttachmentExtraction:
        skipped = self._too_large("Document", len(data), self.settings.max_document_bytes)
        if skipped:
            return skipped
        try:
            text = await asyncio.to_thread(formats.extract_docx_text, data)
        except Exception as e:
            logger.warning(f"Word parse failed for {filename}: {e}")
            return AttachmentExtraction(AttachmentStatus.FAILED, reason=f"Document parse error: {e}")
        return AttachmentExtraction(AttachmentStatus.SUCCESS, text=text.strip(), method="docx",
                                    reason="Word document text")

    def _extract_text(self, data: bytes, mime: str, filename: str) -> AttachmentExtraction:
        skipped = self._too_large("Text file", len(data), self.settings.max_document_bytes)
        if skipped:
            return skipped
        text = formats.decode_text(data)
        if mime == 'text/html':
            text = formats.html_to_text(text)
            method = "html"
        else:
            method = "text"
        return AttachmentExtraction(AttachmentStatus.SUCCESS, text=text.strip(), method=method,
                                    reason=f"Decoded {mime}")
