"""
Attachment enrichment for stored emails.

Runs the text extractor over an email's attachments, records one
EmailAttachment row per attempt and merges the recovered text into the
email so the extraction prompt can see it.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Tuple

from sqlalchemy.orm import Session

from homeroom.core.database.models import Email, EmailAttachment, AttachmentStatus
from homeroom.core.database.repository import AttachmentRepository, EmailRepository
from . import formats
from .extractor import AttachmentTextExtractor, AttachmentExtraction, NO_PDF_TEXT_SENTINEL
from .vision import SENTINELS

logger = logging.getLogger(__name__)


@dataclass
class AttachmentBlob:
    """Downloaded attachment."""
    filename: str
    mime_type: Optional[str]
    data: bytes


class AttachmentSource(Protocol):
    """Anything that can download an email's attachments (the mail client)."""

    async def fetch(self, email: Email) -> List[AttachmentBlob]:
        ...


@dataclass
class EnrichmentSummary:
    email_id: int
    success: int = 0
    failed: int = 0
    skipped: int = 0
    content: Optional[str] = None
    attachments: List[EmailAttachment] = field(default_factory=list)


def build_attachment_content(outcomes: List[Tuple[str, AttachmentExtraction]]) -> Optional[str]:
    """
    Merge per-attachment text into one block for the extraction prompt.

    Unreadable attachments are listed by name so the model knows they exist.

    Returns:
        Merged text, or None if there were no attachments
    """
    if not outcomes:
        return None

    readable = [
        (name, outcome.text) for name, outcome in outcomes
        if outcome.success and outcome.text and outcome.text not in SENTINELS
        and outcome.text != NO_PDF_TEXT_SENTINEL
    ]
    unreadable = [name for name, outcome in outcomes if (name, outcome.text) not in readable]

    parts = ["=== IMPORTANT: ATTACHMENT CONTENT BELOW ==="]
    for name, text in readable:
        parts.append(f"--- START: {name} ---\n{text}\n--- END: {name} ---")
    if unreadable:
        parts.append(f"--- Attachments (no text extracted) ---\n{', '.join(unreadable)}")
    parts.append("=== END ATTACHMENT CONTENT ===")
    return "\n\n".join(parts)


class AttachmentEnricher:
    """Extracts, records and merges attachment text for one email at a time."""

    def __init__(self, db: Session, extractor: AttachmentTextExtractor):
        self.db = db
        self.extractor = extractor
        self.attachments = AttachmentRepository(db)
        self.emails = EmailRepository(db)

    def needs_enrichment(self, email: Email) -> bool:
        """True if the email has attachments that were never processed."""
        if not email.has_attachments:
            return False
        return not self.attachments.get_attachments_by_email_id(email.id)

    async def enrich_email(self, email: Email, blobs: List[AttachmentBlob]) -> EnrichmentSummary:
        """
        Extract every attachment of an email, in order.

        One attachment failing never stops the others. The caller owns the
        transaction (rows are flushed, not committed).

        Args:
            email: Email being enriched
            blobs: Its downloaded attachments

        Returns:
            EnrichmentSummary with per-status counts and the merged text
        """
        summary = EnrichmentSummary(email_id=email.id)
        outcomes = []
        image_index = 0

        for blob in blobs:
            mime = formats.resolve_mime_type(blob.mime_type, blob.filename)
            row = self.attachments.create_attachment(
                email_id=email.id,
                filename=blob.filename,
                mime_type=mime,
                size_bytes=len(blob.data),
            )

            outcome = await self.extractor.extract(blob.data, mime, blob.filename, image_index=image_index)
            if mime in formats.IMAGE_MIME_TYPES:
                image_index += 1

            self._record(row, outcome, summary)
            outcomes.append((blob.filename, outcome))

        summary.content = build_attachment_content(outcomes)
        self.emails.merge_attachment_content(email, summary.content)

        logger.info(
            f"Email {email.id}: attachments {summary.success} ok, "
            f"{summary.failed} failed, {summary.skipped} skipped"
        )
        return summary

    async def retry_attachment(self, attachment: EmailAttachment, blob: AttachmentBlob) -> EmailAttachment:
        """
        Retry a failed attachment as a new attempt row.

        The earlier row keeps its terminal status. Image cap ordering does
        not apply to a single retry.
        """
        mime = formats.resolve_mime_type(blob.mime_type, blob.filename)
        row = self.attachments.create_attachment(
            email_id=attachment.email_id,
            filename=attachment.filename,
            mime_type=mime,
            size_bytes=len(blob.data),
            attempt=(attachment.attempt or 1) + 1,
        )
        outcome = await self.extractor.extract(blob.data, mime, blob.filename)
        self._record(row, outcome, EnrichmentSummary(email_id=attachment.email_id))
        logger.info(f"Retried {attachment.filename} (attempt {row.attempt}): {row.extraction_status}")
        return row

    def _record(self, row: EmailAttachment, outcome: AttachmentExtraction, summary: EnrichmentSummary):
        if outcome.status == AttachmentStatus.SUCCESS:
            summary.success += 1
            error = None
        elif outcome.status == AttachmentStatus.FAILED:
            summary.failed += 1
            error = outcome.reason
        else:
            summary.skipped += 1
            error = outcome.reason
        self.attachments.finish_attachment(
            row, outcome.status, text=outcome.text, error=error, method=outcome.method
        )
        summary.attachments.append(row)
