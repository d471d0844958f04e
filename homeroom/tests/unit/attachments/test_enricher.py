"""
Unit tests for attachment enrichment and attempt tracking.
"""
import pytest
from unittest.mock import AsyncMock, Mock

from homeroom.core.attachments import (
    AttachmentEnricher, AttachmentBlob, AttachmentTextExtractor, build_attachment_content,
)
from homeroom.core.attachments.extractor import AttachmentExtraction
from homeroom.core.attachments.vision import VisionOCR, VisionResult
from homeroom.core.database.models import AttachmentStatus, EmailAttachment
from homeroom.core.database.repository import AttachmentRepository


@pytest.fixture
def ocr():
    ocr = Mock(spec=VisionOCR)
    ocr.read_image = AsyncMock(return_value=VisionResult(text="Lunch menu", provider="openai"))
    return ocr


@pytest.fixture
def enricher(db, ocr, settings):
    return AttachmentEnricher(db, AttachmentTextExtractor(ocr=ocr, settings=settings))


class TestBuildAttachmentContent:
    """Test merging attachment text for the prompt"""

    def test_no_attachments(self):
        assert build_attachment_content([]) is None

    def test_readable_and_unreadable(self):
        content = build_attachment_content([
            ("kit.txt", AttachmentExtraction(AttachmentStatus.SUCCESS, text="Trainers")),
            ("photos.zip", AttachmentExtraction(AttachmentStatus.SKIPPED, reason="Unsupported format")),
            ("scan.jpg", AttachmentExtraction(AttachmentStatus.SUCCESS, text="[No text content]")),
        ])

        assert content.startswith("=== IMPORTANT: ATTACHMENT CONTENT BELOW ===")
        assert "--- START: kit.txt ---\nTrainers\n--- END: kit.txt ---" in content
        assert "--- Attachments (no text extracted) ---\nphotos.zip, scan.jpg" in content
        assert content.endswith("=== END ATTACHMENT CONTENT ===")


class TestAttachmentEnricher:
    """Test enrichment of a stored email"""

    @pytest.mark.asyncio
    async def test_rows_recorded_and_content_merged(self, db, enricher, make_email):
        email = make_email(has_attachments=True)
        blobs = [
            AttachmentBlob("kit.txt", "text/plain", b"Trainers and shin pads"),
            AttachmentBlob("photos.zip", "application/zip", b"PK\x03\x04"),
            AttachmentBlob("broken.pdf", "application/pdf", b"not really a pdf"),
        ]

        assert enricher.needs_enrichment(email)
        summary = await enricher.enrich_email(email, blobs)
        db.commit()

        assert (summary.success, summary.skipped, summary.failed) == (1, 1, 1)
        rows = AttachmentRepository(db).get_attachments_by_email_id(email.id)
        assert [r.extraction_status for r in rows] == ["success", "skipped", "failed"]
        assert rows[1].extraction_error.startswith("Unsupported format")
        assert rows[2].extraction_error.startswith("PDF parse error")
        assert "Trainers and shin pads" in email.attachment_content
        assert not enricher.needs_enrichment(email)

    @pytest.mark.asyncio
    async def test_image_cap_counts_images_only(self, db, enricher, ocr, make_email):
        email = make_email(has_attachments=True)
        blobs = [AttachmentBlob("note.txt", "text/plain", b"hello")]
        blobs += [AttachmentBlob(f"img{i}.png", "image/png", b"png") for i in range(6)]

        summary = await enricher.enrich_email(email, blobs)

        assert summary.success == 6
        assert summary.skipped == 1
        assert ocr.read_image.call_count == 5
        last = summary.attachments[-1]
        assert last.filename == "img5.png"
        assert last.extraction_status == "skipped"

    def test_email_without_attachments_needs_nothing(self, enricher, make_email):
        assert not enricher.needs_enrichment(make_email(has_attachments=False))

    @pytest.mark.asyncio
    async def test_retry_creates_new_attempt(self, db, enricher, make_email):
        email = make_email(has_attachments=True)
        summary = await enricher.enrich_email(email, [AttachmentBlob("broken.pdf", "application/pdf", b"junk")])
        db.commit()
        failed = summary.attachments[0]

        repo = AttachmentRepository(db)
        assert repo.get_failed_attachments("parent-1") == [failed]

        retried = await enricher.retry_attachment(
            failed, AttachmentBlob("broken.pdf", "text/plain", b"Recovered text")
        )
        db.commit()

        assert retried.attempt == 2
        assert retried.extraction_status == "success"
        assert failed.extraction_status == "failed"
        assert repo.get_failed_attachments("parent-1") == []
        assert repo.get_attachment_counts(email.id) == {
            "pending": 0, "success": 1, "failed": 1, "skipped": 0, "total": 2,
        }


class TestAttachmentRepository:
    """Test attempt-row rules"""

    def test_terminal_status_is_final(self, db, make_email):
        email = make_email(has_attachments=True)
        repo = AttachmentRepository(db)
        row = repo.create_attachment(email.id, "kit.txt", "text/plain", 10)

        repo.finish_attachment(row, AttachmentStatus.SUCCESS, text="Trainers", method="text")

        with pytest.raises(ValueError):
            repo.finish_attachment(row, AttachmentStatus.FAILED, error="again")

    def test_extracted_text_sanitized(self, db, make_email):
        email = make_email(has_attachments=True)
        repo = AttachmentRepository(db)
        row = repo.create_attachment(email.id, "odd.txt", "text/plain", 10)

        repo.finish_attachment(row, AttachmentStatus.SUCCESS, text="a\x00b")
        db.commit()

        assert db.get(EmailAttachment, row.id).extracted_text == "ab"
