"""
Email analysis pipeline.

For one email:

    attachments -> anonymize -> extract -> deanonymize -> score
        -> analysis record -> events -> todos (+ PACK reminders) -> mark analyzed

An email either gets a complete analysis (record, items, analyzed flag) or
nothing at all: any failure after the attachment step rolls the whole
email back. A single event or todo that cannot be stored is logged and
skipped without failing the email.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.orm import Session

from homeroom.core.ai.extraction_schema import ExtractionResult, ExtractedEvent, ExtractedTodo, TodoType
from homeroom.core.ai.extractor import EventTodoExtractor, EmailContent
from homeroom.core.attachments.enricher import AttachmentEnricher, AttachmentSource
from homeroom.core.config import Settings, get_settings
from homeroom.core.database.models import Email, EmailAnalysis
from homeroom.core.database.repository import (
    EmailRepository, ChildProfileRepository, AnalysisRepository, ActionItemRepository,
    parse_iso_datetime,
)
from homeroom.core.privacy.anonymizer import ChildAnonymizer
from . import quality
from .cleanup import cleanup_past_items, CleanupResult
from .due_dates import fix_due_date
from .reminders import pack_reminders

logger = logging.getLogger(__name__)

DEFAULT_CHILD_NAME = "General"


@dataclass
class AnalysisResult:
    """Outcome of analyzing one email."""
    email_id: int
    analysis_id: Optional[int] = None
    events_created: int = 0
    todos_created: int = 0
    quality_score: float = 0.0
    status: str = "success"
    error: Optional[str] = None


@dataclass
class BatchAnalysisResult:
    processed: int = 0
    successful: int = 0
    failed: int = 0
    events_created: int = 0
    todos_created: int = 0
    results: List[AnalysisResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    cleanup: Optional[CleanupResult] = None


class EmailAnalyzer:
    """
    Runs extraction for stored emails and reconciles the result into
    todos, events and a versioned analysis record.
    """

    def __init__(
        self,
        db: Session,
        extractor: EventTodoExtractor,
        enricher: Optional[AttachmentEnricher] = None,
        attachment_source: Optional[AttachmentSource] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.extractor = extractor
        self.enricher = enricher
        self.attachment_source = attachment_source
        self.settings = settings or get_settings()

        self.emails = EmailRepository(db)
        self.children = ChildProfileRepository(db)
        self.analyses = AnalysisRepository(db)
        self.items = ActionItemRepository(db)

    async def analyze_email(
        self,
        owner_id: str,
        email_id: int,
        provider: Optional[str] = None,
        version: int = 1,
    ) -> AnalysisResult:
        """
        Analyze one email (idempotent).

        If the email already has an analysis, its stored counts are returned
        and no AI call is made.

        Args:
            owner_id: Account owner
            email_id: Email to analyze
            provider: AI provider name (defaults to configured provider)
            version: Version number for the new analysis record

        Returns:
            AnalysisResult; status is "error" (with a message) on any failure
        """
        try:
            existing = self.analyses.get_analysis_by_email_id(owner_id, email_id)
            if existing:
                return self._from_existing(existing)

            email = self.emails.get_email_by_id(owner_id, email_id)
            if not email:
                return AnalysisResult(email_id=email_id, status="error", error="Email not found")

            await self._enrich_attachments(email)

            logger.info(f"Analyzing email {email_id}: \"{email.subject}\"")

            anonymizer = ChildAnonymizer.from_profiles(self.children.get_child_profiles(owner_id))
            extraction = await self.extractor.extract(
                [self._email_content(email, anonymizer)],
                child_context=anonymizer.format_profiles_for_prompt(),
                provider=provider,
            )
            extraction = anonymizer.deanonymize(extraction)

            return self._persist(owner_id, email, extraction, provider or self.extractor.registry.default, version)

        except Exception as e:
            self.db.rollback()
            logger.error(f"Error analyzing email {email_id}: {e}")
            return AnalysisResult(email_id=email_id, status="error", error=str(e))

    async def analyze_unanalyzed_emails(
        self,
        owner_id: str,
        provider: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> BatchAnalysisResult:
        """
        Analyze every email without an analysis, one at a time.

        A failing email is recorded in `errors` and the batch moves on.
        Past-item cleanup runs afterwards; its failure is logged only.
        """
        limit = limit or self.settings.analysis_batch_limit
        email_ids = self.analyses.get_unanalyzed_email_ids(owner_id, limit)
        batch = BatchAnalysisResult()

        if not email_ids:
            logger.info("No unanalyzed emails found")

        for index, email_id in enumerate(email_ids):
            try:
                result = await self.analyze_email(owner_id, email_id, provider)
            except Exception as e:
                result = AnalysisResult(email_id=email_id, status="error", error=str(e))

            batch.processed += 1
            batch.results.append(result)
            if result.status == "success":
                batch.successful += 1
                batch.events_created += result.events_created
                batch.todos_created += result.todos_created
            else:
                batch.failed += 1
                batch.errors.append(f"Email {email_id}: {result.error}")

            if index < len(email_ids) - 1 and self.settings.analysis_delay_seconds > 0:
                await asyncio.sleep(self.settings.analysis_delay_seconds)

        try:
            batch.cleanup = cleanup_past_items(self.db, owner_id)
        except Exception as e:
            logger.warning(f"Past-item cleanup failed for {owner_id}: {e}")

        logger.info(
            f"Batch complete: {batch.successful}/{batch.processed} succeeded, "
            f"{batch.events_created} events, {batch.todos_created} todos"
        )
        return batch

    async def reanalyze_email(self, owner_id: str, email_id: int, provider: Optional[str] = None) -> AnalysisResult:
        """
        Drop previous analyses of an email and analyze it again.

        Pending todos and events from earlier runs are replaced by the new
        run; completed todos stay. The new record gets the next version
        number.
        """
        try:
            email = self.emails.get_email_by_id(owner_id, email_id)
            if not email:
                return AnalysisResult(email_id=email_id, status="error", error="Email not found")

            previous_version = self.analyses.delete_analyses_for_email(owner_id, email_id)
            todos_removed, events_removed = self.items.delete_pending_items_for_email(owner_id, email_id)
            logger.info(
                f"Reanalyzing email {email_id}: removed {todos_removed} pending todos, {events_removed} events"
            )
            self.emails.reset_analyzed(email)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error resetting email {email_id} for reanalysis: {e}")
            return AnalysisResult(email_id=email_id, status="error", error=str(e))

        return await self.analyze_email(owner_id, email_id, provider, version=previous_version + 1)

    async def _enrich_attachments(self, email: Email):
        if not (self.enricher and self.attachment_source and self.enricher.needs_enrichment(email)):
            return
        try:
            blobs = await self.attachment_source.fetch(email)
            await self.enricher.enrich_email(email, blobs)
            self.db.commit()
        except Exception as e:
            # Attachment trouble never fails the email
            self.db.rollback()
            logger.warning(f"Attachment enrichment failed for email {email.id}: {e}")

    @staticmethod
    def _email_content(email: Email, anonymizer: ChildAnonymizer) -> EmailContent:
        return EmailContent(
            id=str(email.id),
            from_address=anonymizer.anonymize(email.from_address or ""),
            from_name=anonymizer.anonymize(email.from_name or email.from_address),
            subject=anonymizer.anonymize(email.subject or ""),
            received_at=email.date.isoformat() if email.date else "",
            snippet=anonymizer.anonymize(email.snippet or ""),
            body_text=anonymizer.anonymize(email.body_text),
            attachment_content=anonymizer.anonymize(email.attachment_content),
        )

    @staticmethod
    def _from_existing(analysis: EmailAnalysis) -> AnalysisResult:
        return AnalysisResult(
            email_id=analysis.email_id,
            analysis_id=analysis.id,
            events_created=analysis.events_extracted or 0,
            todos_created=analysis.todos_extracted or 0,
            quality_score=analysis.quality_score or 0.0,
            status="success",
        )

    def _persist(self, owner_id: str, email: Email, extraction: ExtractionResult,
                 provider: str, version: int) -> AnalysisResult:
        quality_score = quality.score(extraction)

        analysis = self.analyses.create_email_analysis(
            owner_id=owner_id,
            email_id=email.id,
            version=version,
            ai_provider=provider,
            human_analysis=extraction.human_analysis.model_dump() if extraction.human_analysis else None,
            raw_extraction_json=extraction.model_dump_json(),
            quality_score=quality_score,
            confidence_avg=quality.average_confidence(extraction),
            events_extracted=len(extraction.events),
            todos_extracted=len(extraction.todos),
            recurring_items=quality.count_recurring(extraction),
            inferred_items=quality.count_inferred(extraction),
        )

        events_created = 0
        for event in extraction.events:
            savepoint = self.db.begin_nested()
            try:
                self._store_event(owner_id, email, event)
                savepoint.commit()
                events_created += 1
            except Exception as e:
                savepoint.rollback()
                logger.error(f"Error creating event \"{event.title}\": {e}")

        todos_created = 0
        for todo in extraction.todos:
            savepoint = self.db.begin_nested()
            try:
                reminders = self._store_todo(owner_id, email, todo)
                savepoint.commit()
                todos_created += 1
                events_created += reminders
            except Exception as e:
                savepoint.rollback()
                logger.error(f"Error creating todo \"{todo.description}\": {e}")

        self.emails.mark_email_analyzed(email)
        self.db.commit()

        logger.info(
            f"Analysis complete: {events_created} events, {todos_created} todos, "
            f"quality: {quality_score:.2f}"
        )
        return AnalysisResult(
            email_id=email.id,
            analysis_id=analysis.id,
            events_created=events_created,
            todos_created=todos_created,
            quality_score=quality_score,
            status="success",
        )

    def _store_event(self, owner_id: str, email: Email, event: ExtractedEvent):
        start = parse_iso_datetime(event.date)
        if start is None:
            raise ValueError(f"invalid event date {event.date!r}")
        self.items.create_event(
            owner_id=owner_id,
            title=event.title,
            date=start,
            end_date=parse_iso_datetime(event.end_date),
            description=event.description,
            location=event.location,
            child_name=event.child_name or DEFAULT_CHILD_NAME,
            source_email_id=email.id,
            confidence=event.confidence,
            recurring=event.recurring,
            recurrence_pattern=event.recurrence_pattern,
            time_of_day=event.time_of_day.value if event.time_of_day else None,
            inferred_date=event.inferred_date,
        )

    def _store_todo(self, owner_id: str, email: Email, todo: ExtractedTodo) -> int:
        """Store a todo and, for PACK todos with a due date, its reminders. Returns reminders created."""
        due = parse_iso_datetime(fix_due_date(todo.due_date, todo.recurrence_pattern, email.date))
        child_name = todo.child_name or DEFAULT_CHILD_NAME

        stored = self.items.create_todo_enhanced(
            owner_id=owner_id,
            description=todo.description,
            type=TodoType(todo.type).value,
            due_date=due,
            child_name=child_name,
            source_email_id=email.id,
            url=todo.url,
            amount=todo.amount,
            confidence=todo.confidence,
            recurring=todo.recurring,
            recurrence_pattern=todo.recurrence_pattern,
            responsible_party=todo.responsible_party.value if todo.responsible_party else None,
            inferred=todo.inferred,
        )

        if todo.type != TodoType.PACK or due is None:
            return 0

        reminders = pack_reminders(todo.description, due)
        for reminder in reminders:
            self.items.create_event(
                owner_id=owner_id,
                title=reminder.title,
                date=reminder.date,
                description=reminder.description,
                child_name=child_name,
                source_email_id=email.id,
                confidence=todo.confidence,
                time_of_day="specific",
                reminder_for_todo_id=stored.id,
            )
        return len(reminders)

