"""
Database Repository - High-level database operations for the analysis pipeline.

Repositories flush but never commit: the caller owns the transaction so a
failed analysis can be rolled back as a whole.
"""
from typing import Optional, List, Dict, Any, Tuple
from datetime import datetime
from sqlalchemy.orm import Session
from sqlalchemy import func, and_, or_
import logging

from .models import (
    Email, EmailAttachment, ChildProfile, EmailAnalysis, Todo, Event,
    AttachmentStatus, AnalysisStatus,
)

logger = logging.getLogger(__name__)


def sanitize_for_storage(text: Optional[str], field_name: str = "text", max_length: Optional[int] = None) -> Optional[str]:
    """
    Remove NUL bytes and surrogate characters that text columns reject.

    Attachment text in particular can carry binary junk from broken PDFs.

    Args:
        text: Input text
        field_name: Name of field being sanitized (for logging)
        max_length: Maximum length for field (truncates if longer)

    Returns:
        Sanitized text, or None if input was None
    """
    if text is None:
        return None

    if '\x00' in text:
        logger.debug(f"Sanitized {text.count(chr(0))} NUL byte(s) from {field_name}")
    sanitized = text.replace('\x00', '')

    try:
        sanitized.encode('utf-8', errors='strict')
    except UnicodeEncodeError:
        sanitized = sanitized.encode('utf-8', errors='replace').decode('utf-8', errors='replace')
        logger.debug(f"Removed surrogate characters from {field_name}")

    if max_length and len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string into a naive datetime, or None if unparseable."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
    except ValueError:
        return None
    return parsed.replace(tzinfo=None)


class BaseRepository:
    """Shared session handling."""

    def __init__(self, db: Session):
        """
        Initialize repository with database session.

        Args:
            db: SQLAlchemy session
        """
        self.db = db

    def commit(self):
        """Commit transaction with error handling"""
        try:
            self.db.commit()
        except Exception as e:
            logger.error(f"Failed to commit transaction: {e}")
            self.db.rollback()
            raise

    def rollback(self):
        """Rollback transaction"""
        try:
            self.db.rollback()
        except Exception as e:
            logger.error(f"Failed to rollback transaction: {e}")


class EmailRepository(BaseRepository):
    """Read access to ingested emails plus the two fields the pipeline owns."""

    def get_email_by_id(self, owner_id: str, email_id: int) -> Optional[Email]:
        return self.db.query(Email).filter(
            Email.id == email_id,
            Email.owner_id == owner_id,
        ).first()

    def list_emails(self, owner_id: str, analyzed: Optional[bool] = None, limit: int = 100) -> List[Email]:
        query = self.db.query(Email).filter(Email.owner_id == owner_id)
        if analyzed is not None:
            query = query.filter(Email.analyzed == analyzed)
        return query.order_by(Email.date.desc()).limit(limit).all()

    def mark_email_analyzed(self, email: Email):
        email.analyzed = True
        self.db.flush()

    def reset_analyzed(self, email: Email):
        email.analyzed = False
        self.db.flush()

    def merge_attachment_content(self, email: Email, content: Optional[str]):
        """Store merged attachment text on the email (replaces any previous merge)."""
        email.attachment_content = sanitize_for_storage(content, "attachment_content")
        self.db.flush()


class ChildProfileRepository(BaseRepository):

    def get_child_profiles(self, owner_id: str, active_only: bool = True) -> List[ChildProfile]:
        """
        Get child profiles ordered by id (stable anonymization order).

        Args:
            owner_id: Account owner
            active_only: Skip profiles the owner has deactivated

        Returns:
            List of ChildProfile rows
        """
        query = self.db.query(ChildProfile).filter(ChildProfile.owner_id == owner_id)
        if active_only:
            query = query.filter(ChildProfile.is_active.is_(True))
        return query.order_by(ChildProfile.id.asc()).all()


class AnalysisRepository(BaseRepository):
    """Versioned email analyses."""

    def create_email_analysis(
        self,
        owner_id: str,
        email_id: int,
        ai_provider: str,
        human_analysis: Optional[Dict[str, Any]],
        raw_extraction_json: str,
        quality_score: float,
        confidence_avg: Optional[float],
        events_extracted: int,
        todos_extracted: int,
        recurring_items: int,
        inferred_items: int,
        version: int = 1,
    ) -> EmailAnalysis:
        analysis = EmailAnalysis(
            owner_id=owner_id,
            email_id=email_id,
            version=version,
            ai_provider=ai_provider,
            human_analysis=human_analysis,
            raw_extraction_json=sanitize_for_storage(raw_extraction_json, "raw_extraction_json"),
            quality_score=quality_score,
            confidence_avg=confidence_avg,
            events_extracted=events_extracted,
            todos_extracted=todos_extracted,
            recurring_items=recurring_items,
            inferred_items=inferred_items,
            status=AnalysisStatus.ANALYZED.value,
        )
        self.db.add(analysis)
        self.db.flush()
        return analysis

    def get_analysis_by_email_id(self, owner_id: str, email_id: int) -> Optional[EmailAnalysis]:
        """Latest analysis version for an email, if any."""
        return self.db.query(EmailAnalysis).filter(
            EmailAnalysis.owner_id == owner_id,
            EmailAnalysis.email_id == email_id,
        ).order_by(EmailAnalysis.version.desc()).first()

    def get_unanalyzed_email_ids(self, owner_id: str, limit: int = 100) -> List[int]:
        """Ids of emails with no analysis row, newest first."""
        rows = self.db.query(Email.id).outerjoin(
            EmailAnalysis,
            and_(EmailAnalysis.email_id == Email.id, EmailAnalysis.owner_id == Email.owner_id),
        ).filter(
            Email.owner_id == owner_id,
            EmailAnalysis.id.is_(None),
        ).order_by(Email.date.desc()).limit(limit).all()
        return [row[0] for row in rows]

    def delete_analyses_for_email(self, owner_id: str, email_id: int) -> int:
        """
        Delete every analysis of an email.

        Returns:
            Highest version that was deleted (0 if there was none)
        """
        analyses = self.db.query(EmailAnalysis).filter(
            EmailAnalysis.owner_id == owner_id,
            EmailAnalysis.email_id == email_id,
        ).all()
        highest = max((a.version for a in analyses), default=0)
        for analysis in analyses:
            self.db.delete(analysis)
        self.db.flush()
        return highest

    def update_analysis_status(
        self,
        owner_id: str,
        analysis_id: int,
        status: AnalysisStatus,
        review_notes: Optional[str] = None,
    ) -> Optional[EmailAnalysis]:
        analysis = self.db.query(EmailAnalysis).filter(
            EmailAnalysis.owner_id == owner_id,
            EmailAnalysis.id == analysis_id,
        ).first()
        if not analysis:
            return None

        analysis.status = AnalysisStatus(status).value
        if review_notes is not None:
            analysis.review_notes = review_notes
        if analysis.status in (AnalysisStatus.REVIEWED.value, AnalysisStatus.APPROVED.value,
                               AnalysisStatus.REJECTED.value):
            analysis.reviewed_at = datetime.utcnow()
        self.db.flush()
        return analysis

    def get_analyses_pending_review(self, owner_id: str, threshold: float = 0.7, limit: int = 50) -> List[EmailAnalysis]:
        """Unreviewed analyses scoring below the threshold, worst first."""
        return self.db.query(EmailAnalysis).filter(
            EmailAnalysis.owner_id == owner_id,
            EmailAnalysis.status == AnalysisStatus.ANALYZED.value,
            (EmailAnalysis.quality_score.is_(None)) | (EmailAnalysis.quality_score < threshold),
        ).order_by(EmailAnalysis.quality_score.asc(), EmailAnalysis.created_at.desc()).limit(limit).all()

    def get_analysis_stats(self, owner_id: str) -> Dict[str, Any]:
        """Aggregate counts across all analyses of an owner."""
        analyses = self.db.query(EmailAnalysis).filter(EmailAnalysis.owner_id == owner_id).all()

        stats = {status.value: 0 for status in AnalysisStatus}
        for analysis in analyses:
            stats[analysis.status] = stats.get(analysis.status, 0) + 1

        scores = [a.quality_score for a in analyses if a.quality_score is not None]
        confidences = [a.confidence_avg for a in analyses if a.confidence_avg is not None]
        stats.update({
            'total': len(analyses),
            'avg_quality_score': sum(scores) / len(scores) if scores else None,
            'avg_confidence': sum(confidences) / len(confidences) if confidences else None,
            'total_events': sum(a.events_extracted or 0 for a in analyses),
            'total_todos': sum(a.todos_extracted or 0 for a in analyses),
            'total_recurring': sum(a.recurring_items or 0 for a in analyses),
            'total_inferred': sum(a.inferred_items or 0 for a in analyses),
        })
        return stats


class ActionItemRepository(BaseRepository):
    """Todos and events derived from emails."""

    def create_todo_enhanced(
        self,
        owner_id: str,
        description: str,
        type: str,
        source_email_id: int,
        due_date: Optional[datetime] = None,
        child_name: Optional[str] = None,
        url: Optional[str] = None,
        amount: Optional[str] = None,
        confidence: Optional[float] = None,
        recurring: bool = False,
        recurrence_pattern: Optional[str] = None,
        responsible_party: Optional[str] = None,
        inferred: bool = False,
    ) -> Todo:
        todo = Todo(
            owner_id=owner_id,
            description=sanitize_for_storage(description, "todo.description"),
            type=type,
            due_date=due_date,
            child_name=child_name,
            source_email_id=source_email_id,
            url=url,
            amount=amount,
            confidence=confidence,
            recurring=recurring,
            recurrence_pattern=recurrence_pattern,
            responsible_party=responsible_party,
            inferred=inferred,
        )
        self.db.add(todo)
        self.db.flush()
        return todo

    def create_event(
        self,
        owner_id: str,
        title: str,
        date: datetime,
        source_email_id: int,
        description: Optional[str] = None,
        end_date: Optional[datetime] = None,
        location: Optional[str] = None,
        child_name: Optional[str] = None,
        confidence: Optional[float] = None,
        recurring: bool = False,
        recurrence_pattern: Optional[str] = None,
        time_of_day: Optional[str] = None,
        inferred_date: bool = False,
        reminder_for_todo_id: Optional[int] = None,
    ) -> Event:
        event = Event(
            owner_id=owner_id,
            title=sanitize_for_storage(title, "event.title", max_length=500),
            description=sanitize_for_storage(description, "event.description"),
            date=date,
            end_date=end_date,
            location=location,
            child_name=child_name,
            source_email_id=source_email_id,
            confidence=confidence,
            recurring=recurring,
            recurrence_pattern=recurrence_pattern,
            time_of_day=time_of_day,
            inferred_date=inferred_date,
            reminder_for_todo_id=reminder_for_todo_id,
        )
        self.db.add(event)
        self.db.flush()
        return event

    def mark_todos_auto_completed(self, owner_id: str, cutoff: datetime) -> List[int]:
        """
        Close pending todos whose due date is before the cutoff.

        Returns:
            Ids of the todos that were closed
        """
        todos = self.db.query(Todo).filter(
            Todo.owner_id == owner_id,
            Todo.status == "pending",
            Todo.due_date.isnot(None),
            Todo.due_date < cutoff,
        ).all()
        now = datetime.utcnow()
        for todo in todos:
            todo.status = "done"
            todo.auto_completed = True
            todo.completed_at = now
        self.db.flush()
        return [todo.id for todo in todos]

    def delete_pending_items_for_email(self, owner_id: str, email_id: int) -> Tuple[int, int]:
        """
        Remove what an email produced that nobody has acted on yet.

        Deletes the email's pending todos with their reminder events and
        the email's own events. Done todos and their reminders stay.

        Returns:
            (todos deleted, events deleted)
        """
        todos = self.db.query(Todo).filter(
            Todo.owner_id == owner_id,
            Todo.source_email_id == email_id,
            Todo.status == "pending",
        ).all()
        todo_ids = [todo.id for todo in todos]

        events = self.db.query(Event).filter(
            Event.owner_id == owner_id,
            or_(
                and_(Event.source_email_id == email_id, Event.reminder_for_todo_id.is_(None)),
                Event.reminder_for_todo_id.in_(todo_ids),
            ),
        ).all()

        for event in events:
            self.db.delete(event)
        self.db.flush()
        for todo in todos:
            self.db.delete(todo)
        self.db.flush()
        return len(todos), len(events)

    def delete_past_events(self, owner_id: str, cutoff: datetime) -> List[int]:
        """
        Delete events dated before the cutoff.

        Returns:
            Ids of the deleted events
        """
        events = self.db.query(Event).filter(
            Event.owner_id == owner_id,
            Event.date < cutoff,
        ).all()
        ids = [event.id for event in events]
        for event in events:
            self.db.delete(event)
        self.db.flush()
        return ids


class AttachmentRepository(BaseRepository):
    """Attachment extraction attempts."""

    def create_attachment(
        self,
        email_id: int,
        filename: str,
        mime_type: Optional[str],
        size_bytes: int,
        attempt: int = 1,
    ) -> EmailAttachment:
        attachment = EmailAttachment(
            email_id=email_id,
            filename=filename,
            mime_type=mime_type,
            size_bytes=size_bytes,
            attempt=attempt,
            extraction_status=AttachmentStatus.PENDING.value,
        )
        self.db.add(attachment)
        self.db.flush()
        return attachment

    def finish_attachment(
        self,
        attachment: EmailAttachment,
        status: AttachmentStatus,
        text: Optional[str] = None,
        error: Optional[str] = None,
        method: Optional[str] = None,
    ) -> EmailAttachment:
        """
        Move a pending attachment to its terminal status.

        Raises:
            ValueError: If the attachment already has a terminal status
        """
        if attachment.extraction_status != AttachmentStatus.PENDING.value:
            raise ValueError(
                f"Attachment {attachment.id} already {attachment.extraction_status}"
            )
        attachment.extraction_status = AttachmentStatus(status).value
        attachment.extracted_text = sanitize_for_storage(text, "extracted_text")
        attachment.extraction_error = error
        attachment.extraction_method = method
        self.db.flush()
        return attachment

    def get_attachments_by_email_id(self, email_id: int) -> List[EmailAttachment]:
        return self.db.query(EmailAttachment).filter(
            EmailAttachment.email_id == email_id
        ).order_by(EmailAttachment.id.asc()).all()

    def get_failed_attachments(self, owner_id: str, limit: int = 100) -> List[EmailAttachment]:
        """Failed attempts that have not been superseded by a later attempt."""
        failed = self.db.query(EmailAttachment).join(Email).filter(
            Email.owner_id == owner_id,
            EmailAttachment.extraction_status == AttachmentStatus.FAILED.value,
        ).order_by(EmailAttachment.created_at.desc()).all()

        latest = []
        for attachment in failed:
            newer = self.db.query(EmailAttachment).filter(
                EmailAttachment.email_id == attachment.email_id,
                EmailAttachment.filename == attachment.filename,
                EmailAttachment.attempt > attachment.attempt,
            ).first()
            if newer is None:
                latest.append(attachment)
            if len(latest) >= limit:
                break
        return latest

    def get_attachment_counts(self, email_id: int) -> Dict[str, int]:
        """Count attachment rows per extraction status for one email."""
        rows = self.db.query(
            EmailAttachment.extraction_status, func.count(EmailAttachment.id)
        ).filter(
            EmailAttachment.email_id == email_id
        ).group_by(EmailAttachment.extraction_status).all()

        counts = {status.value: 0 for status in AttachmentStatus}
        for status, count in rows:
            counts[status] = count
        counts['total'] = sum(count for _, count in rows)
        return counts
