"""
SQLAlchemy Database Models

Stores:
- Emails pulled from the family inbox (ingested elsewhere, flagged here)
- Attachment extraction outcomes (one row per attempt)
- Child profiles used for anonymization
- Email analyses (versioned audit trail of each extraction pass)
- Todos and events derived from emails
- Onboarding jobs (long-running scans polled by the UI)
"""
from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime, Text, JSON, ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime
import enum

Base = declarative_base()


class AttachmentStatus(str, enum.Enum):
    """Outcome of extracting text from one attachment."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class AnalysisStatus(str, enum.Enum):
    """Review state of an email analysis."""
    PENDING = "pending"
    ANALYZED = "analyzed"
    REVIEWED = "reviewed"
    APPROVED = "approved"
    REJECTED = "rejected"


class JobType(str, enum.Enum):
    SCAN_INBOX = "scan_inbox"
    ANALYZE_CHILDREN = "analyze_children"
    EXTRACT_TRAINING = "extract_training"
    GENERATE_EMAIL = "generate_email"


class JobStatus(str, enum.Enum):
    """
    Job lifecycle. Order matters: a job only ever moves forward
    (pending -> scanning -> ranking -> complete/failed).
    """
    PENDING = "pending"
    SCANNING = "scanning"
    RANKING = "ranking"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETE, JobStatus.FAILED)


class Email(Base):
    """
    Email record created by ingestion.

    The analysis pipeline only flips `analyzed` and fills
    `attachment_content`; everything else is read-only here.
    """
    __tablename__ = "emails"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String(100), nullable=False, index=True)
    gmail_message_id = Column(String(255), nullable=False)

    from_address = Column(String(500), nullable=False)
    from_name = Column(String(500))
    subject = Column(Text, nullable=False, default="")
    snippet = Column(Text)
    body_text = Column(Text)
    date = Column(DateTime, nullable=False, default=datetime.utcnow)

    has_attachments = Column(Boolean, default=False)
    attachment_content = Column(Text)  # Merged text recovered from attachments

    analyzed = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    attachments = relationship("EmailAttachment", back_populates="email", cascade="all, delete-orphan")
    analyses = relationship("EmailAnalysis", back_populates="email", cascade="all, delete-orphan")

    __table_args__ = (
        Index('ix_emails_owner_analyzed', 'owner_id', 'analyzed'),
        UniqueConstraint('owner_id', 'gmail_message_id', name='uq_emails_owner_message'),
    )

    def __repr__(self):
        return f"<Email(id={self.id}, from={self.from_address}, subject={self.subject[:50] if self.subject else ''}...)>"


class EmailAttachment(Base):
    """
    Text extraction attempt for one attachment.

    A row moves pending -> success/failed/skipped exactly once.
    Retrying creates a new row with attempt + 1.
    """
    __tablename__ = "email_attachments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email_id = Column(Integer, ForeignKey("emails.id", ondelete="CASCADE"), nullable=False)
    filename = Column(String(500), nullable=False)
    mime_type = Column(String(200))
    size_bytes = Column(Integer, default=0)

    extraction_status = Column(String(20), nullable=False, default=AttachmentStatus.PENDING.value)
    extraction_method = Column(String(50))  # native_pdf, vision_ocr, docx, text, ...
    extracted_text = Column(Text)
    extraction_error = Column(Text)
    attempt = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    email = relationship("Email", back_populates="attachments")

    __table_args__ = (
        Index('ix_attachments_email_id', 'email_id'),
        Index('ix_attachments_status', 'extraction_status'),
    )


class ChildProfile(Base):
    """Child known to the account owner. Never sent to an AI provider by name."""
    __tablename__ = "child_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String(100), nullable=False, index=True)
    real_name = Column(String(200), nullable=False)
    display_name = Column(String(200))
    year_group = Column(String(50))
    school_name = Column(String(300))
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class EmailAnalysis(Base):
    """
    Versioned record of one extraction pass over an email.

    Immutable once written except for the review fields.
    """
    __tablename__ = "email_analyses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String(100), nullable=False, index=True)
    email_id = Column(Integer, ForeignKey("emails.id", ondelete="CASCADE"), nullable=False)
    version = Column(Integer, nullable=False, default=1)
    ai_provider = Column(String(50), nullable=False)

    human_analysis = Column(JSON)  # summary, tone, intent, implicit context
    raw_extraction_json = Column(Text)

    quality_score = Column(Float)
    confidence_avg = Column(Float)
    events_extracted = Column(Integer, default=0)
    todos_extracted = Column(Integer, default=0)
    recurring_items = Column(Integer, default=0)
    inferred_items = Column(Integer, default=0)

    status = Column(String(20), nullable=False, default=AnalysisStatus.ANALYZED.value)
    review_notes = Column(Text)
    reviewed_at = Column(DateTime)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    email = relationship("Email", back_populates="analyses")

    __table_args__ = (
        UniqueConstraint('email_id', 'version', name='uq_analysis_email_version'),
        Index('ix_analyses_owner_status', 'owner_id', 'status'),
    )


class Todo(Base):
    """Action item derived from an email."""
    __tablename__ = "todos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=False)
    type = Column(String(20), nullable=False)  # PAY, BUY, PACK, ...
    due_date = Column(DateTime)
    child_name = Column(String(200))
    source_email_id = Column(Integer, ForeignKey("emails.id", ondelete="SET NULL"))

    url = Column(Text)
    amount = Column(String(50))
    confidence = Column(Float)
    recurring = Column(Boolean, default=False)
    recurrence_pattern = Column(String(200))
    responsible_party = Column(String(20))
    inferred = Column(Boolean, default=False)

    status = Column(String(20), nullable=False, default="pending")
    auto_completed = Column(Boolean, default=False)
    completed_at = Column(DateTime)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index('ix_todos_owner_status_due', 'owner_id', 'status', 'due_date'),
    )


class Event(Base):
    """Calendar event derived from an email (or from a PACK todo reminder)."""
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String(100), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text)
    date = Column(DateTime, nullable=False)
    end_date = Column(DateTime)
    location = Column(String(500))
    child_name = Column(String(200))
    source_email_id = Column(Integer, ForeignKey("emails.id", ondelete="SET NULL"))

    confidence = Column(Float)
    recurring = Column(Boolean, default=False)
    recurrence_pattern = Column(String(200))
    time_of_day = Column(String(20))
    inferred_date = Column(Boolean, default=False)
    reminder_for_todo_id = Column(Integer, ForeignKey("todos.id", ondelete="CASCADE"))

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index('ix_events_owner_date', 'owner_id', 'date'),
    )


class OnboardingJob(Base):
    """
    Long-running onboarding operation (inbox scan, child detection, ...).

    At most one non-terminal job exists per (owner_id, job_type).
    """
    __tablename__ = "onboarding_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String(100), nullable=False)
    job_type = Column(String(50), nullable=False, default=JobType.SCAN_INBOX.value)
    status = Column(String(20), nullable=False, default=JobStatus.PENDING.value)
    result_json = Column(Text)
    error_message = Column(Text)
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime)

    __table_args__ = (
        Index('ix_jobs_owner_type_started', 'owner_id', 'job_type', 'started_at'),
    )
