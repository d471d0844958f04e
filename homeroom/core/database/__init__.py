"""Database module"""
from .models import (
    Base, Email, EmailAttachment, ChildProfile, EmailAnalysis, Todo, Event, OnboardingJob,
    AttachmentStatus, AnalysisStatus, JobType, JobStatus,
)
from .connection import (
    get_db, init_db, session_scope, get_session_factory, create_tables, enable_sqlite_savepoints,
)

__all__ = [
    'Base',
    'Email',
    'EmailAttachment',
    'ChildProfile',
    'EmailAnalysis',
    'Todo',
    'Event',
    'OnboardingJob',
    'AttachmentStatus',
    'AnalysisStatus',
    'JobType',
    'JobStatus',
    'get_db',
    'init_db',
    'session_scope',
    'get_session_factory',
    'create_tables',
    'enable_sqlite_savepoints',
]
