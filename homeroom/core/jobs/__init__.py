"""Tracked background jobs (onboarding scans and batch analysis)."""
from .tracker import JobTracker, JobRecord, InvalidJobTransition, JobNotFoundError
from .runner import JobRunner, email_analysis_work

__all__ = [
    'JobTracker',
    'JobRecord',
    'InvalidJobTransition',
    'JobNotFoundError',
    'JobRunner',
    'email_analysis_work',
]
