"""
Onboarding job tracker.

Persists the status of long-running operations so the UI can poll them.
Each call opens its own short session: jobs are updated from background
tasks that outlive the request that started them.

Status only moves forward (pending -> scanning -> ranking -> complete|failed)
and terminal states are final.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional, Tuple

from sqlalchemy.orm import Session, sessionmaker

from homeroom.core.config import Settings, get_settings
from homeroom.core.database.connection import session_scope
from homeroom.core.database.models import OnboardingJob, JobStatus, JobType

logger = logging.getLogger(__name__)

STATUS_ORDER = [JobStatus.PENDING, JobStatus.SCANNING, JobStatus.RANKING, JobStatus.COMPLETE]


class InvalidJobTransition(Exception):
    """Attempt to move a job backwards or out of a terminal state."""
    pass


class JobNotFoundError(Exception):
    pass


@dataclass
class JobRecord:
    """Snapshot of a job row, safe to hand out after the session closes."""
    id: int
    owner_id: str
    job_type: JobType
    status: JobStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    result_json: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def result(self) -> Any:
        return json.loads(self.result_json) if self.result_json else None

    @classmethod
    def from_row(cls, job: OnboardingJob) -> "JobRecord":
        return cls(
            id=job.id,
            owner_id=job.owner_id,
            job_type=JobType(job.job_type),
            status=JobStatus(job.status),
            started_at=job.started_at,
            completed_at=job.completed_at,
            error_message=job.error_message,
            result_json=job.result_json,
        )


def _rank(status: JobStatus) -> int:
    # complete and failed are both terminal and rank equally
    if status == JobStatus.FAILED:
        return STATUS_ORDER.index(JobStatus.COMPLETE)
    return STATUS_ORDER.index(status)


class JobTracker:
    """Storage-backed job status with at-most-one in-flight job per (owner, type)."""

    def __init__(self, session_factory: Optional[sessionmaker] = None, settings: Optional[Settings] = None):
        self.session_factory = session_factory
        self.settings = settings or get_settings()

    @property
    def stale_after(self) -> timedelta:
        return timedelta(seconds=self.settings.job_stale_after_seconds)

    def _is_stale(self, job: OnboardingJob, now: datetime) -> bool:
        return job.started_at is not None and now - job.started_at > self.stale_after

    def _get(self, db: Session, job_id: int) -> OnboardingJob:
        job = db.query(OnboardingJob).filter(OnboardingJob.id == job_id).first()
        if not job:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    def _latest(self, db: Session, owner_id: str, job_type: JobType) -> Optional[OnboardingJob]:
        return db.query(OnboardingJob).filter(
            OnboardingJob.owner_id == owner_id,
            OnboardingJob.job_type == JobType(job_type).value,
        ).order_by(OnboardingJob.started_at.desc(), OnboardingJob.id.desc()).first()

    def create_or_get_job(self, owner_id: str, job_type: JobType = JobType.SCAN_INBOX) -> Tuple[JobRecord, bool]:
        """
        Return the in-flight job for (owner, type), or create a new pending one.

        A job stuck in flight past the stale timeout is failed first so a
        new one can start.

        Returns:
            (job, created)
        """
        job_type = JobType(job_type)
        now = datetime.utcnow()

        with session_scope(self.session_factory) as db:
            in_flight = db.query(OnboardingJob).filter(
                OnboardingJob.owner_id == owner_id,
                OnboardingJob.job_type == job_type.value,
                OnboardingJob.status.notin_([JobStatus.COMPLETE.value, JobStatus.FAILED.value]),
            ).order_by(OnboardingJob.started_at.desc()).all()

            for job in in_flight:
                if self._is_stale(job, now):
                    logger.warning(f"Job {job.id} ({job_type.value}) for {owner_id} is stale, marking failed")
                    job.status = JobStatus.FAILED.value
                    job.error_message = (
                        f"Job stale: no completion after {self.settings.job_stale_after_seconds}s"
                    )
                    job.completed_at = now
                else:
                    logger.info(f"Job {job.id} ({job_type.value}) already in progress for {owner_id}")
                    return JobRecord.from_row(job), False

            job = OnboardingJob(
                owner_id=owner_id,
                job_type=job_type.value,
                status=JobStatus.PENDING.value,
                started_at=now,
            )
            db.add(job)
            db.flush()
            logger.info(f"Created job {job.id} ({job_type.value}) for {owner_id}")
            return JobRecord.from_row(job), True

    def create_job(self, owner_id: str, job_type: JobType = JobType.SCAN_INBOX) -> JobRecord:
        """Create a job, or return the one already in flight for (owner, type)."""
        job, _ = self.create_or_get_job(owner_id, job_type)
        return job

    def update_job_status(self, job_id: int, status: JobStatus) -> JobRecord:
        """
        Move a job forward.

        Same status is a no-op.

        Raises:
            JobNotFoundError: Unknown job id
            InvalidJobTransition: Backwards move or job already terminal
        """
        status = JobStatus(status)
        with session_scope(self.session_factory) as db:
            job = self._get(db, job_id)
            current = JobStatus(job.status)

            if current == status:
                return JobRecord.from_row(job)
            if current.is_terminal:
                raise InvalidJobTransition(f"Job {job_id} is already {current.value}")
            if _rank(status) < _rank(current):
                raise InvalidJobTransition(f"Job {job_id} cannot go from {current.value} to {status.value}")

            job.status = status.value
            if status.is_terminal:
                job.completed_at = datetime.utcnow()
            db.flush()
            logger.debug(f"Job {job_id}: {current.value} -> {status.value}")
            return JobRecord.from_row(job)

    def complete_job(self, job_id: int, result: Any = None) -> JobRecord:
        """Mark a job complete and store its result as JSON."""
        with session_scope(self.session_factory) as db:
            job = self._get(db, job_id)
            if JobStatus(job.status).is_terminal:
                raise InvalidJobTransition(f"Job {job_id} is already {job.status}")
            job.status = JobStatus.COMPLETE.value
            job.result_json = json.dumps(result, default=str) if result is not None else None
            job.completed_at = datetime.utcnow()
            db.flush()
            logger.info(f"Job {job_id} complete")
            return JobRecord.from_row(job)

    def fail_job(self, job_id: int, error_message: str) -> JobRecord:
        """Mark a job failed with the raw error message."""
        with session_scope(self.session_factory) as db:
            job = self._get(db, job_id)
            if JobStatus(job.status).is_terminal:
                raise InvalidJobTransition(f"Job {job_id} is already {job.status}")
            job.status = JobStatus.FAILED.value
            job.error_message = error_message
            job.completed_at = datetime.utcnow()
            db.flush()
            logger.warning(f"Job {job_id} failed: {error_message}")
            return JobRecord.from_row(job)

    def get_job(self, job_id: int) -> Optional[JobRecord]:
        with session_scope(self.session_factory) as db:
            job = db.query(OnboardingJob).filter(OnboardingJob.id == job_id).first()
            return JobRecord.from_row(job) if job else None

    def get_latest_job(self, owner_id: str, job_type: JobType = JobType.SCAN_INBOX) -> Optional[JobRecord]:
        """Most recently started job of a type for an owner."""
        with session_scope(self.session_factory) as db:
            job = self._latest(db, owner_id, job_type)
            return JobRecord.from_row(job) if job else None

    def is_job_in_progress(self, owner_id: str, job_type: JobType = JobType.SCAN_INBOX) -> bool:
        """True if the latest job is non-terminal and not stale."""
        with session_scope(self.session_factory) as db:
            job = self._latest(db, owner_id, job_type)
            if not job or JobStatus(job.status).is_terminal:
                return False
            return not self._is_stale(job, datetime.utcnow())

    def get_job_result(self, job_id: int) -> Any:
        """Parsed result of a completed job (None if absent or not complete)."""
        job = self.get_job(job_id)
        if not job or job.status != JobStatus.COMPLETE:
            return None
        return job.result

    def delete_old_jobs(self, older_than_days: int = 30) -> int:
        """Delete terminal jobs started more than N days ago. Returns rows deleted."""
        cutoff = datetime.utcnow() - timedelta(days=older_than_days)
        with session_scope(self.session_factory) as db:
            deleted = db.query(OnboardingJob).filter(
                OnboardingJob.started_at < cutoff,
                OnboardingJob.status.in_([JobStatus.COMPLETE.value, JobStatus.FAILED.value]),
            ).delete(synchronize_session=False)
            if deleted:
                logger.info(f"Deleted {deleted} old job(s)")
            return deleted

    # Inbox-scan aliases

    def create_scan(self, owner_id: str) -> JobRecord:
        return self.create_job(owner_id, JobType.SCAN_INBOX)

    def update_scan_status(self, job_id: int, status: JobStatus) -> JobRecord:
        return self.update_job_status(job_id, status)

    def complete_scan(self, job_id: int, result: Any = None) -> JobRecord:
        return self.complete_job(job_id, result)

    def fail_scan(self, job_id: int, error_message: str) -> JobRecord:
        return self.fail_job(job_id, error_message)

    def get_latest_scan(self, owner_id: str) -> Optional[JobRecord]:
        return self.get_latest_job(owner_id, JobType.SCAN_INBOX)

    def is_scan_in_progress(self, owner_id: str) -> bool:
        return self.is_job_in_progress(owner_id, JobType.SCAN_INBOX)
