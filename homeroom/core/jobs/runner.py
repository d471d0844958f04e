"""
Background job runner.

`start()` registers a job, schedules the work on the running event loop and
returns the job handle immediately. The task boundary records the outcome:
`complete` with the work's return value, or `failed` with the exception
message.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

from sqlalchemy.orm import sessionmaker

from homeroom.core.ai.extractor import EventTodoExtractor
from homeroom.core.analysis.pipeline import EmailAnalyzer
from homeroom.core.database.models import JobStatus, JobType
from .tracker import JobTracker, JobRecord

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[JobStatus], None]
JobWork = Callable[[ProgressCallback], Awaitable[Any]]


class JobRunner:
    """Fire-and-forget execution of tracked jobs."""

    def __init__(self, tracker: JobTracker):
        self.tracker = tracker
        self._tasks: Set[asyncio.Task] = set()

    def start(self, owner_id: str, job_type: JobType, work: JobWork) -> JobRecord:
        """
        Start a job unless one of the same type is already in flight.

        Must be called from inside a running event loop.

        Args:
            owner_id: Account owner
            job_type: Kind of job
            work: Coroutine function taking a progress callback and returning
                a JSON-serializable result

        Returns:
            The job handle (the existing one if a job was already in flight)
        """
        job, created = self.tracker.create_or_get_job(owner_id, job_type)
        if not created:
            return job

        task = asyncio.create_task(self._run(job.id, work), name=f"job-{job.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return job

    async def _run(self, job_id: int, work: JobWork):
        def progress(status: JobStatus):
            self.tracker.update_job_status(job_id, status)

        try:
            result = await work(progress)
        except Exception as e:
            logger.error(f"Job {job_id} raised: {e}")
            try:
                self.tracker.fail_job(job_id, str(e))
            except Exception as record_error:
                logger.error(f"Could not record failure of job {job_id}: {record_error}")
            return

        try:
            self.tracker.complete_job(job_id, result)
        except Exception as e:
            logger.error(f"Could not record completion of job {job_id}: {e}")
            try:
                self.tracker.fail_job(job_id, str(e))
            except Exception as record_error:
                logger.error(f"Job {job_id} left as is: {record_error}")

    @property
    def active(self) -> int:
        return len(self._tasks)

    async def wait_idle(self):
        """Wait until every started job has finished (CLI and tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


def email_analysis_work(
    session_factory: sessionmaker,
    extractor: EventTodoExtractor,
    owner_id: str,
    provider: Optional[str] = None,
    limit: Optional[int] = None,
    analyzer_factory: Callable[..., EmailAnalyzer] = EmailAnalyzer,
) -> JobWork:
    """
    Build the work function for an inbox analysis job.

    scanning: analyze unanalyzed emails one by one
    ranking: collect the low-quality analyses that need review
    """
    async def work(progress: ProgressCallback) -> dict:
        db = session_factory()
        try:
            analyzer = analyzer_factory(db, extractor)

            progress(JobStatus.SCANNING)
            batch = await analyzer.analyze_unanalyzed_emails(owner_id, provider, limit)

            progress(JobStatus.RANKING)
            needs_review = analyzer.analyses.get_analyses_pending_review(
                owner_id, threshold=analyzer.settings.low_quality_threshold
            )

            return {
                "processed": batch.processed,
                "successful": batch.successful,
                "failed": batch.failed,
                "events_created": batch.events_created,
                "todos_created": batch.todos_created,
                "errors": batch.errors,
                "needs_review": [a.email_id for a in needs_review],
            }
        finally:
            db.close()

    return work
