"""
Unit tests for the background job runner.
"""
import asyncio

import pytest
from unittest.mock import AsyncMock, Mock, patch
from sqlalchemy.exc import OperationalError

from homeroom.core.analysis import BatchAnalysisResult
from homeroom.core.database.models import JobStatus, JobType
from homeroom.core.jobs import JobTracker, JobRunner, email_analysis_work


@pytest.fixture
def tracker(session_factory, settings):
    return JobTracker(session_factory, settings)


@pytest.fixture
def runner(tracker):
    return JobRunner(tracker)


class TestJobRunner:
    """Test fire-and-forget execution"""

    @pytest.mark.asyncio
    async def test_start_returns_before_work_finishes(self, runner, tracker):
        release = asyncio.Event()

        async def work(progress):
            await release.wait()
            return {"processed": 2}

        job = runner.start("parent-1", JobType.SCAN_INBOX, work)

        assert job.status == JobStatus.PENDING
        assert runner.active == 1

        release.set()
        await runner.wait_idle()

        final = tracker.get_job(job.id)
        assert final.status == JobStatus.COMPLETE
        assert final.result == {"processed": 2}
        assert runner.active == 0

    @pytest.mark.asyncio
    async def test_progress_recorded(self, runner, tracker):
        seen = []

        async def work(progress):
            progress(JobStatus.SCANNING)
            seen.append(tracker.get_job(job.id).status)
            progress(JobStatus.RANKING)
            seen.append(tracker.get_job(job.id).status)
            return None

        job = runner.start("parent-1", JobType.SCAN_INBOX, work)
        await runner.wait_idle()

        assert seen == [JobStatus.SCANNING, JobStatus.RANKING]
        assert tracker.get_job(job.id).status == JobStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_failure_recorded_with_raw_message(self, runner, tracker):
        async def work(progress):
            progress(JobStatus.SCANNING)
            raise ConnectionError("Gmail API quota exceeded")

        job = runner.start("parent-1", JobType.SCAN_INBOX, work)
        await runner.wait_idle()

        final = tracker.get_job(job.id)
        assert final.status == JobStatus.FAILED
        assert final.error_message == "Gmail API quota exceeded"

    @pytest.mark.asyncio
    async def test_second_start_joins_running_job(self, runner, tracker):
        release = asyncio.Event()
        calls = []

        async def work(progress):
            calls.append(1)
            await release.wait()
            return {}

        first = runner.start("parent-1", JobType.SCAN_INBOX, work)
        second = runner.start("parent-1", JobType.SCAN_INBOX, work)

        assert second.id == first.id
        assert runner.active == 1

        release.set()
        await runner.wait_idle()
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_backwards_progress_fails_job(self, runner, tracker):
        async def work(progress):
            progress(JobStatus.RANKING)
            progress(JobStatus.SCANNING)

        job = runner.start("parent-1", JobType.SCAN_INBOX, work)
        await runner.wait_idle()

        final = tracker.get_job(job.id)
        assert final.status == JobStatus.FAILED
        assert "cannot go from ranking to scanning" in final.error_message

    @pytest.mark.asyncio
    async def test_storage_error_while_recording_failure_is_logged(self, runner, tracker, caplog):
        async def work(progress):
            raise ValueError("feed unreadable")

        locked = OperationalError("UPDATE onboarding_jobs", {}, Exception("database is locked"))
        with patch.object(tracker, "fail_job", side_effect=locked):
            runner.start("parent-1", JobType.SCAN_INBOX, work)
            task = next(iter(runner._tasks))
            await runner.wait_idle()

        assert task.exception() is None
        assert "Could not record failure of job" in caplog.text
        assert "database is locked" in caplog.text


class TestEmailAnalysisWork:
    """Test the inbox analysis job body"""

    @pytest.mark.asyncio
    async def test_scans_then_ranks(self, session_factory, settings):
        analyzer = Mock()
        analyzer.settings = settings
        analyzer.analyze_unanalyzed_emails = AsyncMock(return_value=BatchAnalysisResult(
            processed=3, successful=2, failed=1, events_created=4, todos_created=2,
            errors=["Email 9: timeout"],
        ))
        analyzer.analyses.get_analyses_pending_review.return_value = [Mock(email_id=7), Mock(email_id=8)]
        factory = Mock(return_value=analyzer)
        progress = Mock()
        extractor = Mock()

        work = email_analysis_work(session_factory, extractor, "parent-1", provider="anthropic", limit=10,
                                   analyzer_factory=factory)
        result = await work(progress)

        assert [c.args[0] for c in progress.call_args_list] == [JobStatus.SCANNING, JobStatus.RANKING]
        analyzer.analyze_unanalyzed_emails.assert_awaited_once_with("parent-1", "anthropic", 10)
        analyzer.analyses.get_analyses_pending_review.assert_called_once_with(
            "parent-1", threshold=settings.low_quality_threshold
        )
        assert factory.call_args.args[1] is extractor
        assert result == {
            "processed": 3,
            "successful": 2,
            "failed": 1,
            "events_created": 4,
            "todos_created": 2,
            "errors": ["Email 9: timeout"],
            "needs_review": [7, 8],
        }

    @pytest.mark.asyncio
    async def test_end_to_end_with_runner(self, runner, tracker, session_factory, registry, fake_openai,
                                          make_email, sample_extraction, settings):
        from homeroom.core.ai.extractor import EventTodoExtractor
        from homeroom.core.analysis import EmailAnalyzer

        make_email()
        fake_openai.results = [sample_extraction]

        def analyzer_factory(db, extractor):
            return EmailAnalyzer(db, extractor, settings=settings)

        work = email_analysis_work(session_factory, EventTodoExtractor(registry), "parent-1",
                                   analyzer_factory=analyzer_factory)
        job = runner.start("parent-1", JobType.SCAN_INBOX, work)
        await runner.wait_idle()

        final = tracker.get_job(job.id)
        assert final.status == JobStatus.COMPLETE
        assert final.result["processed"] == 1
        assert final.result["successful"] == 1
        assert final.result["todos_created"] == 1
