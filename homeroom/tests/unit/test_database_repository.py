"""
Unit tests for database repositories.
Run against an in-memory SQLite database.
"""
import pytest
from datetime import datetime

from homeroom.core.database.models import AnalysisStatus
from homeroom.core.database.repository import (
    AnalysisRepository, ChildProfileRepository, EmailRepository, sanitize_for_storage, parse_iso_datetime,
)


def add_analysis(db, email, version=1, quality_score=0.8, owner_id="parent-1"):
    analysis = AnalysisRepository(db).create_email_analysis(
        owner_id=owner_id,
        email_id=email.id,
        version=version,
        ai_provider="openai",
        human_analysis=None,
        raw_extraction_json="{}",
        quality_score=quality_score,
        confidence_avg=0.9,
        events_extracted=1,
        todos_extracted=2,
        recurring_items=1,
        inferred_items=0,
    )
    db.commit()
    return analysis


class TestHelpers:
    """Test storage helpers"""

    def test_sanitize_removes_nul(self):
        assert sanitize_for_storage("a\x00b\x00c") == "abc"

    def test_sanitize_truncates(self):
        assert sanitize_for_storage("abcdef", max_length=3) == "abc"

    def test_sanitize_none(self):
        assert sanitize_for_storage(None) is None

    def test_parse_iso_datetime_naive(self):
        assert parse_iso_datetime("2024-03-05T09:00:00Z") == datetime(2024, 3, 5, 9, 0)

    def test_parse_iso_datetime_invalid(self):
        assert parse_iso_datetime("next Tuesday") is None
        assert parse_iso_datetime(None) is None


class TestEmailRepository:
    """Test email lookups are scoped to the owner"""

    def test_get_email_by_id_scoped(self, db, make_email):
        email = make_email(owner_id="parent-1")
        repo = EmailRepository(db)

        assert repo.get_email_by_id("parent-1", email.id) is email
        assert repo.get_email_by_id("parent-2", email.id) is None

    def test_list_emails_filters_analyzed(self, db, make_email):
        make_email(subject="A")
        analyzed = make_email(subject="B", analyzed=True)

        assert EmailRepository(db).list_emails("parent-1", analyzed=True) == [analyzed]


class TestChildProfileRepository:

    def test_active_profiles_in_id_order(self, db, make_child):
        amy = make_child("Amy Smith")
        make_child("Zoe Smith", is_active=False)
        tom = make_child("Tom Smith")

        assert ChildProfileRepository(db).get_child_profiles("parent-1") == [amy, tom]
        assert len(ChildProfileRepository(db).get_child_profiles("parent-1", active_only=False)) == 3


class TestAnalysisRepository:
    """Test versioned analyses"""

    def test_unanalyzed_newest_first(self, db, make_email):
        older = make_email(date=datetime(2024, 3, 1))
        newer = make_email(date=datetime(2024, 3, 3))
        done = make_email(date=datetime(2024, 3, 2))
        make_email(owner_id="parent-2")
        add_analysis(db, done)

        assert AnalysisRepository(db).get_unanalyzed_email_ids("parent-1") == [newer.id, older.id]

    def test_unanalyzed_limit(self, db, make_email):
        for day in range(1, 5):
            make_email(date=datetime(2024, 3, day))

        assert len(AnalysisRepository(db).get_unanalyzed_email_ids("parent-1", limit=2)) == 2

    def test_latest_version_returned(self, db, make_email):
        email = make_email()
        add_analysis(db, email, version=1)
        second = add_analysis(db, email, version=2)

        assert AnalysisRepository(db).get_analysis_by_email_id("parent-1", email.id) is second

    def test_delete_returns_highest_version(self, db, make_email):
        email = make_email()
        add_analysis(db, email, version=1)
        add_analysis(db, email, version=2)
        repo = AnalysisRepository(db)

        assert repo.delete_analyses_for_email("parent-1", email.id) == 2
        assert repo.get_analysis_by_email_id("parent-1", email.id) is None
        assert repo.delete_analyses_for_email("parent-1", email.id) == 0

    def test_review_sets_timestamp(self, db, make_email):
        analysis = add_analysis(db, make_email())
        repo = AnalysisRepository(db)

        updated = repo.update_analysis_status("parent-1", analysis.id, AnalysisStatus.APPROVED, "Looks right")

        assert updated.status == "approved"
        assert updated.review_notes == "Looks right"
        assert updated.reviewed_at is not None

    def test_update_unknown_analysis(self, db):
        assert AnalysisRepository(db).update_analysis_status("parent-1", 999, AnalysisStatus.REVIEWED) is None

    def test_pending_review_below_threshold(self, db, make_email):
        low = add_analysis(db, make_email(), quality_score=0.55)
        add_analysis(db, make_email(), quality_score=0.9)
        reviewed = add_analysis(db, make_email(), quality_score=0.4)
        AnalysisRepository(db).update_analysis_status("parent-1", reviewed.id, AnalysisStatus.REVIEWED)
        db.commit()

        assert AnalysisRepository(db).get_analyses_pending_review("parent-1", threshold=0.7) == [low]

    def test_stats(self, db, make_email):
        add_analysis(db, make_email(), quality_score=0.6)
        add_analysis(db, make_email(), quality_score=0.8)

        stats = AnalysisRepository(db).get_analysis_stats("parent-1")

        assert stats["total"] == 2
        assert stats["analyzed"] == 2
        assert stats["avg_quality_score"] == pytest.approx(0.7)
        assert stats["total_events"] == 2
        assert stats["total_todos"] == 4

    def test_stats_empty(self, db):
        stats = AnalysisRepository(db).get_analysis_stats("nobody")

        assert stats["total"] == 0
        assert stats["avg_quality_score"] is None
