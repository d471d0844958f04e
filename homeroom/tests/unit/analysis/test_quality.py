"""
Unit tests for extraction quality scoring.
"""
import pytest

from homeroom.core.ai.extraction_schema import (
    ExtractionResult, ExtractedEvent, ExtractedTodo, HumanAnalysis,
)
from homeroom.core.analysis import quality


def _event(confidence=0.9, inferred=False, recurring=False):
    return ExtractedEvent(title="Trip", date="2024-03-05T09:00:00", confidence=confidence,
                          inferred_date=inferred, recurring=recurring)


def _todo(confidence=0.9, inferred=False, recurring=False):
    return ExtractedTodo(description="Pay for trip", type="PAY", confidence=confidence,
                         inferred=inferred, recurring=recurring)


FULL_ANALYSIS = HumanAnalysis(
    email_summary="Trip next week.",
    email_tone="friendly",
    email_intent="action required",
    implicit_context="Payment via the school app.",
)


class TestQualityScore:
    """Test the heuristic quality score"""

    def test_empty_result_scores_base(self):
        assert quality.score(ExtractionResult()) == pytest.approx(0.5)

    def test_confidence_and_human_fields(self):
        result = ExtractionResult(
            human_analysis=FULL_ANALYSIS,
            events=[_event(confidence=1.0)],
            todos=[_todo(confidence=1.0)],
        )

        # 0.5 + 1.0 * 0.3 + 4 * 0.05
        assert quality.score(result) == pytest.approx(1.0)

    def test_blank_human_fields_earn_nothing(self):
        analysis = HumanAnalysis(email_summary="Trip.", email_tone=" ", email_intent="", implicit_context="")
        result = ExtractionResult(human_analysis=analysis)

        assert quality.score(result) == pytest.approx(0.55)

    def test_over_inference_penalty(self):
        result = ExtractionResult(
            events=[_event(confidence=0.5, inferred=True)],
            todos=[_todo(confidence=0.5, inferred=True)],
        )

        # 0.5 + 0.5 * 0.3 - 0.1
        assert quality.score(result) == pytest.approx(0.55)

    def test_no_penalty_at_threshold(self):
        events = [_event(confidence=0.0, inferred=i < 7) for i in range(10)]
        result = ExtractionResult(events=events)

        assert quality.score(result) == pytest.approx(0.5)

    def test_score_is_bounded(self):
        result = ExtractionResult(
            human_analysis=FULL_ANALYSIS,
            events=[_event(confidence=1.0) for _ in range(5)],
        )
        low = ExtractionResult(events=[_event(confidence=0.0, inferred=True)])

        assert 0.0 <= quality.score(result) <= 1.0
        assert 0.0 <= quality.score(low) <= 1.0


class TestCounters:
    """Test the per-analysis counters"""

    def test_average_confidence_none_without_items(self):
        assert quality.average_confidence(ExtractionResult()) is None

    def test_average_confidence(self):
        result = ExtractionResult(events=[_event(confidence=0.6)], todos=[_todo(confidence=1.0)])

        assert quality.average_confidence(result) == pytest.approx(0.8)

    def test_recurring_and_inferred_counts(self):
        result = ExtractionResult(
            events=[_event(recurring=True, inferred=True), _event()],
            todos=[_todo(recurring=True), _todo(inferred=True)],
        )

        assert quality.count_recurring(result) == 2
        assert quality.count_inferred(result) == 2
