"""
Quality scoring for extraction results.

The score is advisory: it flags analyses for review and never blocks
persistence.
"""
from typing import Optional

from homeroom.core.ai.extraction_schema import ExtractionResult

BASE_SCORE = 0.5
CONFIDENCE_WEIGHT = 0.3
HUMAN_FIELD_BONUS = 0.05
OVER_INFERENCE_RATIO = 0.7
OVER_INFERENCE_PENALTY = 0.1


def average_confidence(result: ExtractionResult) -> Optional[float]:
    """Mean confidence over all events and todos, or None when there are none."""
    confidences = [item.confidence or 0.0 for item in result.items]
    if not confidences:
        return None
    return sum(confidences) / len(confidences)


def count_recurring(result: ExtractionResult) -> int:
    return sum(1 for item in result.items if item.recurring)


def count_inferred(result: ExtractionResult) -> int:
    return (
        sum(1 for event in result.events if event.inferred_date)
        + sum(1 for todo in result.todos if todo.inferred)
    )


def score(result: ExtractionResult) -> float:
    """
    Heuristic quality of an extraction in [0, 1].

    - start at 0.5
    - add up to 0.3 for average item confidence
    - add 0.05 for each filled human-analysis field
    - subtract 0.1 when more than 70% of items are inferred
    """
    value = BASE_SCORE

    avg = average_confidence(result)
    if avg is not None:
        value += avg * CONFIDENCE_WEIGHT

    analysis = result.human_analysis
    if analysis:
        for field_value in (analysis.email_summary, analysis.email_tone,
                            analysis.email_intent, analysis.implicit_context):
            if field_value and field_value.strip():
                value += HUMAN_FIELD_BONUS

    total = len(result.events) + len(result.todos)
    if total and count_inferred(result) / total > OVER_INFERENCE_RATIO:
        value -= OVER_INFERENCE_PENALTY

    return max(0.0, min(1.0, value))
