"""Email analysis: scoring, due-date repair and persistence of extracted items."""
from .pipeline import EmailAnalyzer, AnalysisResult, BatchAnalysisResult
from .cleanup import cleanup_past_items, CleanupResult
from .due_dates import fix_due_date
from .quality import score as quality_score

__all__ = [
    'EmailAnalyzer',
    'AnalysisResult',
    'BatchAnalysisResult',
    'cleanup_past_items',
    'CleanupResult',
    'fix_due_date',
    'quality_score',
]
