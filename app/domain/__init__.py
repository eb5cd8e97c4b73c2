"""
app/domain package marker.
"""

from app.domain.intelligence import (
    AcquisitionResult,
    CreditCheck,
    CreditTransaction,
    ExtractionSnapshot,
    ScraperRun,
    ScraperRunStatus,
    SessionDescriptor,
    SessionPhase,
    SessionRecord,
)

__all__ = [
    "AcquisitionResult",
    "CreditCheck",
    "CreditTransaction",
    "ExtractionSnapshot",
    "ScraperRun",
    "ScraperRunStatus",
    "SessionDescriptor",
    "SessionPhase",
    "SessionRecord",
]
