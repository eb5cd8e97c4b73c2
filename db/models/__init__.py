"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.credit import CreditAccount, CreditTransactionRecord
from db.models.extraction_snapshot import ExtractionSnapshotRecord
from db.models.intelligence_session import IntelligenceSession, SessionPhaseValue
from db.models.scraper_run import ScraperRunRecord

__all__ = [
    "CreditAccount",
    "CreditTransactionRecord",
    "ExtractionSnapshotRecord",
    "IntelligenceSession",
    "ScraperRunRecord",
    "SessionPhaseValue",
]
