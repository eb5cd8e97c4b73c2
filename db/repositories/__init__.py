"""
Repository layer exports.
"""

from db.repositories.acquisition_run_repository import AcquisitionRunRepository
from db.repositories.credit_repository import CreditRepository
from db.repositories.intelligence_session_repository import IntelligenceSessionRepository

__all__ = [
    "AcquisitionRunRepository",
    "CreditRepository",
    "IntelligenceSessionRepository",
]
