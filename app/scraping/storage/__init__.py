"""
Storage layer exports.
"""

from app.scraping.storage.base import BillingStore, DocumentSink, SessionStore
from app.scraping.storage.sqlalchemy_storage import (
    SQLAlchemyBillingStore,
    SQLAlchemyDocumentSink,
    SQLAlchemySessionStore,
    to_session_record,
)

__all__ = [
    "BillingStore",
    "DocumentSink",
    "SQLAlchemyBillingStore",
    "SQLAlchemyDocumentSink",
    "SQLAlchemySessionStore",
    "SessionStore",
    "to_session_record",
]
