"""
app/schemas package marker.
"""

from app.schemas.intelligence import (
    AbortSessionRequest,
    SessionAcceptedResponse,
    SessionStatusResponse,
    StartSessionRequest,
)

__all__ = [
    "AbortSessionRequest",
    "SessionAcceptedResponse",
    "SessionStatusResponse",
    "StartSessionRequest",
]
