"""
Exception hierarchy for the acquisition core.
"""

from __future__ import annotations


class AcquisitionError(Exception):
    """Base exception for acquisition pipeline failures."""


class DiscoveryError(AcquisitionError):
    """Raised when URL discovery yields nothing usable for a domain."""


class ExtractionFailedError(AcquisitionError):
    """Raised when every page of a required extraction batch failed."""


class SessionNotFoundError(AcquisitionError):
    """Raised when a referenced session does not exist."""


class SessionConflictError(AcquisitionError):
    """Raised when a versioned session update keeps losing to concurrent writers."""


class SessionAbortedError(AcquisitionError):
    """Raised inside a running job once its session has been cancelled."""

    def __init__(self, reason: str | None = None) -> None:
        self.reason = reason or "Session aborted"
        super().__init__(self.reason)


class InsufficientCreditsError(AcquisitionError):
    """Raised when a paid step cannot be reserved against the user's balance."""

    def __init__(self, *, required: int, balance: int) -> None:
        self.required = required
        self.balance = balance
        super().__init__(f"Insufficient credits: required={required} balance={balance}")


class BackendHTTPError(AcquisitionError):
    """
    Raised by scraper backends when an upstream page responds with an error status.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        self.status_code = status_code
        self.retry_after = retry_after
        super().__init__(message)
