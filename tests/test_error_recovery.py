"""
tests/test_error_recovery.py

Unit tests for fault classification and RecoveryHandler decisions.

Coverage
--------
- Status and exception classification
- Retry-After parsing
- Retries never exceed max_retries, with exponential delays
- Rate limit delays
- Delays capped at max_delay
- Network retry cap
- Immediate skips for client errors and unclassified faults
- Abort fallback for exhausted server errors
- Attempt counters cleared after exhaustion
"""

from __future__ import annotations

import pytest
import requests

from app.acquisition.errors import BackendHTTPError
from app.acquisition.recovery import (
    FaultClass,
    RecoveryHandler,
    RecoveryOptions,
    classify_fault,
    classify_status,
    parse_retry_after,
)
from app.scraping.config.models import FallbackStrategy

URL = "https://acme.com/pricing"


def _http(status: int, retry_after: float | None = None) -> BackendHTTPError:
    return BackendHTTPError(f"HTTP {status}", status_code=status, retry_after=retry_after)


def _drain(handler: RecoveryHandler, fault: BaseException, options: RecoveryOptions):
    decisions = []
    while True:
        decision = handler.handle(fault, URL, options)
        decisions.append(decision)
        if not decision.should_retry:
            return decisions
        assert len(decisions) < 50


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


class TestClassification:
    @pytest.mark.parametrize(
        ("status", "expected"),
        [
            (429, FaultClass.RATE_LIMITED),
            (401, FaultClass.UNAUTHORIZED),
            (403, FaultClass.FORBIDDEN),
            (404, FaultClass.NOT_FOUND),
            (410, FaultClass.NOT_FOUND),
            (408, FaultClass.NETWORK),
            (500, FaultClass.SERVER_ERROR),
            (503, FaultClass.SERVER_ERROR),
            (418, FaultClass.UNCLASSIFIED),
        ],
    )
    def test_status_codes(self, status: int, expected: FaultClass) -> None:
        assert classify_status(status) == expected

    def test_requests_http_error_uses_response(self) -> None:
        response = requests.Response()
        response.status_code = 429
        response.headers["Retry-After"] = "7"

        classified = classify_fault(requests.HTTPError("429", response=response))

        assert classified.fault_class == FaultClass.RATE_LIMITED
        assert classified.retry_after == 7.0
        assert classified.signature == "RATE_LIMITED:429"

    @pytest.mark.parametrize(
        "fault",
        [TimeoutError(), requests.Timeout(), requests.ConnectionError(), ConnectionRefusedError()],
    )
    def test_transport_faults_are_network(self, fault: BaseException) -> None:
        assert classify_fault(fault).fault_class == FaultClass.NETWORK

    def test_message_hints(self) -> None:
        assert classify_fault(RuntimeError("net::ERR_NAME_NOT_RESOLVED")).fault_class == FaultClass.NETWORK
        assert classify_fault(RuntimeError("Blocked by captcha")).fault_class == FaultClass.FORBIDDEN
        assert classify_fault(RuntimeError("something odd")).fault_class == FaultClass.UNCLASSIFIED

    def test_retry_after_parsing(self) -> None:
        assert parse_retry_after("120") == 120.0
        assert parse_retry_after("-5") == 0.0
        assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") == 0.0
        assert parse_retry_after("soon") is None
        assert parse_retry_after(None) is None


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


class TestRecoveryDecisions:
    @pytest.mark.parametrize("max_retries", [0, 1, 2, 3, 5])
    def test_never_retries_beyond_max_retries(self, max_retries: int) -> None:
        decisions = _drain(RecoveryHandler(), _http(503), RecoveryOptions(max_retries=max_retries))

        assert sum(1 for decision in decisions if decision.should_retry) == max_retries
        assert decisions[-1].should_skip is True

    def test_server_errors_back_off_exponentially(self) -> None:
        decisions = _drain(RecoveryHandler(), _http(502), RecoveryOptions(max_retries=3, retry_delay=1.0))

        assert [d.delay_seconds for d in decisions if d.should_retry] == [1.0, 2.0, 4.0]
        assert [d.attempt for d in decisions] == [1, 2, 3, 3]

    def test_rate_limit_honours_retry_after(self) -> None:
        decision = RecoveryHandler().handle(_http(429, retry_after=12.0), URL, RecoveryOptions())

        assert decision.should_retry is True
        assert decision.delay_seconds == 12.0

    def test_rate_limit_without_header_backs_off_linearly(self) -> None:
        decisions = _drain(RecoveryHandler(), _http(429), RecoveryOptions(max_retries=3, retry_delay=2.0))

        assert [d.delay_seconds for d in decisions if d.should_retry] == [2.0, 4.0, 6.0]

    def test_delays_are_capped_at_max_delay(self) -> None:
        options = RecoveryOptions(max_retries=3, retry_delay=10.0, max_delay=25.0)

        rate_limited = RecoveryHandler().handle(_http(429, retry_after=3600.0), URL, options)
        server_errors = _drain(RecoveryHandler(), _http(503), options)

        assert rate_limited.delay_seconds == 25.0
        assert [d.delay_seconds for d in server_errors if d.should_retry] == [10.0, 20.0, 25.0]

    def test_network_faults_retry_at_most_twice(self) -> None:
        decisions = _drain(RecoveryHandler(), ConnectionResetError(), RecoveryOptions(max_retries=5))

        assert sum(1 for decision in decisions if decision.should_retry) == 2
        assert decisions[-1].fault_class == FaultClass.NETWORK

    @pytest.mark.parametrize("status", [401, 403, 404])
    def test_client_errors_skip_immediately(self, status: int) -> None:
        decision = RecoveryHandler().handle(_http(status), URL, RecoveryOptions(max_retries=5))

        assert decision.should_skip is True
        assert decision.should_retry is False
        assert decision.delay_seconds == 0.0

    def test_unclassified_faults_skip(self) -> None:
        decision = RecoveryHandler().handle(ValueError("weird"), URL, RecoveryOptions())

        assert decision.should_skip is True
        assert decision.fault_class == FaultClass.UNCLASSIFIED

    def test_abort_fallback_for_exhausted_server_errors(self) -> None:
        options = RecoveryOptions(max_retries=1, fallback_strategy=FallbackStrategy.ABORT)

        decisions = _drain(RecoveryHandler(), _http(500), options)

        assert decisions[-1].should_abort is True
        assert decisions[-1].should_skip is False

    def test_abort_fallback_does_not_apply_to_network_faults(self) -> None:
        options = RecoveryOptions(max_retries=1, fallback_strategy=FallbackStrategy.ABORT)

        decisions = _drain(RecoveryHandler(), TimeoutError(), options)

        assert decisions[-1].should_skip is True

    def test_exhausted_key_is_cleared_and_can_start_over(self) -> None:
        handler = RecoveryHandler()
        options = RecoveryOptions(max_retries=2)
        _drain(handler, _http(503), options)

        assert handler.pending_keys() == []
        assert handler.handle(_http(503), URL, options).attempt == 1

    def test_different_faults_on_one_url_count_separately(self) -> None:
        handler = RecoveryHandler()
        options = RecoveryOptions(max_retries=1)

        assert handler.handle(_http(503), URL, options).should_retry is True
        assert handler.handle(_http(502), URL, options).should_retry is True
        assert len(handler.pending_keys()) == 2

        handler.clear(URL)
        assert handler.pending_keys() == []

    def test_statistics(self) -> None:
        handler = RecoveryHandler()
        handler.handle(_http(503), URL, RecoveryOptions())
        handler.handle(_http(404), URL, RecoveryOptions())

        stats = handler.statistics()

        assert stats["total_errors"] == 2
        assert stats["by_fault_class"] == {"SERVER_ERROR": 1, "NOT_FOUND": 1}
        assert stats["active_retry_keys"] == 1
        assert len(stats["recent_errors"]) == 2

        handler.clear_history()
        assert handler.statistics()["total_errors"] == 0
