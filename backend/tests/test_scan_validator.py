from datetime import datetime, timedelta, timezone

import pytest

from backend.errors import FuturePayload, StalePayload
from backend.services.qr_payload import encode_payload
from backend.services.scan_validator import payload_age_seconds, validate_payload

NOW = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


def _issued(seconds_ago: float):
    return encode_payload("usr_1", "Alice Adams", NOW - timedelta(seconds=seconds_ago))


@pytest.mark.parametrize("age", [0, 0.5, 5, 10, 29.999, 30])
def test_fresh_payload_returns_student_id(age):
    assert validate_payload(_issued(age), NOW) == "usr_1"


@pytest.mark.parametrize("age", [30.001, 31, 45, 3600])
def test_stale_payload_rejected(age):
    with pytest.raises(StalePayload) as exc_info:
        validate_payload(_issued(age), NOW)
    assert exc_info.value.code == "STALE_PAYLOAD"
    assert exc_info.value.context["age_seconds"] == pytest.approx(age)


@pytest.mark.parametrize("age", [-0.001, -1, -120])
def test_future_payload_rejected(age):
    with pytest.raises(FuturePayload) as exc_info:
        validate_payload(_issued(age), NOW)
    assert exc_info.value.code == "FUTURE_PAYLOAD"


def test_scanner_clock_behind_student_clock_is_future():
    # Student device runs 3s fast relative to the server.
    payload = encode_payload("usr_1", "Alice Adams", NOW + timedelta(seconds=3))
    with pytest.raises(FuturePayload):
        validate_payload(payload, NOW)


def test_custom_window():
    assert validate_payload(_issued(50), NOW, window_seconds=60) == "usr_1"
    with pytest.raises(StalePayload):
        validate_payload(_issued(11), NOW, window_seconds=10)


def test_naive_now_is_read_as_utc():
    naive_now = NOW.replace(tzinfo=None)
    assert payload_age_seconds(_issued(12), naive_now) == pytest.approx(12)
