from datetime import datetime

from backend.config import QR_FRESHNESS_WINDOW_SECONDS
from backend.errors import FuturePayload, StalePayload
from backend.services.clock import as_utc
from backend.services.qr_payload import ScanPayload


def payload_age_seconds(payload: ScanPayload, now: datetime) -> float:
    return (as_utc(now) - payload.issued_at).total_seconds()


def validate_payload(
    payload: ScanPayload,
    now: datetime,
    *,
    window_seconds: int = QR_FRESHNESS_WINDOW_SECONDS,
) -> str:
    """
    Accept a payload issued no more than `window_seconds` ago (inclusive) and
    not in the future. Returns the embedded student id.
    """
    age = payload_age_seconds(payload, now)
    if age < 0:
        raise FuturePayload(age_seconds=age)
    if age > window_seconds:
        raise StalePayload(
            f"QR code is invalid or expired. Must be scanned within {window_seconds} seconds.",
            age_seconds=age,
        )
    return payload.student_id
