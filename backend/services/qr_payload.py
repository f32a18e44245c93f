"""
Rotating QR payload carried from a student's device to the lecturer's scanner.

Wire format is a compact JSON object::

    {"studentId": "...", "name": "...", "timestamp": "2026-10-18T09:00:00.123Z"}

The payload is plain text, not signed. Anyone who captures it can replay it
until it goes stale.
"""
import json
from dataclasses import dataclass
from datetime import datetime

from backend.errors import MalformedPayload
from backend.services.clock import as_utc, isoformat_utc

_REQUIRED_FIELDS = ("studentId", "name", "timestamp")


@dataclass(frozen=True)
class ScanPayload:
    student_id: str
    student_name: str
    issued_at: datetime


def encode_payload(student_id: str, student_name: str, now: datetime) -> ScanPayload:
    return ScanPayload(
        student_id=student_id,
        student_name=student_name,
        issued_at=as_utc(now),
    )


def dump_payload(payload: ScanPayload) -> str:
    return json.dumps(
        {
            "studentId": payload.student_id,
            "name": payload.student_name,
            "timestamp": isoformat_utc(payload.issued_at),
        },
        separators=(",", ":"),
    )


def _parse_timestamp(value: str) -> datetime:
    text = value.strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except (ValueError, OverflowError):
        raise MalformedPayload("QR timestamp is not a valid ISO-8601 datetime.")


def decode_payload(raw: str | bytes) -> ScanPayload:
    """
    Parse scanned QR text. Raises MalformedPayload for anything that is not a
    JSON object with non-empty string `studentId`, `name` and `timestamp`.
    Freshness is not checked here.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            raise MalformedPayload()
    if not isinstance(raw, str) or not raw.strip():
        raise MalformedPayload()

    try:
        data = json.loads(raw)
    except (ValueError, RecursionError):
        raise MalformedPayload()

    if not isinstance(data, dict):
        raise MalformedPayload()

    for field in _REQUIRED_FIELDS:
        value = data.get(field)
        if not isinstance(value, str) or not value.strip():
            raise MalformedPayload(f"QR data is missing a valid '{field}'.")

    return ScanPayload(
        student_id=data["studentId"].strip(),
        student_name=data["name"].strip(),
        issued_at=_parse_timestamp(data["timestamp"]),
    )
