import json
from datetime import datetime, timedelta, timezone

import pytest

from backend.errors import MalformedPayload
from backend.services.qr_payload import decode_payload, dump_payload, encode_payload

ISSUED = datetime(2026, 3, 2, 8, 59, 50, 123000, tzinfo=timezone.utc)


def test_dump_uses_client_wire_format():
    payload = encode_payload("usr_1", "Alice Adams", ISSUED)
    data = json.loads(dump_payload(payload))
    assert data == {
        "studentId": "usr_1",
        "name": "Alice Adams",
        "timestamp": "2026-03-02T08:59:50.123Z",
    }


def test_dumped_payload_decodes_to_same_instant():
    payload = encode_payload("usr_1", "Alice Adams", ISSUED)
    decoded = decode_payload(dump_payload(payload))
    assert decoded == payload


def test_encode_normalizes_offset_to_utc():
    local = ISSUED.astimezone(timezone(timedelta(hours=8)))
    payload = encode_payload("usr_1", "Alice Adams", local)
    assert payload.issued_at.utcoffset() == timedelta(0)
    assert payload.issued_at == ISSUED


def test_decode_accepts_javascript_iso_string():
    raw = '{"studentId":"usr_9","name":"Bob","timestamp":"2026-03-02T08:59:59.999Z"}'
    payload = decode_payload(raw)
    assert payload.student_id == "usr_9"
    assert payload.student_name == "Bob"
    assert payload.issued_at == datetime(2026, 3, 2, 8, 59, 59, 999000, tzinfo=timezone.utc)


def test_decode_reads_naive_timestamp_as_utc():
    raw = '{"studentId":"usr_9","name":"Bob","timestamp":"2026-03-02T08:59:59"}'
    payload = decode_payload(raw)
    assert payload.issued_at == datetime(2026, 3, 2, 8, 59, 59, tzinfo=timezone.utc)


def test_decode_accepts_bytes():
    payload = decode_payload(b'{"studentId":"usr_9","name":"Bob","timestamp":"2026-03-02T08:59:59Z"}')
    assert payload.student_id == "usr_9"


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "   ",
        "not json",
        "[1, 2, 3]",
        '"just a string"',
        '{"name":"Bob","timestamp":"2026-03-02T08:59:59Z"}',
        '{"studentId":"usr_9","timestamp":"2026-03-02T08:59:59Z"}',
        '{"studentId":"usr_9","name":"Bob"}',
        '{"studentId":42,"name":"Bob","timestamp":"2026-03-02T08:59:59Z"}',
        '{"studentId":"usr_9","name":"Bob","timestamp":1772441999}',
        '{"studentId":"","name":"Bob","timestamp":"2026-03-02T08:59:59Z"}',
        '{"studentId":"usr_9","name":"Bob","timestamp":"yesterday"}',
        '{"studentId":"usr_9","name":"Bob","timestamp":"0001-01-01T00:00:00+05:00"}',
        '{"studentId":"usr_9","name":"Bob","timestamp":"9999-12-31T23:59:59-05:00"}',
        "[" * 100_000 + "]" * 100_000,
        b"\xff\xfe\x00",
    ],
)
def test_decode_rejects_malformed(raw):
    with pytest.raises(MalformedPayload) as exc_info:
        decode_payload(raw)
    assert exc_info.value.code == "MALFORMED_PAYLOAD"


def test_decode_accepts_short_fractional_seconds():
    raw = '{"studentId":"usr_9","name":"Bob","timestamp":"2026-03-02T08:59:59.1Z"}'
    payload = decode_payload(raw)
    assert payload.issued_at == datetime(2026, 3, 2, 8, 59, 59, 100000, tzinfo=timezone.utc)
