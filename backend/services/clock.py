from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def current_time() -> datetime:
    """
    FastAPI dependency supplying "now" to the scan and QR routes.

    Tests replace it through `app.dependency_overrides[current_time]` to pin
    the clock and simulate skew between the issuing and scanning devices.
    """
    return utc_now()


def as_utc(value: datetime) -> datetime:
    # Naive datetimes are read as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat_utc(value: datetime) -> str:
    """`2026-10-18T09:00:00.123Z`, the format student devices emit."""
    return as_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")
