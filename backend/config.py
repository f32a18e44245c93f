import os
import secrets
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]

DB_PATH = Path(os.getenv("QRATTEND_DB_PATH", BASE_DIR / "database" / "qrattend.db"))
SIGNING_KEY = os.getenv("QRATTEND_SIGNING_KEY", "").strip() or secrets.token_urlsafe(32)
AUTH_TOKEN_TTL_SECONDS = int(os.getenv("QRATTEND_AUTH_TOKEN_TTL_SECONDS", "43200"))
LOG_LEVEL = os.getenv("QRATTEND_LOG_LEVEL", "INFO").strip().upper() or "INFO"


def _parse_bool(value: str | None, fallback: bool) -> bool:
    if value is None:
        return fallback
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return fallback


def _parse_csv(value: str | None, fallback: list[str]) -> list[str]:
    if not value:
        return fallback
    parsed = [item.strip() for item in value.split(",") if item.strip()]
    return parsed or fallback


CORS_ALLOW_ORIGINS = _parse_csv(
    os.getenv("QRATTEND_CORS_ALLOW_ORIGINS"),
    ["http://localhost:8081", "http://127.0.0.1:8081"],
)
CORS_ALLOW_METHODS = _parse_csv(
    os.getenv("QRATTEND_CORS_ALLOW_METHODS"),
    ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
)
CORS_ALLOW_HEADERS = _parse_csv(
    os.getenv("QRATTEND_CORS_ALLOW_HEADERS"),
    ["Authorization", "Content-Type", "Accept"],
)
CORS_ALLOW_CREDENTIALS = _parse_bool(os.getenv("QRATTEND_CORS_ALLOW_CREDENTIALS"), True)
ENABLE_DEBUG_ENDPOINTS = _parse_bool(os.getenv("QRATTEND_ENABLE_DEBUG_ENDPOINTS"), False)

# QR freshness: a payload is accepted while 0 <= age <= window.
QR_FRESHNESS_WINDOW_SECONDS = max(
    1,
    int(os.getenv("QRATTEND_QR_FRESHNESS_WINDOW_SECONDS", "30")),
)
# Student devices re-issue their payload on this cadence. Reported, not enforced.
QR_REFRESH_SECONDS = max(
    1,
    int(os.getenv("QRATTEND_QR_REFRESH_SECONDS", "5")),
)

# Store access
STORE_TIMEOUT_SECONDS = float(os.getenv("QRATTEND_STORE_TIMEOUT_SECONDS", "5"))
STORE_RETRY_ATTEMPTS = max(
    0,
    int(os.getenv("QRATTEND_STORE_RETRY_ATTEMPTS", "2")),
)
