from fastapi import APIRouter, Depends, HTTPException

from backend.config import (
    DB_PATH,
    ENABLE_DEBUG_ENDPOINTS,
    QR_FRESHNESS_WINDOW_SECONDS,
    QR_REFRESH_SECONDS,
    STORE_RETRY_ATTEMPTS,
    STORE_TIMEOUT_SECONDS,
)
from backend.security import require_session

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/debug/dbpath")
def dbpath(_session: dict = Depends(require_session)):
    if not ENABLE_DEBUG_ENDPOINTS:
        raise HTTPException(status_code=404, detail="Not found.")
    return {"db_path": str(DB_PATH)}


@router.get("/config/attendance")
def attendance_config():
    return {
        "qr_freshness_window_seconds": QR_FRESHNESS_WINDOW_SECONDS,
        "qr_refresh_seconds": QR_REFRESH_SECONDS,
        "store_timeout_seconds": STORE_TIMEOUT_SECONDS,
        "store_retry_attempts": STORE_RETRY_ATTEMPTS,
    }
