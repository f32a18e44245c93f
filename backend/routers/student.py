import logging
from datetime import datetime

from fastapi import APIRouter, Depends

from backend.config import QR_FRESHNESS_WINDOW_SECONDS, QR_REFRESH_SECONDS
from backend.security import require_student
from backend.services.clock import current_time, isoformat_utc
from backend.services.qr_payload import dump_payload, encode_payload

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/student/qr")
def student_qr(
    session: dict = Depends(require_student),
    now: datetime = Depends(current_time),
):
    payload = encode_payload(session["sub"], session["name"], now)
    logger.info("Issued QR payload for student %s", payload.student_id)
    return {
        "student_id": payload.student_id,
        "name": payload.student_name,
        "issued_at": isoformat_utc(payload.issued_at),
        "payload": dump_payload(payload),
        "refresh_seconds": QR_REFRESH_SECONDS,
        "expires_in": QR_FRESHNESS_WINDOW_SECONDS,
    }
