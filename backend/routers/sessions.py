from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from backend.security import require_lecturer
from backend.services.clock import current_time
from backend.services.sessions import (
    complete_session,
    create_session,
    delete_session,
    get_session_details,
    list_sessions,
    record_scan,
)

router = APIRouter()


class SessionCreate(BaseModel):
    course_id: int
    week: int
    date: str
    time: str


class ScanRequest(BaseModel):
    qr_data: str


def _normalize_session_date(value: str) -> str:
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").strftime("%Y-%m-%d")
    except ValueError:
        raise HTTPException(status_code=400, detail="date must be YYYY-MM-DD.")


def _normalize_session_time(value: str) -> str:
    text = value.strip()
    for fmt in ("%H:%M:%S", "%H:%M"):
        try:
            return datetime.strptime(text, fmt).strftime("%H:%M:%S")
        except ValueError:
            continue
    raise HTTPException(status_code=400, detail="time must be HH:MM or HH:MM:SS.")


@router.get("/lecturer/sessions")
def sessions(
    course_id: int | None = None,
    status: Literal["active", "completed"] | None = None,
    session: dict = Depends(require_lecturer),
):
    return list_sessions(lecturer_id=session["sub"], course_id=course_id, status=status)


@router.post("/lecturer/sessions")
def create(payload: SessionCreate, session: dict = Depends(require_lecturer)):
    if payload.week < 1:
        raise HTTPException(status_code=400, detail="week must be 1 or greater.")

    return create_session(
        course_id=payload.course_id,
        lecturer_id=session["sub"],
        week=payload.week,
        date=_normalize_session_date(payload.date),
        time=_normalize_session_time(payload.time),
    )


@router.get("/lecturer/sessions/{session_id}")
def session_detail(session_id: int, session: dict = Depends(require_lecturer)):
    return get_session_details(session_id=session_id, caller_id=session["sub"])


@router.post("/lecturer/sessions/{session_id}/scan")
def scan(
    session_id: int,
    payload: ScanRequest,
    session: dict = Depends(require_lecturer),
    now: datetime = Depends(current_time),
):
    result = record_scan(
        session_id=session_id,
        raw_payload=payload.qr_data,
        caller_id=session["sub"],
        now=now,
    )
    return {
        "success": True,
        "student_id": result["student_id"],
        "student_name": result["student_name"],
        "scan_time": result["scan_time"],
    }


@router.put("/lecturer/sessions/{session_id}/complete")
def complete(session_id: int, session: dict = Depends(require_lecturer)):
    result = complete_session(session_id=session_id, caller_id=session["sub"])
    return {
        "success": True,
        "absent_count": result["absent_count"],
        "status": result["status"],
    }


@router.delete("/lecturer/sessions/{session_id}")
def delete(session_id: int, session: dict = Depends(require_lecturer)):
    delete_session(session_id=session_id, caller_id=session["sub"])
    return {"ok": True}
