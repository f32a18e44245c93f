from datetime import datetime

from fastapi import APIRouter, Depends, Query

from backend.security import require_lecturer
from backend.services.clock import as_utc, current_time
from backend.services.statistics import compute_stats, lecturer_dashboard

router = APIRouter()


@router.get("/lecturer/statistics")
def statistics(
    course_id: int | None = None,
    week: int | None = Query(default=None, ge=1),
    session: dict = Depends(require_lecturer),
):
    return compute_stats(lecturer_id=session["sub"], course_id=course_id, week=week)


@router.get("/lecturer/dashboard")
def dashboard(
    session: dict = Depends(require_lecturer),
    now: datetime = Depends(current_time),
):
    return lecturer_dashboard(lecturer_id=session["sub"], today=as_utc(now).strftime("%Y-%m-%d"))
