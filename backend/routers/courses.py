import logging
import sqlite3

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from backend.errors import DuplicateCourse
from backend.security import require_lecturer
from database.db import add_course, get_courses_by_owner

logger = logging.getLogger(__name__)

router = APIRouter()


class CourseCreate(BaseModel):
    name: str
    code: str


@router.get("/lecturer/courses")
def courses(session: dict = Depends(require_lecturer)):
    rows = get_courses_by_owner(session["sub"])
    return [
        {
            "id": r[0],
            "name": r[1],
            "code": r[2],
            "owner_id": r[3],
        }
        for r in rows
    ]


@router.post("/lecturer/courses")
def create_course(payload: CourseCreate, session: dict = Depends(require_lecturer)):
    name = payload.name.strip()
    code = payload.code.strip().upper()

    if not name or not code:
        raise HTTPException(status_code=400, detail="Name and code are required.")

    try:
        new_id = add_course(name, code, session["sub"])
    except sqlite3.IntegrityError:
        raise DuplicateCourse()

    logger.info("Course %s (%s) created by %s", new_id, code, session["sub"])
    return {
        "id": new_id,
        "name": name,
        "code": code,
        "owner_id": session["sub"],
    }
