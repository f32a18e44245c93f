"""
Attendance session lifecycle.

A session starts `active` and ends `completed`; `complete_transition` is the
only way to move between the two. Scans are accepted only while a session is
active. Every write goes through a single store transaction, and conflicting
writes are serialized by the store's locks and constraints.
"""
import logging
import sqlite3
from datetime import datetime
from typing import Any, TypedDict

from backend.errors import (
    AttendanceError,
    DuplicateScan,
    DuplicateSession,
    NotFound,
    NotOwner,
    SessionNotActive,
    UnknownStudent,
)
from backend.services.clock import isoformat_utc
from backend.services.qr_payload import decode_payload
from backend.services.scan_validator import validate_payload
from database.db import (
    SessionStatus,
    complete_session_with_backfill,
    delete_session as delete_session_row,
    get_course,
    get_session,
    get_session_students,
    get_sessions_by_lecturer,
    get_student_by_id,
    insert_present_record,
    insert_session,
)

logger = logging.getLogger(__name__)

SESSION_STATUSES: tuple[SessionStatus, ...] = ("active", "completed")


class ScanResult(TypedDict):
    record_id: int
    student_id: str
    student_name: str
    scan_time: str


class CompleteResult(TypedDict):
    absent_count: int
    status: SessionStatus


def complete_transition(status: str) -> SessionStatus:
    """`active -> completed`; `completed` stays `completed` so retries are no-ops."""
    if status not in SESSION_STATUSES:
        raise ValueError(f"Unknown session status: {status!r}")
    return "completed"


def _owned_session(session_id: int, caller_id: str, *, action: str) -> dict[str, Any]:
    session = get_session(session_id)
    if session is None:
        logger.warning("Session %s not found (%s, caller=%s)", session_id, action, caller_id)
        raise NotFound("Session not found.")
    if session["lecturer_id"] != caller_id:
        logger.warning(
            "Lecturer %s attempted to %s session %s owned by %s",
            caller_id,
            action,
            session_id,
            session["lecturer_id"],
        )
        raise NotOwner("Access denied. You can only manage your own sessions.")
    return session


def create_session(
    *,
    course_id: int,
    lecturer_id: str,
    week: int,
    date: str,
    time: str,
) -> dict[str, Any]:
    course = get_course(course_id)
    if course is None:
        logger.warning("Course %s not found (create session, caller=%s)", course_id, lecturer_id)
        raise NotFound("Course not found.")
    if course[3] != lecturer_id:
        logger.warning(
            "Lecturer %s attempted to create a session for course %s owned by %s",
            lecturer_id,
            course_id,
            course[3],
        )
        raise NotOwner("Access denied. You can only create sessions for your courses.")

    try:
        session_id = insert_session(course_id, lecturer_id, week, date, time)
    except sqlite3.IntegrityError:
        logger.warning("Duplicate session for course %s week %s on %s", course_id, week, date)
        raise DuplicateSession()

    logger.info("Session %s created for course %s week %s by %s", session_id, course_id, week, lecturer_id)
    session = get_session(session_id)
    if session is None:
        # Deleted by a concurrent request right after creation.
        raise NotFound("Session not found.")
    return session


def record_scan(
    *,
    session_id: int,
    raw_payload: str,
    caller_id: str,
    now: datetime,
) -> ScanResult:
    session = _owned_session(session_id, caller_id, action="scan for")
    if session["status"] != "active":
        logger.warning("Scan rejected: session %s is %s", session_id, session["status"])
        raise SessionNotActive()

    try:
        payload = decode_payload(raw_payload)
        student_id = validate_payload(payload, now)
    except AttendanceError as exc:
        logger.warning("Scan rejected for session %s: %s (%s)", session_id, exc.code, exc.message)
        raise

    student = get_student_by_id(student_id)
    if student is None:
        logger.warning("Scan rejected for session %s: unknown student %s", session_id, student_id)
        raise UnknownStudent()

    scan_time = isoformat_utc(now)
    try:
        record_id = insert_present_record(session_id, student_id, scan_time)
    except sqlite3.IntegrityError as exc:
        if "UNIQUE" in str(exc).upper():
            logger.warning("Duplicate scan of student %s in session %s", student_id, session_id)
            raise DuplicateScan()
        # Foreign key failure: the student vanished between lookup and insert.
        logger.warning("Scan rejected for session %s: student %s no longer exists", session_id, student_id)
        raise UnknownStudent()

    if record_id is None:
        logger.warning("Scan rejected: session %s completed while scanning", session_id)
        raise SessionNotActive()

    logger.info("Student %s marked present in session %s (record %s)", student_id, session_id, record_id)
    return ScanResult(
        record_id=record_id,
        student_id=student_id,
        student_name=student[1],
        scan_time=scan_time,
    )


def complete_session(*, session_id: int, caller_id: str) -> CompleteResult:
    session = _owned_session(session_id, caller_id, action="complete")
    next_status = complete_transition(session["status"])

    absent_count = complete_session_with_backfill(session_id, next_status=next_status)
    if absent_count is None:
        raise NotFound("Session not found.")

    logger.info("Session %s completed by %s (%d absent)", session_id, caller_id, absent_count)
    return CompleteResult(absent_count=absent_count, status=next_status)


def delete_session(*, session_id: int, caller_id: str) -> None:
    session = _owned_session(session_id, caller_id, action="delete")
    if not delete_session_row(session_id):
        raise NotFound("Session not found.")
    logger.info("Session %s (%s) deleted by %s", session_id, session["status"], caller_id)


def get_session_details(*, session_id: int, caller_id: str) -> dict[str, Any]:
    session = _owned_session(session_id, caller_id, action="view")
    students = [
        {
            "id": student_id,
            "name": name,
            "status": status,
            "scan_time": scan_time,
        }
        for (student_id, name, status, scan_time) in get_session_students(session_id)
    ]
    return {**session, "students": students}


def list_sessions(
    *,
    lecturer_id: str,
    course_id: int | None = None,
    status: SessionStatus | None = None,
) -> list[dict[str, Any]]:
    return get_sessions_by_lecturer(lecturer_id, course_id=course_id, status=status)
