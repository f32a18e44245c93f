import math
from typing import Iterable, TypedDict

from database.db import get_attendance_rows, get_dashboard_counts, get_user_by_id


class StudentEntry(TypedDict):
    student_id: str
    name: str


class AttendanceStats(TypedDict):
    total: int
    present_count: int
    absent_count: int
    percentage: int
    present_list: list[StudentEntry]
    absent_list: list[StudentEntry]


def attendance_percentage(present_count: int, total: int) -> int:
    # Half rounds up, e.g. 1 of 8 -> 13.
    if total <= 0:
        return 0
    return int(math.floor(100 * present_count / total + 0.5))


def summarize_records(rows: Iterable[tuple[str, str, str]]) -> AttendanceStats:
    """
    Partition (student_id, name, status) rows by status. A student matched
    through several sessions is listed once per status, in first-seen order,
    and counted once in `total`.
    """
    present: dict[str, StudentEntry] = {}
    absent: dict[str, StudentEntry] = {}
    for student_id, name, status in rows:
        bucket = present if status == "present" else absent
        if student_id not in bucket:
            bucket[student_id] = StudentEntry(student_id=student_id, name=name)

    total = len(present.keys() | absent.keys())
    return AttendanceStats(
        total=total,
        present_count=len(present),
        absent_count=len(absent),
        percentage=attendance_percentage(len(present), total),
        present_list=list(present.values()),
        absent_list=list(absent.values()),
    )


def compute_stats(
    *,
    lecturer_id: str,
    course_id: int | None = None,
    week: int | None = None,
) -> AttendanceStats:
    rows = get_attendance_rows(lecturer_id, course_id=course_id, week=week)
    return summarize_records(rows)


def lecturer_dashboard(*, lecturer_id: str, today: str) -> dict:
    ongoing, scans = get_dashboard_counts(lecturer_id, today)
    user = get_user_by_id(lecturer_id)
    return {
        "ongoing_sessions": ongoing,
        "today_scans": scans,
        "lecturer_name": user[1] if user else None,
    }
