from datetime import timedelta

import pytest

import database.db as db
from backend.services import sessions
from backend.services.qr_payload import dump_payload, encode_payload
from backend.services.statistics import attendance_percentage, compute_stats, lecturer_dashboard, summarize_records
from conftest import FIXED_NOW


def _scan(session_id: int, lecturer: dict, student: dict) -> None:
    raw = dump_payload(encode_payload(student["id"], student["name"], FIXED_NOW - timedelta(seconds=3)))
    sessions.record_scan(session_id=session_id, raw_payload=raw, caller_id=lecturer["id"], now=FIXED_NOW)


def test_empty_rows_give_zero_percentage():
    stats = summarize_records([])
    assert stats == {
        "total": 0,
        "present_count": 0,
        "absent_count": 0,
        "percentage": 0,
        "present_list": [],
        "absent_list": [],
    }


@pytest.mark.parametrize(
    "present,total,expected",
    [
        (0, 0, 0),
        (0, 4, 0),
        (1, 3, 33),
        (2, 3, 67),
        (1, 8, 13),
        (1, 2, 50),
        (5, 5, 100),
    ],
)
def test_attendance_percentage_rounds_half_up(present, total, expected):
    assert attendance_percentage(present, total) == expected


def test_summarize_deduplicates_students_per_status():
    rows = [
        ("s1", "Alice", "present"),
        ("s2", "Bob", "absent"),
        ("s1", "Alice", "present"),
        ("s2", "Bob", "present"),
        ("s3", "Carol", "absent"),
    ]
    stats = summarize_records(rows)
    assert stats["present_list"] == [
        {"student_id": "s1", "name": "Alice"},
        {"student_id": "s2", "name": "Bob"},
    ]
    assert stats["absent_list"] == [
        {"student_id": "s2", "name": "Bob"},
        {"student_id": "s3", "name": "Carol"},
    ]
    assert stats["total"] == 3
    assert stats["present_count"] == 2
    assert stats["absent_count"] == 2
    assert stats["percentage"] == 67


def test_compute_stats_filters_by_course_and_week(lecturer, other_lecturer, course, students, store):
    week3 = sessions.create_session(course_id=course["id"], lecturer_id=lecturer["id"], week=3, date="2026-03-02", time="09:00:00")
    week4 = sessions.create_session(course_id=course["id"], lecturer_id=lecturer["id"], week=4, date="2026-03-09", time="09:00:00")
    _scan(week3["id"], lecturer, students["a"])
    _scan(week3["id"], lecturer, students["b"])
    sessions.complete_session(session_id=week3["id"], caller_id=lecturer["id"])
    _scan(week4["id"], lecturer, students["c"])

    other_course_id = db.add_course("Algorithms", "CS201", other_lecturer["id"])
    other = sessions.create_session(
        course_id=other_course_id, lecturer_id=other_lecturer["id"], week=3, date="2026-03-02", time="11:00:00"
    )
    _scan(other["id"], other_lecturer, students["a"])

    stats = compute_stats(lecturer_id=lecturer["id"], week=3)
    assert stats["present_count"] == 2
    assert stats["absent_count"] == 1
    assert stats["total"] == 3
    assert stats["percentage"] == 67
    assert [s["name"] for s in stats["absent_list"]] == ["Carol Chen"]

    overall = compute_stats(lecturer_id=lecturer["id"], course_id=course["id"])
    # Carol is absent in week 3 and present in week 4: listed in both, counted once.
    assert overall["total"] == 3
    assert overall["present_count"] == 3
    assert overall["absent_count"] == 1
    assert overall["percentage"] == 100

    assert compute_stats(lecturer_id=lecturer["id"], week=9)["percentage"] == 0
    assert compute_stats(lecturer_id=other_lecturer["id"])["present_list"] == [
        {"student_id": students["a"]["id"], "name": "Alice Adams"}
    ]


def test_dashboard_counts_active_sessions_and_todays_scans(lecturer, course, students):
    today = sessions.create_session(course_id=course["id"], lecturer_id=lecturer["id"], week=3, date="2026-03-02", time="09:00:00")
    earlier = sessions.create_session(course_id=course["id"], lecturer_id=lecturer["id"], week=2, date="2026-02-23", time="09:00:00")
    _scan(today["id"], lecturer, students["a"])
    _scan(earlier["id"], lecturer, students["b"])
    sessions.complete_session(session_id=earlier["id"], caller_id=lecturer["id"])

    summary = lecturer_dashboard(lecturer_id=lecturer["id"], today="2026-03-02")
    assert summary == {
        "ongoing_sessions": 1,
        "today_scans": 1,
        "lecturer_name": "Dr. Ada Lovelace",
    }
