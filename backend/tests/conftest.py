from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

import backend.config as config
import backend.main as main
import database.db as db
from backend.security import issue_session_token
from backend.services.clock import current_time

FIXED_NOW = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture()
def store(tmp_path, monkeypatch):
    test_db = tmp_path / "qrattend_test.db"

    # Point DB to a temp file for isolation.
    monkeypatch.setattr(config, "DB_PATH", test_db)
    monkeypatch.setattr(db, "DB_PATH", test_db)

    db.create_tables()
    return test_db


@pytest.fixture()
def client(store):
    main.app.dependency_overrides[current_time] = lambda: FIXED_NOW
    with TestClient(main.app) as c:
        yield c
    main.app.dependency_overrides.clear()


@pytest.fixture()
def lecturer(store):
    user_id = db.create_user("Dr. Ada Lovelace", "ada@uni.test", "secret-pass", role="lecturer")
    return {"id": user_id, "name": "Dr. Ada Lovelace", "role": "lecturer"}


@pytest.fixture()
def other_lecturer(store):
    user_id = db.create_user("Dr. Alan Turing", "alan@uni.test", "secret-pass", role="lecturer")
    return {"id": user_id, "name": "Dr. Alan Turing", "role": "lecturer"}


@pytest.fixture()
def students(store):
    out = {}
    for key, name in (("a", "Alice Adams"), ("b", "Bob Brown"), ("c", "Carol Chen")):
        user_id = db.create_user(
            name,
            f"{key}@students.test",
            "student-pass",
            role="student",
            student_number=f"S-00{key}",
        )
        out[key] = {"id": user_id, "name": name, "role": "student"}
    return out


@pytest.fixture()
def course(lecturer):
    course_id = db.add_course("Intro to Computing", "CS101", lecturer["id"])
    return {"id": course_id, "code": "CS101", "owner_id": lecturer["id"]}


def _auth_headers(user: dict) -> dict:
    token, _ = issue_session_token(user["id"], role=user["role"], name=user["name"])
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def headers_for():
    return _auth_headers
