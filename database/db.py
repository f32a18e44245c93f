import functools
import hashlib
import hmac
import logging
import secrets
import sqlite3
from typing import Any, Literal

from backend.config import (
    DB_PATH,
    STORE_RETRY_ATTEMPTS,
    STORE_TIMEOUT_SECONDS,
)
from backend.errors import StoreUnavailable

logger = logging.getLogger(__name__)

PASSWORD_HASH_ALGO = "pbkdf2_sha256"
PASSWORD_HASH_ITERATIONS = 120_000

UserRole = Literal["student", "lecturer"]
SessionStatus = Literal["active", "completed"]
RecordStatus = Literal["present", "absent"]


def _hash_password(password: str, *, salt: str | None = None) -> str:
    salt_value = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt_value.encode("utf-8"),
        PASSWORD_HASH_ITERATIONS,
    ).hex()
    return f"{PASSWORD_HASH_ALGO}${PASSWORD_HASH_ITERATIONS}${salt_value}${digest}"


def _verify_password(password: str, password_hash: str) -> bool:
    try:
        algo, rounds_text, salt_value, expected_digest = password_hash.split("$", 3)
        rounds = int(rounds_text)
    except (ValueError, TypeError):
        return False

    if algo != PASSWORD_HASH_ALGO or rounds <= 0:
        return False

    candidate_digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt_value.encode("utf-8"),
        rounds,
    ).hex()
    return hmac.compare_digest(candidate_digest, expected_digest)


def connect_db():
    # `timeout` bounds how long a request waits on another writer's lock.
    conn = sqlite3.connect(str(DB_PATH), timeout=STORE_TIMEOUT_SECONDS, check_same_thread=False)
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def _is_busy_error(exc: sqlite3.OperationalError) -> bool:
    message = str(exc).lower()
    return "locked" in message or "busy" in message


def with_store_retry(func):
    """
    Retry a store operation a bounded number of times when SQLite reports a
    lock timeout, then surface it as StoreUnavailable.

    Only wrap operations that are a single transaction: a failed attempt is
    rolled back in full before the next one starts.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        attempts = STORE_RETRY_ATTEMPTS + 1
        for attempt in range(1, attempts + 1):
            try:
                return func(*args, **kwargs)
            except sqlite3.OperationalError as exc:
                if not _is_busy_error(exc):
                    raise
                if attempt >= attempts:
                    logger.error("Store busy after %d attempts in %s: %s", attempts, func.__name__, exc)
                    raise StoreUnavailable() from exc
                logger.warning("Store busy in %s (attempt %d/%d), retrying", func.__name__, attempt, attempts)
        raise StoreUnavailable()

    return wrapper


def create_tables():
    conn = connect_db()
    cursor = conn.cursor()

    cursor.execute("PRAGMA journal_mode = WAL;")

    cursor.execute(
        """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT NOT NULL UNIQUE COLLATE NOCASE,
        role TEXT NOT NULL DEFAULT 'student' CHECK (role IN ('student', 'lecturer')),
        student_number TEXT,
        password_hash TEXT NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """
    )

    cursor.execute(
        """
    CREATE TABLE IF NOT EXISTS courses (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        code TEXT NOT NULL UNIQUE,
        owner_id TEXT NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (owner_id) REFERENCES users(id) ON DELETE CASCADE
    )
    """
    )

    # One session per course, week and date.
    cursor.execute(
        """
    CREATE TABLE IF NOT EXISTS attendance_sessions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        course_id INTEGER NOT NULL,
        lecturer_id TEXT NOT NULL,
        week INTEGER NOT NULL CHECK (week >= 1),
        date TEXT NOT NULL,              -- YYYY-MM-DD
        time TEXT NOT NULL,              -- HH:MM:SS
        status TEXT NOT NULL DEFAULT 'active' CHECK (status IN ('active', 'completed')),
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        completed_at TIMESTAMP,
        FOREIGN KEY (course_id) REFERENCES courses(id) ON DELETE CASCADE,
        FOREIGN KEY (lecturer_id) REFERENCES users(id) ON DELETE CASCADE,
        UNIQUE(course_id, week, date)
    )
    """
    )

    # At most one record per student per session; scan_time is set iff present.
    cursor.execute(
        """
    CREATE TABLE IF NOT EXISTS attendance_records (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        session_id INTEGER NOT NULL,
        student_id TEXT NOT NULL,
        status TEXT NOT NULL CHECK (status IN ('present', 'absent')),
        scan_time TEXT,                  -- ISO-8601 UTC
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        CHECK ((status = 'present') = (scan_time IS NOT NULL)),
        FOREIGN KEY (session_id) REFERENCES attendance_sessions(id) ON DELETE CASCADE,
        FOREIGN KEY (student_id) REFERENCES users(id) ON DELETE CASCADE,
        UNIQUE(session_id, student_id)
    )
    """
    )

    cursor.execute(
        """
    CREATE TRIGGER IF NOT EXISTS attendance_sessions_completed_is_terminal
    BEFORE UPDATE OF status ON attendance_sessions
    FOR EACH ROW
    WHEN OLD.status = 'completed' AND NEW.status <> 'completed'
    BEGIN
        SELECT RAISE(ABORT, 'completed sessions cannot be reopened');
    END
    """
    )

    cursor.execute("CREATE INDEX IF NOT EXISTS idx_users_role ON users(role);")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_courses_owner ON courses(owner_id);")
    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_attendance_sessions_lecturer ON attendance_sessions(lecturer_id, status);"
    )
    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_attendance_records_student ON attendance_records(student_id);"
    )

    conn.commit()
    conn.close()


# -----------------------------
# Users
# -----------------------------
@with_store_retry
def create_user(
    name: str,
    email: str,
    password: str,
    *,
    role: UserRole = "student",
    student_number: str | None = None,
    user_id: str | None = None,
) -> str:
    clean_name = name.strip()
    clean_email = email.strip()
    clean_password = password.strip()
    if not clean_name or not clean_email or not clean_password:
        raise ValueError("Name, email and password are required.")
    if role not in ("student", "lecturer"):
        raise ValueError(f"Unknown role: {role}")

    new_id = user_id or f"usr_{secrets.token_hex(12)}"
    conn = connect_db()
    cur = conn.cursor()
    try:
        cur.execute(
            """
            INSERT INTO users (id, name, email, role, student_number, password_hash)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (new_id, clean_name, clean_email, role, student_number, _hash_password(clean_password)),
        )
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
    return new_id


def get_user_by_id(user_id: str):
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, name, email, role, student_number
        FROM users
        WHERE id = ?
        """,
        (user_id,),
    )
    row = cur.fetchone()
    conn.close()
    return row


def get_student_by_id(student_id: str):
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, name, student_number
        FROM users
        WHERE id = ? AND role = 'student'
        """,
        (student_id,),
    )
    row = cur.fetchone()
    conn.close()
    return row


def verify_user_credentials(email: str, password: str) -> dict | None:
    clean_email = email.strip()
    clean_password = password.strip()
    if not clean_email or not clean_password:
        return None

    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, name, email, role, password_hash
        FROM users
        WHERE email = ? COLLATE NOCASE
        """,
        (clean_email,),
    )
    row = cur.fetchone()
    conn.close()

    if not row:
        return None

    user_id, name, saved_email, role, password_hash = row
    if not _verify_password(clean_password, password_hash):
        return None

    return {"id": user_id, "name": name, "email": saved_email, "role": role}


# -----------------------------
# Courses
# -----------------------------
@with_store_retry
def add_course(name: str, code: str, owner_id: str) -> int:
    conn = connect_db()
    cur = conn.cursor()
    try:
        cur.execute(
            """
            INSERT INTO courses (name, code, owner_id)
            VALUES (?, ?, ?)
            """,
            (name, code, owner_id),
        )
        course_id = int(cur.lastrowid)
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
    return course_id


def get_course(course_id: int):
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, name, code, owner_id
        FROM courses
        WHERE id = ?
        """,
        (course_id,),
    )
    row = cur.fetchone()
    conn.close()
    return row


def get_courses_by_owner(owner_id: str):
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, name, code, owner_id
        FROM courses
        WHERE owner_id = ?
        ORDER BY code
        """,
        (owner_id,),
    )
    rows = cur.fetchall()
    conn.close()
    return rows


# -----------------------------
# Attendance sessions
# -----------------------------
@with_store_retry
def insert_session(course_id: int, lecturer_id: str, week: int, date: str, time: str) -> int:
    """
    Insert an `active` session. Raises sqlite3.IntegrityError when the
    (course_id, week, date) slot is already taken.
    """
    conn = connect_db()
    cur = conn.cursor()
    try:
        cur.execute(
            """
            INSERT INTO attendance_sessions (course_id, lecturer_id, week, date, time, status)
            VALUES (?, ?, ?, ?, ?, 'active')
            """,
            (course_id, lecturer_id, week, date, time),
        )
        session_id = int(cur.lastrowid)
        conn.commit()
        return session_id
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def get_session(session_id: int) -> dict[str, Any] | None:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT
            s.id,
            s.course_id,
            c.name,
            c.code,
            s.lecturer_id,
            s.week,
            s.date,
            s.time,
            s.status,
            s.created_at,
            s.completed_at
        FROM attendance_sessions s
        JOIN courses c ON c.id = s.course_id
        WHERE s.id = ?
        """,
        (session_id,),
    )
    row = cur.fetchone()
    conn.close()
    if not row:
        return None
    return {
        "id": row[0],
        "course_id": row[1],
        "course_name": row[2],
        "course_code": row[3],
        "lecturer_id": row[4],
        "week": row[5],
        "date": row[6],
        "time": row[7],
        "status": row[8],
        "created_at": row[9],
        "completed_at": row[10],
    }


def get_sessions_by_lecturer(
    lecturer_id: str,
    *,
    course_id: int | None = None,
    status: SessionStatus | None = None,
) -> list[dict[str, Any]]:
    where = ["s.lecturer_id = ?"]
    params: list[Any] = [lecturer_id]
    if course_id is not None:
        where.append("s.course_id = ?")
        params.append(course_id)
    if status is not None:
        where.append("s.status = ?")
        params.append(status)

    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT
            s.id,
            s.course_id,
            c.name,
            c.code,
            s.week,
            s.date,
            s.time,
            s.status,
            SUM(CASE WHEN r.status = 'present' THEN 1 ELSE 0 END) AS present_count,
            SUM(CASE WHEN r.status = 'absent' THEN 1 ELSE 0 END) AS absent_count
        FROM attendance_sessions s
        JOIN courses c ON c.id = s.course_id
        LEFT JOIN attendance_records r ON r.session_id = s.id
        WHERE {" AND ".join(where)}
        GROUP BY s.id
        ORDER BY s.date DESC, s.time DESC, s.id DESC
        """,
        params,
    )
    rows = cur.fetchall()
    conn.close()
    return [
        {
            "id": r[0],
            "course_id": r[1],
            "course_name": r[2],
            "course_code": r[3],
            "week": r[4],
            "date": r[5],
            "time": r[6],
            "status": r[7],
            "present_count": int(r[8] or 0),
            "absent_count": int(r[9] or 0),
        }
        for r in rows
    ]


def get_session_students(session_id: int):
    """
    returns list of rows:
      (student_id, name, status, scan_time)
    """
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT r.student_id, u.name, r.status, r.scan_time
        FROM attendance_records r
        JOIN users u ON u.id = r.student_id
        WHERE r.session_id = ?
        ORDER BY u.name, r.student_id
        """,
        (session_id,),
    )
    rows = cur.fetchall()
    conn.close()
    return rows


@with_store_retry
def delete_session(session_id: int) -> bool:
    # Records go with the session through ON DELETE CASCADE.
    conn = connect_db()
    cur = conn.cursor()
    try:
        cur.execute("DELETE FROM attendance_sessions WHERE id = ?", (session_id,))
        deleted = cur.rowcount > 0
        conn.commit()
        return deleted
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


# -----------------------------
# Attendance records (ledger)
# -----------------------------
@with_store_retry
def insert_present_record(session_id: int, student_id: str, scan_time: str) -> int | None:
    """
    Atomically record a `present` scan.

    Returns the new record id, or None when the session is no longer active.
    A second record for the same (session_id, student_id) is rejected by the
    UNIQUE constraint and surfaces as sqlite3.IntegrityError; there is no
    prior existence check.
    """
    conn = connect_db()
    cur = conn.cursor()
    try:
        conn.execute("BEGIN IMMEDIATE")
        cur.execute(
            """
            INSERT INTO attendance_records (session_id, student_id, status, scan_time)
            SELECT s.id, ?, 'present', ?
            FROM attendance_sessions s
            WHERE s.id = ? AND s.status = 'active'
            """,
            (student_id, scan_time, session_id),
        )
        if cur.rowcount == 0:
            conn.rollback()
            return None
        record_id = int(cur.lastrowid)
        conn.commit()
        return record_id
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


@with_store_retry
def complete_session_with_backfill(session_id: int, *, next_status: SessionStatus) -> int | None:
    """
    Back-fill `absent` records and flip the session status in one transaction.

    Only students without any record in the session get an absent row. When
    the session was already completed nothing is inserted, so retries are
    safe. Returns the number of absent rows inserted, or None if the session
    does not exist.
    """
    conn = connect_db()
    cur = conn.cursor()
    try:
        conn.execute("BEGIN IMMEDIATE")
        cur.execute("SELECT status FROM attendance_sessions WHERE id = ?", (session_id,))
        row = cur.fetchone()
        if not row:
            conn.rollback()
            return None

        absent_count = 0
        if row[0] == "active":
            cur.execute(
                """
                INSERT INTO attendance_records (session_id, student_id, status, scan_time)
                SELECT ?, u.id, 'absent', NULL
                FROM users u
                WHERE u.role = 'student'
                  AND NOT EXISTS (
                      SELECT 1
                      FROM attendance_records r
                      WHERE r.session_id = ? AND r.student_id = u.id
                  )
                ON CONFLICT (session_id, student_id) DO NOTHING
                """,
                (session_id, session_id),
            )
            absent_count = max(0, cur.rowcount)

        cur.execute(
            """
            UPDATE attendance_sessions
            SET status = ?,
                completed_at = COALESCE(completed_at, CURRENT_TIMESTAMP)
            WHERE id = ?
            """,
            (next_status, session_id),
        )
        conn.commit()
        return absent_count
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def get_attendance_rows(
    lecturer_id: str,
    *,
    course_id: int | None = None,
    week: int | None = None,
):
    """
    Records reachable through the lecturer's sessions, oldest session first.

    returns list of rows:
      (student_id, name, status)
    """
    where = ["s.lecturer_id = ?"]
    params: list[Any] = [lecturer_id]
    if course_id is not None:
        where.append("s.course_id = ?")
        params.append(course_id)
    if week is not None:
        where.append("s.week = ?")
        params.append(week)

    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT r.student_id, u.name, r.status
        FROM attendance_records r
        JOIN attendance_sessions s ON s.id = r.session_id
        JOIN users u ON u.id = r.student_id
        WHERE {" AND ".join(where)}
        ORDER BY s.date, s.time, r.id
        """,
        params,
    )
    rows = cur.fetchall()
    conn.close()
    return rows


def get_dashboard_counts(lecturer_id: str, today: str) -> tuple[int, int]:
    """Returns (ongoing_sessions, today_scans) for the lecturer."""
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT COUNT(1)
        FROM attendance_sessions
        WHERE lecturer_id = ? AND status = 'active'
        """,
        (lecturer_id,),
    )
    ongoing = cur.fetchone()
    cur.execute(
        """
        SELECT COUNT(1)
        FROM attendance_records r
        JOIN attendance_sessions s ON s.id = r.session_id
        WHERE s.lecturer_id = ?
          AND s.date = ?
          AND r.status = 'present'
        """,
        (lecturer_id, today),
    )
    scans = cur.fetchone()
    conn.close()
    return int(ongoing[0] or 0), int(scans[0] or 0)
