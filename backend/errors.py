from typing import Literal

ErrorCode = Literal[
    "MALFORMED_PAYLOAD",
    "STALE_PAYLOAD",
    "FUTURE_PAYLOAD",
    "NOT_FOUND",
    "NOT_OWNER",
    "SESSION_NOT_ACTIVE",
    "UNKNOWN_STUDENT",
    "DUPLICATE_SCAN",
    "DUPLICATE_SESSION",
    "DUPLICATE_COURSE",
    "STORE_UNAVAILABLE",
]


class AttendanceError(Exception):
    """
    Base class for every attendance failure surfaced to clients.

    Each subclass carries a stable `code` so clients can tell e.g. an expired
    QR code apart from a student who was already marked present.
    """

    code: ErrorCode
    status_code: int = 400
    default_message: str = "Attendance request failed."

    def __init__(self, message: str | None = None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {"detail": self.message, "code": self.code}


class MalformedPayload(AttendanceError):
    code = "MALFORMED_PAYLOAD"
    status_code = 400
    default_message = "Invalid QR data format."


class StalePayload(AttendanceError):
    code = "STALE_PAYLOAD"
    status_code = 410
    default_message = "QR code has expired. Ask the student to show a fresh code."


class FuturePayload(AttendanceError):
    code = "FUTURE_PAYLOAD"
    status_code = 400
    default_message = "QR code timestamp is in the future. Check the device clock."


class NotFound(AttendanceError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Not found."


class NotOwner(AttendanceError):
    code = "NOT_OWNER"
    status_code = 403
    default_message = "Access denied. You can only manage your own courses and sessions."


class SessionNotActive(AttendanceError):
    code = "SESSION_NOT_ACTIVE"
    status_code = 409
    default_message = "Session is not active."


class UnknownStudent(AttendanceError):
    code = "UNKNOWN_STUDENT"
    status_code = 404
    default_message = "Student not found."


class DuplicateScan(AttendanceError):
    code = "DUPLICATE_SCAN"
    status_code = 409
    default_message = "Student already scanned for this session."


class DuplicateSession(AttendanceError):
    code = "DUPLICATE_SESSION"
    status_code = 409
    default_message = "A session already exists for this course, week and date."


class DuplicateCourse(AttendanceError):
    code = "DUPLICATE_COURSE"
    status_code = 409
    default_message = "Course code already exists."


class StoreUnavailable(AttendanceError):
    code = "STORE_UNAVAILABLE"
    status_code = 503
    default_message = "Attendance store unavailable. Please retry."
