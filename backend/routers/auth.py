import logging
import sqlite3
import time
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from backend.security import issue_session_token, require_session
from database.db import create_tables, create_user, get_user_by_id, verify_user_credentials

logger = logging.getLogger(__name__)

router = APIRouter()


class UserLogin(BaseModel):
    email: str
    password: str


class UserRegister(BaseModel):
    name: str
    email: str
    password: str
    role: Literal["student", "lecturer"] = "student"
    student_number: str | None = None


def _token_response(user: dict) -> dict:
    token, claims = issue_session_token(user["id"], role=user["role"], name=user["name"])
    now = int(time.time())
    return {
        "access_token": token,
        "token_type": "bearer",
        "user_id": claims["sub"],
        "name": claims["name"],
        "role": claims["role"],
        "expires_at": claims["exp"],
        "expires_in": max(0, int(claims["exp"]) - now),
    }


@router.post("/auth/register")
def register(payload: UserRegister):
    name = payload.name.strip()
    email = payload.email.strip()
    password = payload.password.strip()
    student_number = (payload.student_number or "").strip() or None

    if not name or not email or not password:
        raise HTTPException(status_code=400, detail="Name, email and password are required.")

    try:
        user_id = create_user(
            name,
            email,
            password,
            role=payload.role,
            student_number=student_number,
        )
    except sqlite3.IntegrityError:
        raise HTTPException(status_code=409, detail="Email already registered.")

    logger.info("Registered %s %s", payload.role, user_id)
    return _token_response({"id": user_id, "name": name, "role": payload.role})


@router.post("/auth/login")
def login(payload: UserLogin):
    email = payload.email.strip()
    password = payload.password.strip()

    if not email:
        raise HTTPException(status_code=400, detail="Email is required.")
    if not password:
        raise HTTPException(status_code=400, detail="Password is required.")

    try:
        user = verify_user_credentials(email, password)
    except sqlite3.OperationalError:
        # Self-heal when DB schema is missing (e.g., startup/lifespan skipped).
        try:
            create_tables()
            user = verify_user_credentials(email, password)
        except sqlite3.OperationalError:
            raise HTTPException(
                status_code=503,
                detail="Authentication service unavailable. Please retry.",
            )

    if not user:
        logger.warning("Failed login for %s", email)
        raise HTTPException(status_code=401, detail="Invalid email or password.")

    return _token_response(user)


@router.get("/auth/me")
def auth_me(session: dict = Depends(require_session)):
    row = get_user_by_id(session["sub"])
    if not row:
        raise HTTPException(status_code=401, detail="User no longer exists.")
    return {
        "user_id": row[0],
        "name": row[1],
        "email": row[2],
        "role": row[3],
        "student_number": row[4],
        "expires_at": session.get("exp"),
        "issued_at": session.get("iat"),
    }
