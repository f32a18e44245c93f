import base64
import hashlib
import hmac
import json
import logging
import time
from typing import Any, Callable, TypedDict

from fastapi import Depends, Header, HTTPException

from backend.config import AUTH_TOKEN_TTL_SECONDS, SIGNING_KEY

logger = logging.getLogger(__name__)

ROLES = ("student", "lecturer")


class TokenClaims(TypedDict):
    sub: str
    role: str
    name: str
    iat: int
    exp: int


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


def _signature_for(body: str) -> str:
    mac = hmac.new(SIGNING_KEY.encode("utf-8"), body.encode("ascii"), hashlib.sha256)
    return _b64url_encode(mac.digest())


def issue_session_token(
    user_id: str,
    *,
    role: str,
    name: str,
    now: int | None = None,
) -> tuple[str, TokenClaims]:
    """Sign a bearer token for a logged-in user: `<base64url claims>.<hmac>`."""
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")
    issued = int(time.time()) if now is None else now
    claims = TokenClaims(
        sub=user_id.strip(),
        role=role,
        name=name,
        iat=issued,
        exp=issued + AUTH_TOKEN_TTL_SECONDS,
    )
    body = _b64url_encode(json.dumps(claims, separators=(",", ":"), sort_keys=True).encode("utf-8"))
    return f"{body}.{_signature_for(body)}", claims


def _claims_are_valid(claims: Any, now: int) -> bool:
    if not isinstance(claims, dict):
        return False
    sub = claims.get("sub")
    exp = claims.get("exp")
    if not isinstance(sub, str) or not sub.strip():
        return False
    if not isinstance(exp, int) or exp < now:
        return False
    return claims.get("role") in ROLES


def decode_session_token(token: str, *, now: int | None = None) -> TokenClaims | None:
    """Return the token's claims, or None if it is forged, malformed or expired."""
    body, sep, signature = (token or "").partition(".")
    if not sep or not body:
        return None
    if not hmac.compare_digest(signature, _signature_for(body)):
        return None

    try:
        claims = json.loads(_b64url_decode(body).decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return None

    checked_at = int(time.time()) if now is None else now
    if not _claims_are_valid(claims, checked_at):
        return None
    return claims


def require_session(authorization: str | None = Header(default=None)) -> TokenClaims:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing bearer token.")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Invalid authorization scheme.")

    claims = decode_session_token(token.strip())
    if claims is None:
        raise HTTPException(status_code=401, detail="Invalid or expired session token.")
    return claims


def _role_guard(role: str) -> Callable[..., TokenClaims]:
    def guard(claims: TokenClaims = Depends(require_session)) -> TokenClaims:
        if claims["role"] != role:
            logger.warning("User %s (%s) denied %s-only endpoint", claims["sub"], claims["role"], role)
            raise HTTPException(
                status_code=403,
                detail=f"Access denied. Only {role}s can access this endpoint.",
            )
        return claims

    guard.__name__ = f"require_{role}"
    return guard


require_lecturer = _role_guard("lecturer")
require_student = _role_guard("student")
