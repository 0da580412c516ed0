# src/itorero/utils/security.py
from __future__ import annotations

import os
import time
import logging
from typing import Optional, Dict, Any

from dotenv import load_dotenv
from jose import jwt, JWTError
from passlib.context import CryptContext

from src.itorero.utils.exceptions import AuthError

load_dotenv()

logger = logging.getLogger(__name__)

# ---- JWT settings (from .env) ----
JWT_SECRET: str = os.getenv("JWT_SECRET", "change-this-in-prod")
JWT_ALG: str = os.getenv("JWT_ALG", "HS256")

ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "15"))
REFRESH_TOKEN_EXPIRE_DAYS: int = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "14"))

# Clock skew tolerance (seconds)
CLOCK_SKEW_LEEWAY: int = int(os.getenv("JWT_LEEWAY_SECONDS", "30"))


# ---- Password hashing policy ----
pwd_context = CryptContext(
    schemes=["argon2", "bcrypt"],
    deprecated="auto",
)

# ---------------------------------------------------------------------
# Password Handling
# ---------------------------------------------------------------------
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    if not hashed or not pwd_context.identify(hashed):
        return False
    return pwd_context.verify(plain, hashed)


def needs_rehash(hashed: str) -> bool:
    return pwd_context.needs_update(hashed)


# ---------------------------------------------------------------------
# Access tokens
# ---------------------------------------------------------------------
def create_access_token(data: Dict[str, Any], minutes: Optional[int] = None) -> str:
    """
    Create a short-lived JWT access token.
    Uses epoch seconds to avoid timezone/datetime issues.
    """
    now_ts = int(time.time())
    exp_ts = now_ts + int(60 * (minutes or ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {**data, "iat": now_ts, "exp": exp_ts, "typ": "access"}
    logger.debug("access token issued sub=%s exp=%s", data.get("sub"), exp_ts)
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALG)


def _check_exp_with_leeway(payload: Dict[str, Any]) -> None:
    exp = payload.get("exp")
    if exp is None:
        raise AuthError("Token is not valid.")

    now = int(time.time())
    if now > int(exp) + CLOCK_SKEW_LEEWAY:
        raise AuthError("Token has expired.")


def _decode_ignoring_exp(token: str) -> Dict[str, Any]:
    """
    Decode but skip built-in exp verification; exp is enforced with our own leeway.
    python-jose doesn't accept the PyJWT 'leeway=' kwarg.
    """
    return jwt.decode(
        token,
        JWT_SECRET,
        algorithms=[JWT_ALG],
        options={"verify_aud": False, "verify_exp": False},
    )


def decode_access_token(token: str) -> Dict[str, Any]:
    """Return payload or raise AuthError (401)."""
    try:
        payload = _decode_ignoring_exp(token)
    except JWTError:
        raise AuthError("Token is not valid.")
    _check_exp_with_leeway(payload)
    if payload.get("typ") != "access":
        raise AuthError("Token is not valid.")
    return payload


def session_expired(session_start: Optional[int], days: Optional[int] = None) -> bool:
    """Absolute session age cap measured from the login that opened the session."""
    if session_start is None:
        return False
    max_age = int(days or REFRESH_TOKEN_EXPIRE_DAYS) * 86400
    return int(time.time()) - int(session_start) > max_age + CLOCK_SKEW_LEEWAY
