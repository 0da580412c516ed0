# src/itorero/utils/auth.py
from __future__ import annotations

import os, hmac, hashlib, secrets, time, asyncio, re
from datetime import timedelta
from typing import Any, Dict, Literal, Optional, cast

import requests
from dotenv import load_dotenv
from fastapi import Depends, Request, Response
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.itorero.config import settings
from src.itorero.models.user import User
from src.itorero.models.refresh_token import RefreshToken
from src.itorero.utils import audit
from src.itorero.utils.client import get_client_ip, get_header, get_user_agent
from src.itorero.utils.database import get_db
from src.itorero.utils.exceptions import AccountLockedError, AuthError, PermissionDeniedError
from src.itorero.utils.security import (
    JWT_SECRET,
    REFRESH_TOKEN_EXPIRE_DAYS,
    create_access_token,
    decode_access_token,
    hash_password,
    needs_rehash,
    session_expired,
    verify_password,
)
from src.itorero.utils.timezone import as_local, now_local

load_dotenv()

# -------------------------------------------------------------------
# Geolocation (non-blocking + optional)
# -------------------------------------------------------------------

def _parse_bool_env(name: str, default: bool) -> bool:
    v = (os.getenv(name) or "").strip().lower()
    if not v:
        return default
    return v in ("1", "true", "yes", "y", "on")

def _parse_float_env(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    m = re.search(r"[-+]?\d*\.?\d+", raw)
    return float(m.group(0)) if m else default

# If disabled, login never waits on the external network.
GEOLOOKUP_ENABLED: bool = _parse_bool_env("GEOLOOKUP_ENABLED", False)
GEOLOOKUP_TIMEOUT_SECONDS: float = _parse_float_env("GEOLOOKUP_TIMEOUT_SECONDS", 0.20)
GEOLOOKUP_TTL_SECONDS: int = int(_parse_float_env("GEOLOOKUP_TTL_SECONDS", 3600))

# IP -> (expires_ts, payload)
_GEO_CACHE: dict[str, tuple[float, dict]] = {}

# -------------------------------------------------------------------
# Cookies
# -------------------------------------------------------------------
COOKIE_SECURE: bool = _parse_bool_env("COOKIE_SECURE", False)

_samesite_env = (os.getenv("COOKIE_SAMESITE", "Lax") or "Lax").strip().lower()
if _samesite_env not in ("lax", "strict", "none"):
    _samesite_env = "lax"
# browsers require SameSite=None cookies to also be Secure
if _samesite_env == "none" and not COOKIE_SECURE:
    _samesite_env = "lax"

COOKIE_SAMESITE = cast(Literal["lax", "strict", "none"], _samesite_env)
REFRESH_COOKIE_NAME = "refresh_token"


def _set_refresh_cookie(response: Response, raw_token: str) -> None:
    response.set_cookie(
        REFRESH_COOKIE_NAME,
        raw_token,
        httponly=True,
        max_age=REFRESH_TOKEN_EXPIRE_DAYS * 24 * 3600,
        secure=COOKIE_SECURE,
        samesite=COOKIE_SAMESITE,
        path="/",
    )


def _clear_refresh_cookie(response: Response) -> None:
    response.delete_cookie(REFRESH_COOKIE_NAME, path="/")


def _hmac_hash(raw: str) -> str:
    return hmac.new(JWT_SECRET.encode(), raw.encode(), hashlib.sha256).hexdigest()

# -------------------------------------------------------------------
# Login audit enrichment
# -------------------------------------------------------------------
def _is_public_ip(ip: str) -> bool:
    ip = (ip or "").strip()
    if not ip or ip == "::1" or ip.startswith(("127.", "10.", "192.168.")):
        return False
    if ip.startswith("172."):
        try:
            return not (16 <= int(ip.split(".")[1]) <= 31)
        except (IndexError, ValueError):
            return True
    return True

def _geolocate_cached(ip: str) -> dict:
    """Best-effort geo lookup with TTL cache; returns the payload dict."""
    if not GEOLOOKUP_ENABLED:
        return {"geo_enabled": False}
    if not _is_public_ip(ip):
        return {"geo_enabled": True, "skipped": True, "reason": "non-public ip"}

    now_ts = time.time()
    cached = _GEO_CACHE.get(ip)
    if cached and cached[0] > now_ts:
        return cached[1]

    try:
        r = requests.get(f"https://ipapi.co/{ip}/json/", timeout=max(0.05, GEOLOOKUP_TIMEOUT_SECONDS))
        payload = r.json() if r.status_code == 200 else {"status_code": r.status_code}
    except (requests.RequestException, ValueError) as e:
        payload = {"error": str(e)}
    if not isinstance(payload, dict):
        payload = {}
    payload = {
        "geo_enabled": True,
        "city": payload.get("city") or "Unknown",
        "country": payload.get("country_name") or "Unknown",
        **{k: v for k, v in payload.items() if k in ("status_code", "error")},
    }
    _GEO_CACHE[ip] = (now_ts + max(5, GEOLOOKUP_TTL_SECONDS), payload)
    return payload

async def _log_login_event(
    db: AsyncSession, user: User, request: Request, action: str, severity: str, description: str, extra=None
) -> None:
    geo = await asyncio.to_thread(_geolocate_cached, get_client_ip(request))
    metadata: Dict[str, Any] = {"geo": geo, "ip_address": get_client_ip(request), "user_agent": get_user_agent(request)}
    if isinstance(extra, dict):
        metadata.update(extra)
    await audit.record_action(
        db, request, user.id, action, "user", user.id,
        metadata=metadata, severity=severity, description=description,
    )

# -------------------------------------------------------------------
# Core auth
# -------------------------------------------------------------------
def is_locked(user: User) -> bool:
    return bool(user.lock_until and as_local(user.lock_until) > now_local())

async def _register_failed_attempt(db: AsyncSession, user: User) -> None:
    # an expired lock restarts the count
    if user.lock_until and not is_locked(user):
        user.login_attempts = 0
        user.lock_until = None
    user.login_attempts = (user.login_attempts or 0) + 1
    if user.login_attempts >= settings.LOGIN_MAX_ATTEMPTS and not is_locked(user):
        user.lock_until = now_local() + timedelta(minutes=settings.LOGIN_LOCK_MINUTES)
    await db.commit()

async def find_user_by_identifier(db: AsyncSession, identifier: str) -> Optional[User]:
    ident = (identifier or "").strip().lower()
    if not ident:
        return None
    return await db.scalar(
        select(User).where(or_(User.email == ident, func.lower(User.username) == ident))
    )

async def authenticate_user(db: AsyncSession, request: Request, identifier: str, password: str) -> User:
    """Verify credentials, enforcing lockout; raises AuthError on any failure."""
    user = await find_user_by_identifier(db, identifier)
    if not user or not password:
        raise AuthError("Invalid credentials.")

    if is_locked(user):
        await _log_login_event(db, user, request, "LOGIN_FAILED", "error", "Login attempt on locked account")
        raise AccountLockedError()

    if not verify_password(password, user.password):
        await _register_failed_attempt(db, user)
        await _log_login_event(
            db, user, request, "LOGIN_FAILED", "error", "Invalid password",
            extra={"attempts": user.login_attempts},
        )
        raise AuthError("Invalid credentials.")

    if user.status == "suspended":
        raise PermissionDeniedError("Your account has been suspended. Please contact support.")

    user.login_attempts = 0
    user.lock_until = None
    user.last_login = now_local()
    if needs_rehash(user.password):
        user.password = hash_password(password)
    await db.commit()

    await _log_login_event(db, user, request, "LOGIN", "info", "User logged in successfully")
    return user

# -------------------------------------------------------------------
# Refresh token issue/rotate with session_start
# -------------------------------------------------------------------
async def _issue_refresh(
    db: AsyncSession,
    user: User,
    request: Request,
    session_start: Optional[int] = None,
) -> str:
    raw = secrets.token_urlsafe(64)
    token_db = RefreshToken(
        user_id=user.id,
        token_hash=_hmac_hash(raw),
        device_info=get_user_agent(request)[:255],
        ip_address=get_client_ip(request),
        expires_at=now_local() + timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS),
        session_start=int(session_start or time.time()),
        is_revoked=False,
    )
    db.add(token_db)
    await db.commit()
    return raw

def user_public(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "full_name": user.full_name,
        "phone_number": user.phone_number,
        "role": user.role,
        "status": user.status,
        "hierarchy": user.hierarchy,
        "intore_group": user.intore_group_id,
        "email_verified": user.email_verified,
        "last_login": user.last_login.isoformat() if user.last_login else None,
    }

async def issue_tokens(db: AsyncSession, user: User, request: Request, response: Response) -> Dict[str, Any]:
    access = create_access_token({"sub": user.id, "role": user.role})
    raw_refresh = await _issue_refresh(db, user, request, session_start=int(time.time()))
    _set_refresh_cookie(response, raw_refresh)
    return {
        "access_token": access,
        "refresh_token": raw_refresh,
        "token_type": "bearer",
        "user": user_public(user),
    }

async def rotate_refresh(db: AsyncSession, request: Request, response: Response, raw: Optional[str]) -> Dict[str, Any]:
    raw = raw or request.cookies.get(REFRESH_COOKIE_NAME)
    if not raw:
        raise AuthError("Missing refresh token")

    token = await db.scalar(
        select(RefreshToken).where(
            RefreshToken.token_hash == _hmac_hash(raw),
            RefreshToken.is_revoked.is_(False),
        )
    )
    if not token or as_local(token.expires_at) < now_local():
        raise AuthError("Invalid or expired refresh token")
    if session_expired(token.session_start):
        token.is_revoked = True
        await db.commit()
        raise AuthError("Session expired")

    user = await db.get(User, token.user_id)
    if not user:
        raise AuthError("User not found")
    if user.status == "suspended":
        raise PermissionDeniedError("Your account has been suspended. Please contact support.")

    token.is_revoked = True
    await db.commit()

    new_raw = await _issue_refresh(db, user, request, session_start=token.session_start)
    _set_refresh_cookie(response, new_raw)
    return {
        "access_token": create_access_token({"sub": user.id, "role": user.role}),
        "refresh_token": new_raw,
        "token_type": "bearer",
    }

async def revoke_refresh(db: AsyncSession, request: Request, response: Response, raw: Optional[str]) -> None:
    raw = raw or request.cookies.get(REFRESH_COOKIE_NAME)
    if raw:
        token = await db.scalar(select(RefreshToken).where(RefreshToken.token_hash == _hmac_hash(raw)))
        if token:
            token.is_revoked = True
            await db.commit()
    _clear_refresh_cookie(response)

async def revoke_all_refresh(db: AsyncSession, user: User) -> None:
    rows = await db.scalars(
        select(RefreshToken).where(RefreshToken.user_id == user.id, RefreshToken.is_revoked.is_(False))
    )
    for row in rows:
        row.is_revoked = True
    await db.commit()

# -------------------------------------------------------------------
# Protected dependency
# -------------------------------------------------------------------
def _extract_bearer(request: Request) -> Optional[str]:
    auth_header = get_header(request, "Authorization")
    if auth_header:
        parts = auth_header.split(" ", 1)
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1].strip() or None
    return None

async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    token = _extract_bearer(request)
    if not token:
        raise AuthError("Access denied. No token provided.")

    payload = decode_access_token(token)
    sub = payload.get("sub")
    if not isinstance(sub, str) or not sub:
        raise AuthError("Token is not valid.")

    user = await db.get(User, sub)
    if not user:
        raise AuthError("Token is not valid - user not found.")
    if user.status == "suspended":
        raise PermissionDeniedError("Your account has been suspended. Please contact support.")

    request.state.user = user
    return user
