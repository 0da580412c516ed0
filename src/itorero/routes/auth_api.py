# src/itorero/routes/auth_api.py
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.itorero.crud.users import change_password as crud_change_password, create_user
from src.itorero.models.user import User
from src.itorero.schemas.user import (
    ChangePasswordRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
)
from src.itorero.utils import audit
from src.itorero.utils.auth import (
    authenticate_user,
    get_current_user,
    issue_tokens,
    revoke_all_refresh,
    revoke_refresh,
    rotate_refresh,
    user_public,
)
from src.itorero.utils.database import get_db
from src.itorero.utils.exceptions import AuthError, DuplicateKeyError
from src.itorero.utils.rate_limit import rate_limit_sensitive
from src.itorero.utils.responses import ok
from src.itorero.utils.security import verify_password

auth_api = APIRouter(prefix="/api/auth", tags=["Auth"])

# anonymous routes are keyed by address; account routes by address and user
login_guard = rate_limit_sensitive()
account_guard = rate_limit_sensitive(authenticated=True)

# -----------------------------------------------------------------------------
# Register / Login / Token lifecycle
# -----------------------------------------------------------------------------

@auth_api.post("/register", status_code=201, dependencies=[Depends(login_guard)])
async def register(
    payload: RegisterRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    try:
        user = await create_user(db, payload)
    except IntegrityError:
        raise DuplicateKeyError("Username or email already exists.")

    await audit.record_action(
        db, request, user.id, "CREATE", "user", user.id,
        after=audit.snapshot(user), description="User self-registered",
    )
    tokens = await issue_tokens(db, user, request, response)
    return ok(tokens, "User registered successfully")


@auth_api.post("/login", dependencies=[Depends(login_guard)])
async def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    user = await authenticate_user(db, request, payload.identifier, payload.password)
    tokens = await issue_tokens(db, user, request, response)
    return ok(tokens, "Login successful")


@auth_api.post("/refresh")
async def refresh_token(
    request: Request,
    response: Response,
    payload: Optional[RefreshRequest] = None,
    db: AsyncSession = Depends(get_db),
):
    """Rotate the refresh token (body or cookie) and issue a new access token."""
    raw = payload.refresh_token if payload else None
    return ok(await rotate_refresh(db, request, response, raw), "Token refreshed")


@auth_api.post("/logout")
async def logout(
    request: Request,
    response: Response,
    payload: Optional[RefreshRequest] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await revoke_refresh(db, request, response, payload.refresh_token if payload else None)
    await audit.record_action(
        db, request, current_user.id, "LOGOUT", "user", current_user.id,
        description="User logged out",
    )
    return ok(message="Logged out successfully")


@auth_api.get("/me")
async def me(current_user: User = Depends(get_current_user)):
    return ok(user_public(current_user))


@auth_api.put("/change-password", dependencies=[Depends(account_guard)])
async def change_password(
    payload: ChangePasswordRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not verify_password(payload.current_password.get_secret_value(), current_user.password):
        raise AuthError("Current password is incorrect.")

    await crud_change_password(db, current_user, payload.new_password.get_secret_value())
    # every other session has to log in again
    await revoke_all_refresh(db, current_user)
    await audit.record_action(
        db, request, current_user.id, "PASSWORD_CHANGE", "user", current_user.id,
        severity="warning", description="Password changed",
    )
    return ok(message="Password changed successfully")
