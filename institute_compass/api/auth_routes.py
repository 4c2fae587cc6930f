from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from institute_compass.auth.crud import (
    add_role,
    change_password,
    create_user,
    list_users,
    remove_role,
    resolve_identity,
    touch_last_login,
    update_profile,
    verify_user_credentials,
)
from institute_compass.auth.deps import get_config, get_current_user, require_admin
from institute_compass.auth.security import issue_token
from institute_compass.config import Config
from institute_compass.db import connect
from institute_compass.errors import AppError, ErrorKind, invalid_input
from institute_compass.models import DEFAULT_ROLE


_MIN_PASSWORD_LENGTH = 6

router = APIRouter(prefix="/auth", tags=["auth"])
users_router = APIRouter(prefix="/users", tags=["users"])


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class RegisterRequest(BaseModel):
    """Public self-serve registration. New identities get the 'student' role."""

    email: Optional[str] = None
    password: Optional[str] = None
    full_name: Optional[str] = None


class PasswordChangeRequest(BaseModel):
    current_password: Optional[str] = None
    new_password: Optional[str] = None


class ProfileUpdateRequest(BaseModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    avatar_url: Optional[str] = None


class RoleRequest(BaseModel):
    role: Optional[str] = None


def _token_for(cfg: Config, user_id: int, token_version: int = 0) -> str:
    return issue_token(
        secret=cfg.AUTH_JWT_SECRET,
        identity_id=int(user_id),
        token_version=int(token_version),
        expires_minutes=int(cfg.AUTH_TOKEN_EXPIRE_MINUTES),
    )


# -----------------------------
# Auth
# -----------------------------


@router.post("/register", status_code=201)
def auth_register(payload: RegisterRequest, cfg: Config = Depends(get_config)) -> Dict[str, Any]:
    email = (payload.email or "").strip().lower()
    password = payload.password or ""
    if not email or not password:
        raise invalid_input("email_and_password_required")
    if len(password) < _MIN_PASSWORD_LENGTH:
        raise invalid_input("password_too_short")

    with connect(cfg.DB_DSN) as conn:
        u = create_user(
            conn,
            email=email,
            password=password,
            full_name=payload.full_name,
            roles=(DEFAULT_ROLE,),
        )

    token = _token_for(cfg, int(u["user_id"]))
    return {"user": u, "token": token, "token_type": "bearer"}


@router.post("/login")
def auth_login(payload: LoginRequest, cfg: Config = Depends(get_config)) -> Dict[str, Any]:
    if not (payload.email or "").strip() or not payload.password:
        raise invalid_input("email_and_password_required")

    with connect(cfg.DB_DSN) as conn:
        user_row = verify_user_credentials(conn, payload.email or "", payload.password)
        if user_row is None:
            raise AppError(ErrorKind.UNAUTHENTICATED, "invalid_credentials")

        user_id = int(user_row["user_id"])
        touch_last_login(conn, user_id)
        u = resolve_identity(conn, user_id)
        token = _token_for(cfg, user_id, int(user_row["token_version"] or 0))

    return {"user": u, "token": token, "token_type": "bearer"}


@router.get("/me")
def auth_me(
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    # Re-read so the response reflects the identity as stored right now.
    with connect(cfg.DB_DSN) as conn:
        fresh = resolve_identity(conn, int(user["user_id"]))
    return {"user": fresh}


@router.put("/profile")
def auth_update_profile(
    payload: ProfileUpdateRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        u = update_profile(
            conn,
            user_id=int(user["user_id"]),
            full_name=payload.full_name,
            phone=payload.phone,
            avatar_url=payload.avatar_url,
        )
    return {"user": u}


@router.put("/password")
def auth_change_password(
    payload: PasswordChangeRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    """Change the password and revoke every previously issued token.

    The response carries a fresh token so the calling session continues.
    """
    if not payload.current_password or not payload.new_password:
        raise invalid_input("current_and_new_password_required")
    if len(payload.new_password) < _MIN_PASSWORD_LENGTH:
        raise invalid_input("password_too_short")

    user_id = int(user["user_id"])
    with connect(cfg.DB_DSN) as conn:
        version = change_password(
            conn,
            user_id=user_id,
            current_password=payload.current_password,
            new_password=payload.new_password,
        )
    return {"message": "password_updated", "token": _token_for(cfg, user_id, version)}


@router.post("/logout")
def auth_logout(_user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    """Stateless: the token stays valid until it expires. Clients drop it."""
    return {"message": "logged_out"}


# -----------------------------
# Users / roles (admin)
# -----------------------------


@users_router.get("")
def users_list(
    _admin: Dict[str, Any] = Depends(require_admin),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return {"data": list_users(conn)}


@users_router.get("/{user_id}/roles")
def users_get_roles(
    user_id: int,
    _admin: Dict[str, Any] = Depends(require_admin),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        u = resolve_identity(conn, user_id)
    return {"roles": u["roles"]}


@users_router.post("/{user_id}/roles", status_code=201)
def users_add_role(
    user_id: int,
    payload: RoleRequest,
    _admin: Dict[str, Any] = Depends(require_admin),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        roles = add_role(conn, user_id=user_id, role=payload.role or "")
    return {"roles": roles}


@users_router.delete("/{user_id}/roles/{role}")
def users_remove_role(
    user_id: int,
    role: str,
    _admin: Dict[str, Any] = Depends(require_admin),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        roles = remove_role(conn, user_id=user_id, role=role)
    return {"roles": roles}
