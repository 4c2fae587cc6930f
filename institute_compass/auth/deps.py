from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from institute_compass.config import Config
from institute_compass.db import connect
from institute_compass.errors import AppError, ErrorKind
from institute_compass.models import ADMIN_ROLES, STAFF_ROLES, has_any_role

from .crud import get_roles, get_user_by_id, public_user
from .security import verify_token


_bearer = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> AppError:
    return AppError(ErrorKind.UNAUTHENTICATED, detail)


def get_config(request: Request) -> Config:
    cfg = getattr(request.app.state, "cfg", None)
    if cfg is None:
        raise AppError(ErrorKind.INTERNAL, "server_config_missing")
    return cfg


def authenticate_token(cfg: Config, token: str | None) -> Dict[str, Any]:
    """Turn a raw bearer token into the current identity with roles.

    Every failure (missing, malformed, expired, revoked, unknown or inactive
    identity) raises AppError(Unauthenticated) with a specific detail code.
    """
    if not token:
        raise _unauthorized("missing_token")

    try:
        claims = verify_token(token, secret=cfg.AUTH_JWT_SECRET)
    except AppError as e:
        if e.kind == ErrorKind.TOKEN_EXPIRED:
            raise _unauthorized("token_expired")
        raise _unauthorized("token_invalid")

    with connect(cfg.DB_DSN) as conn:
        row = get_user_by_id(conn, claims.identity_id)
        if row is None:
            raise _unauthorized("user_not_found")
        if int(row["is_active"] or 0) != 1:
            raise _unauthorized("user_inactive")
        if int(row["token_version"] or 0) != claims.token_version:
            raise _unauthorized("token_revoked")
        user = public_user(row, get_roles(conn, claims.identity_id))

    user["is_staff"] = has_any_role(user["roles"], STAFF_ROLES)
    user["is_admin"] = has_any_role(user["roles"], ADMIN_ROLES)
    return user


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    """Authenticate a request via `Authorization: Bearer <jwt>`."""
    cfg = get_config(request)
    token = credentials.credentials if credentials is not None else None
    return authenticate_token(cfg, token)


def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Optional[Dict[str, Any]]:
    """Like get_current_user, but anonymous (None) instead of failing."""
    if credentials is None or not credentials.credentials:
        return None
    cfg = get_config(request)
    try:
        return authenticate_token(cfg, credentials.credentials)
    except AppError:
        return None


def require_roles(allowed: Iterable[str]) -> Callable[..., Dict[str, Any]]:
    """Build a dependency that admits callers holding at least one of `allowed`."""
    allowed_set = frozenset(allowed)

    def _dep(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
        if not has_any_role(user.get("roles"), allowed_set):
            raise AppError(ErrorKind.FORBIDDEN, "insufficient_role")
        return user

    return _dep


require_staff = require_roles(STAFF_ROLES)
require_admin = require_roles(ADMIN_ROLES)
