from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

import jwt
from passlib.context import CryptContext

from institute_compass.errors import AppError, ErrorKind
from institute_compass.models import TokenClaims


_JWT_ALG = "HS256"
_DEFAULT_ROUNDS = 29000

_pwd = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
    pbkdf2_sha256__rounds=_DEFAULT_ROUNDS,
)


def configure_password_rounds(rounds: int) -> None:
    """Set the fixed pbkdf2 cost factor used for new hashes."""
    global _pwd
    _pwd = CryptContext(
        schemes=["pbkdf2_sha256"],
        deprecated="auto",
        pbkdf2_sha256__rounds=max(1000, int(rounds)),
    )


def hash_password(password: str) -> str:
    if not password:
        raise AppError(ErrorKind.INVALID_INPUT, "password_blank")
    return _pwd.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return _pwd.verify(password, password_hash)
    except (ValueError, TypeError):
        # Unrecognized or malformed hash: fail closed.
        return False


def issue_token(
    *,
    secret: str,
    identity_id: int,
    token_version: int = 0,
    expires_minutes: int = 10080,
    now: datetime | None = None,
) -> str:
    if not secret:
        raise ValueError("jwt_secret_blank")

    issued = now or datetime.now(timezone.utc)
    iat = int(issued.timestamp())
    exp = iat + max(1, int(expires_minutes)) * 60

    payload: Dict[str, Any] = {
        "sub": str(int(identity_id)),
        "ver": int(token_version),
        "iat": iat,
        "exp": exp,
    }
    return jwt.encode(payload, secret, algorithm=_JWT_ALG)


def verify_token(token: str, *, secret: str) -> TokenClaims:
    """Verify signature and expiry and return the claims.

    Raises AppError(TokenExpired) once `exp` has passed and AppError(TokenMalformed)
    for anything else that is wrong with the token.
    """
    if not secret:
        raise ValueError("jwt_secret_blank")
    if not token:
        raise AppError(ErrorKind.TOKEN_MALFORMED, "token_blank")

    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[_JWT_ALG],
            options={"require": ["sub", "iat", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise AppError(ErrorKind.TOKEN_EXPIRED, "token_expired")
    except jwt.InvalidTokenError:
        raise AppError(ErrorKind.TOKEN_MALFORMED, "token_invalid")

    try:
        identity_id = int(payload["sub"])
        version = int(payload.get("ver", 0))
        issued_at = int(payload["iat"])
        expires_at = int(payload["exp"])
    except (TypeError, ValueError):
        raise AppError(ErrorKind.TOKEN_MALFORMED, "token_claims_invalid")

    return TokenClaims(
        identity_id=identity_id,
        token_version=version,
        issued_at=issued_at,
        expires_at=expires_at,
    )
