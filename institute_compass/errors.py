"""Error taxonomy shared by the services and the HTTP layer.

Service code raises `AppError(kind, detail)`; the API maps the kind to an HTTP
status in one place (`api/server.py`). `detail` is a short snake_case code that
frontends can switch on, e.g. `invalid_credentials` or `email_exists`.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict


class ErrorKind(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    TOKEN_EXPIRED = "token_expired"
    TOKEN_MALFORMED = "token_malformed"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"
    CONFLICT = "conflict"
    STORE_UNAVAILABLE = "store_unavailable"
    INTERNAL = "internal"


HTTP_STATUS: Dict[ErrorKind, int] = {
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.TOKEN_EXPIRED: 401,
    ErrorKind.TOKEN_MALFORMED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.STORE_UNAVAILABLE: 503,
    ErrorKind.INTERNAL: 500,
}


class AppError(Exception):
    def __init__(self, kind: ErrorKind, detail: str | None = None):
        self.kind = kind
        self.detail = detail or kind.value
        super().__init__(f"{kind.value}: {self.detail}")

    @property
    def status_code(self) -> int:
        return HTTP_STATUS.get(self.kind, 500)


def invalid_input(detail: str) -> AppError:
    return AppError(ErrorKind.INVALID_INPUT, detail)


def not_found(detail: str) -> AppError:
    return AppError(ErrorKind.NOT_FOUND, detail)


def conflict(detail: str) -> AppError:
    return AppError(ErrorKind.CONFLICT, detail)
