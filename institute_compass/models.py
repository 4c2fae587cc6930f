from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    DIRECTOR = "director"
    FACULTY = "faculty"
    STUDENT = "student"


class FeeStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    # Only ever set by hand; never derived from amounts.
    OVERDUE = "overdue"


class StudentStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    DROPPED = "dropped"
    GRADUATED = "graduated"


class EnquiryStatus(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    CONVERTED = "converted"
    CLOSED = "closed"


ALL_ROLES = frozenset(r.value for r in Role)
STAFF_ROLES = frozenset({Role.ADMIN.value, Role.DIRECTOR.value, Role.FACULTY.value})
ADMIN_ROLES = frozenset({Role.ADMIN.value})
DEFAULT_ROLE = Role.STUDENT.value


@dataclass(frozen=True)
class TokenClaims:
    identity_id: int
    token_version: int
    issued_at: int
    expires_at: int


def has_any_role(roles, allowed) -> bool:
    return bool(set(roles or ()) & set(allowed))
