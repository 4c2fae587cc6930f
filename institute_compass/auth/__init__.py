"""Authentication / authorization helpers.

Auth is intentionally lightweight:

- `users` table (email/password hash) plus `user_roles` rows
- stateless JWT access tokens sent as `Authorization: Bearer <token>`

Each token carries the identity's `token_version`; changing the password bumps
it, which revokes every token issued before the change.
"""

from .deps import get_current_user, get_optional_user, require_admin, require_roles, require_staff
from .crud import bootstrap_admin_if_needed, create_user

__all__ = [
    "get_current_user",
    "get_optional_user",
    "require_admin",
    "require_roles",
    "require_staff",
    "bootstrap_admin_if_needed",
    "create_user",
]
