from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from institute_compass.config import Config
from institute_compass.db import connect
from institute_compass.errors import AppError, ErrorKind, conflict, invalid_input, not_found
from institute_compass.models import ALL_ROLES, DEFAULT_ROLE
from institute_compass.util.time import utcnow_iso

from .security import hash_password, verify_password


def _debug(msg: str) -> None:
    print(f"[auth] {msg}")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def public_user(row: Any | Dict[str, Any], roles: Iterable[str] | None = None) -> Dict[str, Any]:
    d = dict(row)
    d.pop("password_hash", None)
    d.pop("token_version", None)
    d["is_active"] = bool(d.get("is_active", 1))
    if roles is not None:
        d["roles"] = sorted(roles)
    return d


def get_user_by_email(conn: Any, email: str) -> Optional[Any]:
    e = normalize_email(email)
    if not e:
        return None
    return conn.execute(
        "SELECT * FROM users WHERE email=?",
        (e,),
    ).fetchone()


def get_user_by_id(conn: Any, user_id: int) -> Optional[Any]:
    return conn.execute(
        "SELECT * FROM users WHERE user_id=?",
        (int(user_id),),
    ).fetchone()


def get_roles(conn: Any, user_id: int) -> List[str]:
    rows = conn.execute(
        "SELECT role FROM user_roles WHERE user_id=? ORDER BY role",
        (int(user_id),),
    ).fetchall()
    return [str(r["role"]) for r in rows]


def resolve_identity(conn: Any, user_id: int) -> Dict[str, Any]:
    """Load an identity and its current role set.

    Always reads from the store; nothing is cached, so role edits are visible on
    the very next request.
    """
    row = get_user_by_id(conn, user_id)
    if row is None:
        raise not_found("user_not_found")
    return public_user(row, get_roles(conn, int(row["user_id"])))


def verify_user_credentials(conn: Any, email: str, password: str) -> Optional[Any]:
    row = get_user_by_email(conn, email)
    if row is None:
        return None
    if int(row["is_active"] or 0) != 1:
        return None
    if not verify_password(password, str(row["password_hash"])):
        return None
    return row


def create_user(
    conn: Any,
    *,
    email: str,
    password: str,
    full_name: str | None = None,
    roles: Iterable[str] = (DEFAULT_ROLE,),
    is_active: bool = True,
) -> Dict[str, Any]:
    """Create an identity plus its role rows in the caller's transaction."""
    e = normalize_email(email)
    if not e:
        raise invalid_input("email_blank")
    if "@" not in e:
        raise invalid_input("email_invalid")
    role_set = set(roles)
    bad = role_set - ALL_ROLES
    if bad:
        raise invalid_input("invalid_role")

    existing = conn.execute("SELECT 1 FROM users WHERE email=?", (e,)).fetchone()
    if existing is not None:
        raise conflict("email_exists")

    now = utcnow_iso()
    row = conn.execute(
        """
        INSERT INTO users (email, password_hash, full_name, token_version, is_active, created_at, updated_at)
        VALUES (?,?,?,0,?,?,?)
        RETURNING user_id
        """,
        (e, hash_password(password), (full_name or "").strip() or e, 1 if is_active else 0, now, now),
    ).fetchone()
    user_id = int(row["user_id"])

    for role in sorted(role_set):
        conn.execute(
            "INSERT INTO user_roles (user_id, role, created_at) VALUES (?,?,?)",
            (user_id, role, now),
        )

    created = get_user_by_id(conn, user_id)
    assert created is not None
    return public_user(created, role_set)


def touch_last_login(conn: Any, user_id: int) -> None:
    now = utcnow_iso()
    conn.execute(
        "UPDATE users SET last_login_at=?, updated_at=? WHERE user_id=?",
        (now, now, int(user_id)),
    )


def change_password(conn: Any, *, user_id: int, current_password: str, new_password: str) -> int:
    """Replace the password hash and bump token_version.

    Returns the new token_version; every token issued before the change stops
    verifying on the next request.
    """
    row = get_user_by_id(conn, user_id)
    if row is None:
        raise not_found("user_not_found")
    if not verify_password(current_password, str(row["password_hash"])):
        raise AppError(ErrorKind.UNAUTHENTICATED, "current_password_incorrect")

    now = utcnow_iso()
    updated = conn.execute(
        """
        UPDATE users
        SET password_hash=?, token_version=token_version + 1, updated_at=?
        WHERE user_id=?
        RETURNING token_version
        """,
        (hash_password(new_password), now, int(user_id)),
    ).fetchone()
    _debug(f"password changed for user {int(user_id)}; older tokens revoked")
    return int(updated["token_version"])


def update_profile(
    conn: Any,
    *,
    user_id: int,
    full_name: str | None = None,
    phone: str | None = None,
    avatar_url: str | None = None,
) -> Dict[str, Any]:
    now = utcnow_iso()
    conn.execute(
        """
        UPDATE users
        SET full_name=COALESCE(?, full_name),
            phone=COALESCE(?, phone),
            avatar_url=COALESCE(?, avatar_url),
            updated_at=?
        WHERE user_id=?
        """,
        (full_name, phone, avatar_url, now, int(user_id)),
    )
    return resolve_identity(conn, user_id)


def list_users(conn: Any) -> List[Dict[str, Any]]:
    rows = conn.execute("SELECT * FROM users ORDER BY created_at DESC, user_id DESC").fetchall()
    role_rows = conn.execute("SELECT user_id, role FROM user_roles").fetchall()
    by_user: Dict[int, List[str]] = {}
    for r in role_rows:
        by_user.setdefault(int(r["user_id"]), []).append(str(r["role"]))
    return [public_user(r, by_user.get(int(r["user_id"]), [])) for r in rows]


def _require_role_name(role: str) -> str:
    r = (role or "").strip().lower()
    if not r:
        raise invalid_input("role_required")
    if r not in ALL_ROLES:
        raise invalid_input("invalid_role")
    return r


def add_role(conn: Any, *, user_id: int, role: str) -> List[str]:
    r = _require_role_name(role)
    if get_user_by_id(conn, user_id) is None:
        raise not_found("user_not_found")

    # The (user_id, role) primary key is the uniqueness guard.
    inserted = conn.execute(
        """
        INSERT INTO user_roles (user_id, role, created_at) VALUES (?,?,?)
        ON CONFLICT(user_id, role) DO NOTHING
        RETURNING role
        """,
        (int(user_id), r, utcnow_iso()),
    ).fetchone()
    if inserted is None:
        raise conflict("role_exists")
    _debug(f"role {r} granted to user {int(user_id)}")
    return get_roles(conn, user_id)


def remove_role(conn: Any, *, user_id: int, role: str) -> List[str]:
    r = _require_role_name(role)
    cur = conn.execute(
        "DELETE FROM user_roles WHERE user_id=? AND role=?",
        (int(user_id), r),
    )
    if cur.rowcount == 0:
        raise not_found("role_not_found")
    _debug(f"role {r} revoked from user {int(user_id)}")
    return get_roles(conn, user_id)


def bootstrap_admin_if_needed(cfg: Config) -> Optional[Dict[str, Any]]:
    """Create the first admin user if the users table is empty.

    Only runs when both AUTH_BOOTSTRAP_ADMIN_EMAIL and AUTH_BOOTSTRAP_ADMIN_PASSWORD
    are set. There are no default credentials.
    """
    email = normalize_email(cfg.AUTH_BOOTSTRAP_ADMIN_EMAIL)
    password = cfg.AUTH_BOOTSTRAP_ADMIN_PASSWORD or ""
    if not email or not password:
        return None

    with connect(cfg.DB_DSN) as conn:
        n = conn.execute("SELECT COUNT(*) AS n FROM users").fetchone()["n"]
        if int(n) > 0:
            return None
        u = create_user(conn, email=email, password=password, full_name="Administrator", roles=("admin",))
    return u
