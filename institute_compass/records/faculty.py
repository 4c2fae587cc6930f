"""Faculty directory.

Public listings show active members only. Salary is money, so it is kept in
minor units like every other amount and never returned to non-staff callers.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from institute_compass.errors import invalid_input, not_found
from institute_compass.util.money import from_minor, to_minor
from institute_compass.util.time import utcnow_iso


_TEXT_FIELDS = (
    "phone",
    "qualification",
    "specialization",
    "joining_date",
    "address",
    "bio",
    "avatar_url",
)


def public_faculty(row: Any | Dict[str, Any], *, include_private: bool = True) -> Dict[str, Any]:
    d = dict(row)
    salary = d.pop("salary_minor", 0)
    if include_private:
        d["salary"] = from_minor(salary)
    else:
        d.pop("address", None)
        d.pop("phone", None)
    d["is_active"] = bool(d.get("is_active"))
    return d


def _experience(value: Any) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise invalid_input("experience_years_invalid")
    if n < 0:
        raise invalid_input("experience_years_invalid")
    return n


def list_faculty(conn: Any, *, include_inactive: bool) -> List[Dict[str, Any]]:
    where = "" if include_inactive else "WHERE is_active = 1"
    rows = conn.execute(
        f"SELECT * FROM faculty {where} ORDER BY created_at DESC, faculty_id DESC"
    ).fetchall()
    return [public_faculty(r, include_private=include_inactive) for r in rows]


def get_faculty(conn: Any, faculty_id: int, *, include_private: bool = True) -> Optional[Dict[str, Any]]:
    row = conn.execute("SELECT * FROM faculty WHERE faculty_id=?", (int(faculty_id),)).fetchone()
    if row is None:
        return None
    return public_faculty(row, include_private=include_private)


def create_faculty(conn: Any, fields: Dict[str, Any]) -> Dict[str, Any]:
    full_name = (fields.get("full_name") or "").strip()
    email = (fields.get("email") or "").strip().lower()
    if not full_name or not email:
        raise invalid_input("name_and_email_required")

    now = utcnow_iso()
    row = conn.execute(
        """
        INSERT INTO faculty (
            full_name, email, phone, qualification, specialization, experience_years,
            joining_date, salary_minor, address, bio, avatar_url, is_active, created_at, updated_at
        )
        VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?)
        RETURNING faculty_id
        """,
        (
            full_name,
            email,
            fields.get("phone"),
            fields.get("qualification"),
            fields.get("specialization"),
            _experience(fields.get("experience_years") or 0),
            fields.get("joining_date"),
            to_minor(fields.get("salary") or 0, field="salary", allow_zero=True),
            fields.get("address"),
            fields.get("bio"),
            fields.get("avatar_url"),
            0 if fields.get("is_active") is False else 1,
            now,
            now,
        ),
    ).fetchone()
    created = get_faculty(conn, int(row["faculty_id"]))
    assert created is not None
    return created


def update_faculty(conn: Any, faculty_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
    sets: List[Tuple[str, Any]] = []
    if "full_name" in fields:
        if not (fields["full_name"] or "").strip():
            raise invalid_input("full_name_blank")
        sets.append(("full_name", fields["full_name"].strip()))
    if "email" in fields:
        if not (fields["email"] or "").strip():
            raise invalid_input("email_blank")
        sets.append(("email", fields["email"].strip().lower()))
    for name in _TEXT_FIELDS:
        if name in fields:
            sets.append((name, fields[name]))
    if "experience_years" in fields:
        sets.append(("experience_years", _experience(fields["experience_years"])))
    if "salary" in fields:
        sets.append(("salary_minor", to_minor(fields["salary"], field="salary", allow_zero=True)))
    if "is_active" in fields:
        sets.append(("is_active", 1 if fields["is_active"] else 0))
    sets.append(("updated_at", utcnow_iso()))

    assignments = ", ".join(f"{k}=?" for k, _ in sets)
    cur = conn.execute(
        f"UPDATE faculty SET {assignments} WHERE faculty_id=?",
        [v for _, v in sets] + [int(faculty_id)],
    )
    if cur.rowcount == 0:
        raise not_found("faculty_not_found")
    updated = get_faculty(conn, faculty_id)
    assert updated is not None
    return updated


def delete_faculty(conn: Any, faculty_id: int) -> None:
    cur = conn.execute("DELETE FROM faculty WHERE faculty_id=?", (int(faculty_id),))
    if cur.rowcount == 0:
        raise not_found("faculty_not_found")
