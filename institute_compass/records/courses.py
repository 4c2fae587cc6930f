from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from institute_compass.errors import invalid_input, not_found
from institute_compass.util.money import from_minor, to_minor
from institute_compass.util.time import utcnow_iso


def public_course(row: Any | Dict[str, Any]) -> Dict[str, Any]:
    d = dict(row)
    d["fee_amount"] = from_minor(d.pop("fee_amount_minor", 0))
    d["is_active"] = bool(d.get("is_active"))
    return d


def list_courses(conn: Any, *, include_inactive: bool) -> List[Dict[str, Any]]:
    where = "" if include_inactive else "WHERE is_active = 1"
    rows = conn.execute(
        f"SELECT * FROM courses {where} ORDER BY created_at DESC, course_id DESC"
    ).fetchall()
    return [public_course(r) for r in rows]


def get_course(conn: Any, course_id: int) -> Optional[Dict[str, Any]]:
    row = conn.execute("SELECT * FROM courses WHERE course_id=?", (int(course_id),)).fetchone()
    if row is None:
        return None
    return public_course(row)


def create_course(conn: Any, fields: Dict[str, Any]) -> Dict[str, Any]:
    name = (fields.get("name") or "").strip()
    if not name:
        raise invalid_input("course_name_required")

    now = utcnow_iso()
    row = conn.execute(
        """
        INSERT INTO courses (name, description, duration_months, fee_amount_minor, image_url, is_active, created_at, updated_at)
        VALUES (?,?,?,?,?,?,?,?)
        RETURNING course_id
        """,
        (
            name,
            fields.get("description"),
            int(fields.get("duration_months") or 12),
            to_minor(fields.get("fee_amount") or 0, field="fee_amount", allow_zero=True),
            fields.get("image_url"),
            0 if fields.get("is_active") is False else 1,
            now,
            now,
        ),
    ).fetchone()
    created = get_course(conn, int(row["course_id"]))
    assert created is not None
    return created


def update_course(conn: Any, course_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
    sets: List[Tuple[str, Any]] = []
    for name in ("name", "description", "duration_months", "image_url"):
        if name in fields:
            sets.append((name, fields[name]))
    if "name" in fields and not (fields["name"] or "").strip():
        raise invalid_input("course_name_required")
    if "fee_amount" in fields:
        sets.append(("fee_amount_minor", to_minor(fields["fee_amount"], field="fee_amount", allow_zero=True)))
    if "is_active" in fields:
        sets.append(("is_active", 1 if fields["is_active"] else 0))
    sets.append(("updated_at", utcnow_iso()))

    assignments = ", ".join(f"{k}=?" for k, _ in sets)
    cur = conn.execute(
        f"UPDATE courses SET {assignments} WHERE course_id=?",
        [v for _, v in sets] + [int(course_id)],
    )
    if cur.rowcount == 0:
        raise not_found("course_not_found")
    updated = get_course(conn, course_id)
    assert updated is not None
    return updated


def delete_course(conn: Any, course_id: int) -> None:
    cur = conn.execute("DELETE FROM courses WHERE course_id=?", (int(course_id),))
    if cur.rowcount == 0:
        raise not_found("course_not_found")
