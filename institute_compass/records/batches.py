from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from institute_compass.errors import invalid_input, not_found
from institute_compass.util.time import utcnow_iso


_SELECT = """
    SELECT b.*, c.name AS course_name
    FROM batches b
    LEFT JOIN courses c ON b.course_id = c.course_id
"""


def public_batch(row: Any | Dict[str, Any]) -> Dict[str, Any]:
    d = dict(row)
    d["is_active"] = bool(d.get("is_active"))
    course_name = d.pop("course_name", None)
    d["course"] = {"course_id": d.get("course_id"), "name": course_name} if course_name else None
    return d


def _capacity(value: Any) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise invalid_input("capacity_invalid")
    if n < 0:
        raise invalid_input("capacity_invalid")
    return n


def list_batches(conn: Any, *, include_inactive: bool, course_id: int | None = None) -> List[Dict[str, Any]]:
    clauses: List[str] = []
    params: List[Any] = []
    if not include_inactive:
        clauses.append("b.is_active = 1")
    if course_id is not None:
        clauses.append("b.course_id = ?")
        params.append(int(course_id))
    where = ("WHERE " + " AND ".join(clauses)) if clauses else ""
    rows = conn.execute(f"{_SELECT} {where} ORDER BY b.created_at DESC, b.batch_id DESC", params).fetchall()
    return [public_batch(r) for r in rows]


def get_batch(conn: Any, batch_id: int) -> Optional[Dict[str, Any]]:
    row = conn.execute(f"{_SELECT} WHERE b.batch_id=?", (int(batch_id),)).fetchone()
    if row is None:
        return None
    return public_batch(row)


def create_batch(conn: Any, fields: Dict[str, Any]) -> Dict[str, Any]:
    name = (fields.get("name") or "").strip()
    if not name:
        raise invalid_input("batch_name_required")

    now = utcnow_iso()
    row = conn.execute(
        """
        INSERT INTO batches (name, course_id, start_date, end_date, capacity, is_active, created_at, updated_at)
        VALUES (?,?,?,?,?,?,?,?)
        RETURNING batch_id
        """,
        (
            name,
            fields.get("course_id"),
            fields.get("start_date"),
            fields.get("end_date"),
            _capacity(fields["capacity"]) if fields.get("capacity") is not None else 30,
            0 if fields.get("is_active") is False else 1,
            now,
            now,
        ),
    ).fetchone()
    created = get_batch(conn, int(row["batch_id"]))
    assert created is not None
    return created


def update_batch(conn: Any, batch_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
    sets: List[Tuple[str, Any]] = []
    if "name" in fields:
        if not (fields["name"] or "").strip():
            raise invalid_input("batch_name_required")
        sets.append(("name", fields["name"].strip()))
    for name in ("course_id", "start_date", "end_date"):
        if name in fields:
            sets.append((name, fields[name]))
    if "capacity" in fields:
        sets.append(("capacity", _capacity(fields["capacity"])))
    if "is_active" in fields:
        sets.append(("is_active", 1 if fields["is_active"] else 0))
    sets.append(("updated_at", utcnow_iso()))

    assignments = ", ".join(f"{k}=?" for k, _ in sets)
    cur = conn.execute(
        f"UPDATE batches SET {assignments} WHERE batch_id=?",
        [v for _, v in sets] + [int(batch_id)],
    )
    if cur.rowcount == 0:
        raise not_found("batch_not_found")
    updated = get_batch(conn, batch_id)
    assert updated is not None
    return updated


def delete_batch(conn: Any, batch_id: int) -> None:
    # Students and assessments keep their rows; their batch_id becomes NULL.
    cur = conn.execute("DELETE FROM batches WHERE batch_id=?", (int(batch_id),))
    if cur.rowcount == 0:
        raise not_found("batch_not_found")
