from __future__ import annotations

from typing import Any, Dict, List, Tuple

from institute_compass.errors import invalid_input, not_found
from institute_compass.models import EnquiryStatus
from institute_compass.util.time import utcnow_iso


_STATUSES = {s.value for s in EnquiryStatus}


def submit_enquiry(conn: Any, fields: Dict[str, Any]) -> Dict[str, Any]:
    """Store an enquiry from the public site. New enquiries start as 'new'."""
    name = (fields.get("name") or "").strip()
    email = (fields.get("email") or "").strip().lower()
    if not name or not email:
        raise invalid_input("name_and_email_required")

    now = utcnow_iso()
    row = conn.execute(
        """
        INSERT INTO enquiries (name, email, phone, course_interest, message, status, created_at, updated_at)
        VALUES (?,?,?,?,?,?,?,?)
        RETURNING enquiry_id
        """,
        (
            name,
            email,
            fields.get("phone") or None,
            fields.get("course_interest") or None,
            fields.get("message") or None,
            EnquiryStatus.NEW.value,
            now,
            now,
        ),
    ).fetchone()
    return {"enquiry_id": int(row["enquiry_id"])}


def list_enquiries(
    conn: Any,
    *,
    status: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Dict[str, Any]], int]:
    where = ""
    params: List[Any] = []
    if status and status != "all":
        if status not in _STATUSES:
            raise invalid_input("invalid_status")
        where = "WHERE status = ?"
        params.append(status)

    total = conn.execute(f"SELECT COUNT(*) AS n FROM enquiries {where}", params).fetchone()["n"]
    offset = (max(1, int(page)) - 1) * int(limit)
    rows = conn.execute(
        f"SELECT * FROM enquiries {where} ORDER BY created_at DESC, enquiry_id DESC LIMIT ? OFFSET ?",
        params + [int(limit), offset],
    ).fetchall()
    return [dict(r) for r in rows], int(total)


def set_enquiry_status(conn: Any, enquiry_id: int, status: str | None) -> Dict[str, Any]:
    s = (status or "").strip().lower()
    if not s:
        raise invalid_input("status_required")
    if s not in _STATUSES:
        raise invalid_input("invalid_status")

    row = conn.execute(
        "UPDATE enquiries SET status=?, updated_at=? WHERE enquiry_id=? RETURNING *",
        (s, utcnow_iso(), int(enquiry_id)),
    ).fetchone()
    if row is None:
        raise not_found("enquiry_not_found")
    return dict(row)


def delete_enquiry(conn: Any, enquiry_id: int) -> None:
    cur = conn.execute("DELETE FROM enquiries WHERE enquiry_id=?", (int(enquiry_id),))
    if cur.rowcount == 0:
        raise not_found("enquiry_not_found")
