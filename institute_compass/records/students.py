from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from institute_compass.errors import invalid_input, not_found
from institute_compass.fees.ledger import compute_fee_status
from institute_compass.models import FeeStatus, StudentStatus
from institute_compass.util.money import from_minor, to_minor
from institute_compass.util.time import utcnow_iso


_STUDENT_STATUSES = {s.value for s in StudentStatus}
_FEE_STATUSES = {s.value for s in FeeStatus}

# Plain profile columns a staff member may edit directly.
_PROFILE_FIELDS = (
    "enrollment_number",
    "full_name",
    "email",
    "phone",
    "address",
    "date_of_birth",
    "guardian_name",
    "guardian_phone",
    "course_id",
    "batch_id",
    "user_id",
    "notes",
)

_SELECT = """
    SELECT s.*, c.name AS course_name, b.name AS batch_name
    FROM students s
    LEFT JOIN courses c ON s.course_id = c.course_id
    LEFT JOIN batches b ON s.batch_id = b.batch_id
"""


def public_student(row: Any | Dict[str, Any]) -> Dict[str, Any]:
    d = dict(row)
    total = int(d.pop("total_fee_minor", 0) or 0)
    paid = int(d.pop("paid_fee_minor", 0) or 0)
    d["total_fee"] = from_minor(total)
    d["paid_fee"] = from_minor(paid)
    d["balance"] = from_minor(max(0, total - paid))
    course_name = d.pop("course_name", None)
    d["course"] = {"course_id": d.get("course_id"), "name": course_name} if course_name else None
    batch_name = d.pop("batch_name", None)
    d["batch"] = {"batch_id": d.get("batch_id"), "name": batch_name} if batch_name else None
    return d


def _check_status(status: str | None) -> str | None:
    if status is None:
        return None
    s = str(status).strip().lower()
    if s not in _STUDENT_STATUSES:
        raise invalid_input("invalid_status")
    return s


def list_students(
    conn: Any,
    *,
    search: str | None = None,
    status: str | None = None,
    fee_status: str | None = None,
    batch_id: int | None = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[Dict[str, Any]], int]:
    clauses: List[str] = []
    params: List[Any] = []

    if search:
        like = f"%{search.strip()}%"
        clauses.append("(s.full_name LIKE ? OR s.email LIKE ? OR s.enrollment_number LIKE ?)")
        params.extend([like, like, like])
    if status and status != "all":
        clauses.append("s.status = ?")
        params.append(status)
    if fee_status and fee_status != "all":
        if fee_status not in _FEE_STATUSES:
            raise invalid_input("invalid_fee_status")
        clauses.append("s.fee_status = ?")
        params.append(fee_status)
    if batch_id is not None:
        clauses.append("s.batch_id = ?")
        params.append(int(batch_id))

    where = ("WHERE " + " AND ".join(clauses)) if clauses else ""
    total = conn.execute(f"SELECT COUNT(*) AS n FROM students s {where}", params).fetchone()["n"]

    offset = (max(1, int(page)) - 1) * int(limit)
    rows = conn.execute(
        f"{_SELECT} {where} ORDER BY s.created_at DESC, s.student_id DESC LIMIT ? OFFSET ?",
        params + [int(limit), offset],
    ).fetchall()
    return [public_student(r) for r in rows], int(total)


def get_student(conn: Any, student_id: int) -> Optional[Dict[str, Any]]:
    row = conn.execute(f"{_SELECT} WHERE s.student_id=?", (int(student_id),)).fetchone()
    if row is None:
        return None
    return public_student(row)


def create_student(conn: Any, fields: Dict[str, Any]) -> Dict[str, Any]:
    enrollment = (fields.get("enrollment_number") or "").strip()
    full_name = (fields.get("full_name") or "").strip()
    email = (fields.get("email") or "").strip().lower()
    if not enrollment or not full_name or not email:
        raise invalid_input("enrollment_name_email_required")

    total_minor = to_minor(fields.get("total_fee") or 0, field="total_fee", allow_zero=True)
    status = _check_status(fields.get("status")) or StudentStatus.ACTIVE.value
    now = utcnow_iso()

    row = conn.execute(
        """
        INSERT INTO students (
            user_id, enrollment_number, full_name, email, phone, address, date_of_birth,
            guardian_name, guardian_phone, course_id, batch_id, status, total_fee_minor, paid_fee_minor,
            fee_status, notes, created_at, updated_at
        )
        VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,0,?,?,?,?)
        RETURNING student_id
        """,
        (
            fields.get("user_id"),
            enrollment,
            full_name,
            email,
            fields.get("phone"),
            fields.get("address"),
            fields.get("date_of_birth"),
            fields.get("guardian_name"),
            fields.get("guardian_phone"),
            fields.get("course_id"),
            fields.get("batch_id"),
            status,
            total_minor,
            compute_fee_status(0, total_minor),
            fields.get("notes"),
            now,
            now,
        ),
    ).fetchone()
    created = get_student(conn, int(row["student_id"]))
    assert created is not None
    return created


def update_student(conn: Any, student_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
    """Apply a partial update.

    `paid_fee` is owned by the fee ledger and cannot be set here. `fee_status`
    is derived from the amounts after the update unless the caller marks the
    student 'overdue', the one status that is only ever set by hand.
    """
    if "paid_fee" in fields:
        raise invalid_input("paid_fee_read_only")

    sets: List[Tuple[str, Any]] = []
    for name in _PROFILE_FIELDS:
        if name in fields:
            value = fields[name]
            if name in ("enrollment_number", "full_name", "email") and not (value or "").strip():
                raise invalid_input(f"{name}_blank")
            sets.append((name, value))
    if "status" in fields:
        sets.append(("status", _check_status(fields["status"])))
    if "total_fee" in fields:
        sets.append(("total_fee_minor", to_minor(fields["total_fee"], field="total_fee", allow_zero=True)))

    manual_status = fields.get("fee_status")
    if manual_status is not None and manual_status not in _FEE_STATUSES:
        raise invalid_input("invalid_fee_status")

    now = utcnow_iso()
    sets.append(("updated_at", now))
    assignments = ", ".join(f"{k}=?" for k, _ in sets)
    cur = conn.execute(
        f"UPDATE students SET {assignments} WHERE student_id=?",
        [v for _, v in sets] + [int(student_id)],
    )
    if cur.rowcount == 0:
        raise not_found("student_not_found")

    if manual_status == FeeStatus.OVERDUE.value:
        conn.execute(
            "UPDATE students SET fee_status='overdue' WHERE student_id=?",
            (int(student_id),),
        )
    else:
        conn.execute(
            """
            UPDATE students
            SET fee_status = CASE
                WHEN paid_fee_minor <= 0 THEN 'pending'
                WHEN paid_fee_minor < total_fee_minor THEN 'partial'
                ELSE 'paid'
            END
            WHERE student_id=?
            """,
            (int(student_id),),
        )

    updated = get_student(conn, student_id)
    assert updated is not None
    return updated


def delete_student(conn: Any, student_id: int) -> None:
    # Payments go with the student (ON DELETE CASCADE).
    cur = conn.execute("DELETE FROM students WHERE student_id=?", (int(student_id),))
    if cur.rowcount == 0:
        raise not_found("student_not_found")
