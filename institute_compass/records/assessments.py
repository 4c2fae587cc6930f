"""Tests (assessments) and the marks students score in them.

Any authenticated identity may read; only staff write. A non-staff caller sees
active assessments only, and only the marks of students linked to their own
identity.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Optional, Tuple

from institute_compass.errors import invalid_input, not_found
from institute_compass.util.time import utcnow_iso


_SELECT = """
    SELECT a.*, c.name AS course_name, b.name AS batch_name
    FROM assessments a
    LEFT JOIN courses c ON a.course_id = c.course_id
    LEFT JOIN batches b ON a.batch_id = b.batch_id
"""


def public_assessment(row: Any | Dict[str, Any]) -> Dict[str, Any]:
    d = dict(row)
    d["is_active"] = bool(d.get("is_active"))
    course_name = d.pop("course_name", None)
    batch_name = d.pop("batch_name", None)
    d["course"] = {"course_id": d.get("course_id"), "name": course_name} if course_name else None
    d["batch"] = {"batch_id": d.get("batch_id"), "name": batch_name} if batch_name else None
    return d


def _score(value: Any, field: str) -> float:
    if value is None or isinstance(value, bool):
        raise invalid_input(f"{field}_required")
    try:
        n = float(value)
    except (TypeError, ValueError):
        raise invalid_input(f"{field}_not_numeric")
    if not math.isfinite(n) or n < 0:
        raise invalid_input(f"{field}_invalid")
    return n


def list_assessments(
    conn: Any,
    *,
    include_inactive: bool,
    course_id: int | None = None,
    batch_id: int | None = None,
) -> List[Dict[str, Any]]:
    clauses: List[str] = []
    params: List[Any] = []
    if not include_inactive:
        clauses.append("a.is_active = 1")
    if course_id is not None:
        clauses.append("a.course_id = ?")
        params.append(int(course_id))
    if batch_id is not None:
        clauses.append("a.batch_id = ?")
        params.append(int(batch_id))
    where = ("WHERE " + " AND ".join(clauses)) if clauses else ""
    rows = conn.execute(
        f"{_SELECT} {where} ORDER BY a.test_date DESC, a.created_at DESC, a.assessment_id DESC",
        params,
    ).fetchall()
    return [public_assessment(r) for r in rows]


def get_assessment(conn: Any, assessment_id: int) -> Optional[Dict[str, Any]]:
    row = conn.execute(f"{_SELECT} WHERE a.assessment_id=?", (int(assessment_id),)).fetchone()
    if row is None:
        return None
    return public_assessment(row)


def create_assessment(conn: Any, fields: Dict[str, Any]) -> Dict[str, Any]:
    name = (fields.get("name") or "").strip()
    if not name:
        raise invalid_input("test_name_required")
    max_marks = _score(fields.get("max_marks", 100), "max_marks")
    passing = _score(fields.get("passing_marks", 40), "passing_marks")
    if max_marks <= 0 or passing > max_marks:
        raise invalid_input("marks_range_invalid")

    now = utcnow_iso()
    row = conn.execute(
        """
        INSERT INTO assessments (
            name, course_id, batch_id, max_marks, passing_marks, test_date, description,
            is_active, created_at, updated_at
        )
        VALUES (?,?,?,?,?,?,?,?,?,?)
        RETURNING assessment_id
        """,
        (
            name,
            fields.get("course_id"),
            fields.get("batch_id"),
            max_marks,
            passing,
            fields.get("test_date"),
            fields.get("description"),
            0 if fields.get("is_active") is False else 1,
            now,
            now,
        ),
    ).fetchone()
    created = get_assessment(conn, int(row["assessment_id"]))
    assert created is not None
    return created


def update_assessment(conn: Any, assessment_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
    current = get_assessment(conn, assessment_id)
    if current is None:
        raise not_found("test_not_found")

    sets: List[Tuple[str, Any]] = []
    if "name" in fields:
        if not (fields["name"] or "").strip():
            raise invalid_input("test_name_required")
        sets.append(("name", fields["name"].strip()))
    for name in ("course_id", "batch_id", "test_date", "description"):
        if name in fields:
            sets.append((name, fields[name]))
    max_marks = float(current["max_marks"])
    passing = float(current["passing_marks"])
    if "max_marks" in fields:
        max_marks = _score(fields["max_marks"], "max_marks")
        sets.append(("max_marks", max_marks))
    if "passing_marks" in fields:
        passing = _score(fields["passing_marks"], "passing_marks")
        sets.append(("passing_marks", passing))
    if max_marks <= 0 or passing > max_marks:
        raise invalid_input("marks_range_invalid")
    if "is_active" in fields:
        sets.append(("is_active", 1 if fields["is_active"] else 0))
    sets.append(("updated_at", utcnow_iso()))

    assignments = ", ".join(f"{k}=?" for k, _ in sets)
    conn.execute(
        f"UPDATE assessments SET {assignments} WHERE assessment_id=?",
        [v for _, v in sets] + [int(assessment_id)],
    )
    updated = get_assessment(conn, assessment_id)
    assert updated is not None
    return updated


def delete_assessment(conn: Any, assessment_id: int) -> None:
    # Marks go with the assessment (ON DELETE CASCADE).
    cur = conn.execute("DELETE FROM assessments WHERE assessment_id=?", (int(assessment_id),))
    if cur.rowcount == 0:
        raise not_found("test_not_found")


# -----------------------------
# Marks
# -----------------------------


def list_marks(conn: Any, assessment_id: int, *, owner_user_id: int | None = None) -> List[Dict[str, Any]]:
    """Marks for one assessment; `owner_user_id` limits them to that identity's students."""
    params: List[Any] = [int(assessment_id)]
    owner = ""
    if owner_user_id is not None:
        owner = "AND s.user_id = ?"
        params.append(int(owner_user_id))
    rows = conn.execute(
        f"""
        SELECT m.*, s.full_name AS student_name, s.enrollment_number
        FROM marks m
        JOIN students s ON m.student_id = s.student_id
        WHERE m.assessment_id = ? {owner}
        ORDER BY s.enrollment_number
        """,
        params,
    ).fetchall()
    return [dict(r) for r in rows]


def record_mark(
    conn: Any,
    assessment_id: int,
    *,
    student_id: Any,
    marks_obtained: Any,
    remarks: str | None = None,
) -> Dict[str, Any]:
    """Insert or overwrite the mark of one student for one assessment."""
    if student_id is None:
        raise invalid_input("student_id_and_marks_required")
    score = _score(marks_obtained, "marks_obtained")

    test = conn.execute(
        "SELECT max_marks FROM assessments WHERE assessment_id=?",
        (int(assessment_id),),
    ).fetchone()
    if test is None:
        raise not_found("test_not_found")
    if score > float(test["max_marks"]):
        raise invalid_input("marks_exceed_max")

    now = utcnow_iso()
    # The (assessment_id, student_id) unique key makes this an upsert.
    row = conn.execute(
        """
        INSERT INTO marks (assessment_id, student_id, marks_obtained, remarks, created_at, updated_at)
        VALUES (?,?,?,?,?,?)
        ON CONFLICT(assessment_id, student_id) DO UPDATE SET
            marks_obtained=excluded.marks_obtained,
            remarks=excluded.remarks,
            updated_at=excluded.updated_at
        RETURNING *
        """,
        (int(assessment_id), student_id, score, remarks or None, now, now),
    ).fetchone()
    return dict(row)
