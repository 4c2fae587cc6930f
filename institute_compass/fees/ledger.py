"""Fee ledger.

Invariant: for every student, `students.paid_fee_minor` equals the sum of
`fee_payments.amount_minor` over that student's surviving payments, and
`fee_status` is derived from (paid, total) after every ledger write.

Both writes of a ledger operation happen inside the caller's `connect()` block,
i.e. one transaction. The student row is updated with an in-place increment
(`paid_fee_minor = paid_fee_minor + ?`) rather than read-modify-write, so two
concurrent payments for the same student serialize on the row lock and neither
update is lost.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from institute_compass.errors import invalid_input, not_found
from institute_compass.models import FeeStatus
from institute_compass.util.money import from_minor, to_minor
from institute_compass.util.time import today_iso, utcnow_iso


_MAX_ID = 2**63 - 1


def _debug(msg: str) -> None:
    print(f"[ledger] {msg}")


def compute_fee_status(paid_minor: int, total_minor: int) -> str:
    """Derive the fee status from amounts. Never returns 'overdue'."""
    paid = int(paid_minor or 0)
    total = int(total_minor or 0)
    if paid <= 0:
        return FeeStatus.PENDING.value
    if paid < total:
        return FeeStatus.PARTIAL.value
    return FeeStatus.PAID.value


# SQL twin of compute_fee_status over an expression for the new paid amount.
# `{paid}` is substituted with an SQL expression, never with user input.
_STATUS_CASE = """
    CASE
        WHEN {paid} <= 0 THEN 'pending'
        WHEN {paid} < total_fee_minor THEN 'partial'
        ELSE 'paid'
    END
"""

_INCREMENT_SQL = f"""
    UPDATE students
    SET paid_fee_minor = paid_fee_minor + ?,
        fee_status = {_STATUS_CASE.format(paid="paid_fee_minor + ?")},
        updated_at = ?
    WHERE student_id = ?
    RETURNING paid_fee_minor, fee_status
"""

_CLAMPED = "CASE WHEN paid_fee_minor - ? < 0 THEN 0 ELSE paid_fee_minor - ? END"

_DECREMENT_SQL = f"""
    UPDATE students
    SET paid_fee_minor = {_CLAMPED},
        fee_status = {_STATUS_CASE.format(paid=f"({_CLAMPED})")},
        updated_at = ?
    WHERE student_id = ?
    RETURNING paid_fee_minor, fee_status
"""


def public_payment(row: Any | Dict[str, Any]) -> Dict[str, Any]:
    d = dict(row)
    d["amount"] = from_minor(d.pop("amount_minor", 0))
    return d


def _student_id(value: Any) -> int:
    try:
        sid = int(value)
    except (TypeError, ValueError):
        raise invalid_input("student_id_invalid")
    if sid <= 0 or sid > _MAX_ID:
        raise invalid_input("student_id_invalid")
    return sid


def record_payment(
    conn: Any,
    *,
    student_id: Any,
    amount: Any,
    payment_date: str | None = None,
    payment_method: str | None = None,
    receipt_number: str | None = None,
    notes: str | None = None,
    recorded_by: int | None = None,
) -> Dict[str, Any]:
    """Persist a payment and credit it to the student in one transaction.

    Raises InvalidInput for a non-positive/non-numeric amount or an unknown
    student. Must be called inside a `connect()` block; a failure of either
    write rolls back both.
    """
    if student_id is None:
        raise invalid_input("student_id_required")
    sid = _student_id(student_id)
    amount_minor = to_minor(amount, field="amount")

    now = utcnow_iso()
    # Student row first: takes the row/write lock and proves the student exists.
    # The increment expression appears three times (value + two status branches).
    updated = conn.execute(
        _INCREMENT_SQL,
        (amount_minor, amount_minor, amount_minor, now, sid),
    ).fetchone()
    if updated is None:
        raise invalid_input("student_not_found")

    row = conn.execute(
        """
        INSERT INTO fee_payments
            (student_id, amount_minor, payment_date, payment_method, receipt_number, notes, recorded_by, created_at)
        VALUES (?,?,?,?,?,?,?,?)
        RETURNING *
        """,
        (
            sid,
            amount_minor,
            (payment_date or "").strip() or today_iso(),
            payment_method or None,
            receipt_number or None,
            notes or None,
            recorded_by,
            now,
        ),
    ).fetchone()

    _debug(
        f"payment {row['payment_id']} recorded student={sid} amount={from_minor(amount_minor)} "
        f"paid={from_minor(updated['paid_fee_minor'])} status={updated['fee_status']}"
    )
    return public_payment(row)


def get_payment(conn: Any, payment_id: int) -> Optional[Dict[str, Any]]:
    row = conn.execute(
        """
        SELECT fp.*, s.full_name AS student_name, s.enrollment_number
        FROM fee_payments fp
        JOIN students s ON fp.student_id = s.student_id
        WHERE fp.payment_id=?
        """,
        (int(payment_id),),
    ).fetchone()
    if row is None:
        return None
    return public_payment(row)


def delete_payment(conn: Any, *, payment_id: int) -> Dict[str, Any]:
    """Remove a payment and debit it from the student in one transaction.

    Raises NotFound for an unknown payment. The student's paid amount is
    clamped at zero.
    """
    row = conn.execute(
        "DELETE FROM fee_payments WHERE payment_id=? RETURNING student_id, amount_minor",
        (int(payment_id),),
    ).fetchone()
    if row is None:
        raise not_found("payment_not_found")

    sid = int(row["student_id"])
    amount_minor = int(row["amount_minor"])
    updated = conn.execute(
        _DECREMENT_SQL,
        # _CLAMPED appears three times with two placeholders each.
        (*([amount_minor] * 6), utcnow_iso(), sid),
    ).fetchone()

    _debug(
        f"payment {payment_id} deleted student={sid} amount={from_minor(amount_minor)} "
        f"paid={from_minor(updated['paid_fee_minor'])} status={updated['fee_status']}"
    )
    return {
        "payment_id": int(payment_id),
        "student_id": sid,
        "paid_fee": from_minor(updated["paid_fee_minor"]),
        "fee_status": str(updated["fee_status"]),
    }


def list_payments(
    conn: Any,
    *,
    student_id: int | None = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Dict[str, Any]], int]:
    where = ""
    params: List[Any] = []
    if student_id is not None:
        where = "WHERE fp.student_id=?"
        params.append(int(student_id))

    total = conn.execute(
        f"SELECT COUNT(*) AS n FROM fee_payments fp {where}",
        params,
    ).fetchone()["n"]

    offset = (max(1, int(page)) - 1) * int(limit)
    rows = conn.execute(
        f"""
        SELECT fp.*, s.full_name AS student_name, s.enrollment_number
        FROM fee_payments fp
        JOIN students s ON fp.student_id = s.student_id
        {where}
        ORDER BY fp.payment_date DESC, fp.created_at DESC, fp.payment_id DESC
        LIMIT ? OFFSET ?
        """,
        params + [int(limit), offset],
    ).fetchall()
    return [public_payment(r) for r in rows], int(total)


def reconcile_student(conn: Any, *, student_id: int) -> Dict[str, Any]:
    """Recompute paid amount and status from the surviving payments.

    Repairs drift in rows written before the ledger was transactional.
    """
    sid = _student_id(student_id)
    total_paid = conn.execute(
        "SELECT COALESCE(SUM(amount_minor), 0) AS paid FROM fee_payments WHERE student_id=?",
        (sid,),
    ).fetchone()["paid"]

    updated = conn.execute(
        f"""
        UPDATE students
        SET paid_fee_minor = ?,
            fee_status = {_STATUS_CASE.format(paid="?")},
            updated_at = ?
        WHERE student_id = ?
        RETURNING paid_fee_minor, fee_status
        """,
        (int(total_paid), int(total_paid), int(total_paid), utcnow_iso(), sid),
    ).fetchone()
    if updated is None:
        raise not_found("student_not_found")

    return {
        "student_id": sid,
        "paid_fee": from_minor(updated["paid_fee_minor"]),
        "fee_status": str(updated["fee_status"]),
    }
