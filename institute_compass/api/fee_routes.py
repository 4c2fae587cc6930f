from __future__ import annotations

import math
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from institute_compass.auth.deps import get_config, require_admin, require_staff
from institute_compass.config import Config
from institute_compass.db import connect
from institute_compass.errors import not_found
from institute_compass.fees.ledger import (
    delete_payment,
    get_payment,
    list_payments,
    reconcile_student,
    record_payment,
)


router = APIRouter(prefix="/fees", tags=["fees"])


class PaymentRequest(BaseModel):
    # Loosely typed on purpose: the ledger validates and reports InvalidInput.
    student_id: Any = None
    amount: Any = None
    payment_date: Optional[str] = None
    payment_method: Optional[str] = None
    receipt_number: Optional[str] = None
    notes: Optional[str] = None


@router.get("")
def fees_list(
    student_id: Optional[int] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=200),
    _staff: Dict[str, Any] = Depends(require_staff),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        rows, total = list_payments(conn, student_id=student_id, page=page, limit=limit)
    return {
        "data": rows,
        "total": total,
        "page": page,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


@router.get("/{payment_id}")
def fees_get(
    payment_id: int,
    _staff: Dict[str, Any] = Depends(require_staff),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        p = get_payment(conn, payment_id)
    if p is None:
        raise not_found("payment_not_found")
    return p


@router.post("", status_code=201)
def fees_record(
    payload: PaymentRequest,
    staff: Dict[str, Any] = Depends(require_staff),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return record_payment(
            conn,
            student_id=payload.student_id,
            amount=payload.amount,
            payment_date=payload.payment_date,
            payment_method=payload.payment_method,
            receipt_number=payload.receipt_number,
            notes=payload.notes,
            recorded_by=int(staff["user_id"]),
        )


@router.delete("/{payment_id}")
def fees_delete(
    payment_id: int,
    _staff: Dict[str, Any] = Depends(require_staff),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        result = delete_payment(conn, payment_id=payment_id)
    return {"message": "payment_deleted", **result}


@router.post("/reconcile/{student_id}")
def fees_reconcile(
    student_id: int,
    _admin: Dict[str, Any] = Depends(require_admin),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return reconcile_student(conn, student_id=student_id)
