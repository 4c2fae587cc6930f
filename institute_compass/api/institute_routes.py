from __future__ import annotations

import math
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from institute_compass.auth.deps import get_config, get_current_user, get_optional_user, require_staff
from institute_compass.config import Config
from institute_compass.db import connect
from institute_compass.errors import not_found
from institute_compass.records.assessments import (
    create_assessment,
    delete_assessment,
    get_assessment,
    list_assessments,
    list_marks,
    record_mark,
    update_assessment,
)
from institute_compass.records.batches import create_batch, delete_batch, get_batch, list_batches, update_batch
from institute_compass.records.enquiries import delete_enquiry, list_enquiries, set_enquiry_status, submit_enquiry
from institute_compass.records.faculty import (
    create_faculty,
    delete_faculty,
    get_faculty,
    list_faculty,
    update_faculty,
)


batches_router = APIRouter(prefix="/batches", tags=["batches"])
faculty_router = APIRouter(prefix="/faculty", tags=["faculty"])
tests_router = APIRouter(prefix="/tests", tags=["tests"])
enquiries_router = APIRouter(prefix="/enquiries", tags=["enquiries"])


def _is_staff(user: Optional[Dict[str, Any]]) -> bool:
    return bool(user and user.get("is_staff"))


# -----------------------------
# Batches
# -----------------------------


class BatchRequest(BaseModel):
    name: Optional[str] = None
    course_id: Optional[int] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    capacity: Optional[int] = None
    is_active: Optional[bool] = None


@batches_router.get("")
def batches_list(
    course_id: Optional[int] = None,
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return {"data": list_batches(conn, include_inactive=_is_staff(user), course_id=course_id)}


@batches_router.get("/{batch_id}")
def batches_get(batch_id: int, cfg: Config = Depends(get_config)) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        b = get_batch(conn, batch_id)
    if b is None:
        raise not_found("batch_not_found")
    return b


@batches_router.post("", status_code=201)
def batches_create(
    payload: BatchRequest,
    _staff: Dict[str, Any] = Depends(require_staff),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return create_batch(conn, payload.model_dump(exclude_unset=True))


@batches_router.put("/{batch_id}")
def batches_update(
    batch_id: int,
    payload: BatchRequest,
    _staff: Dict[str, Any] = Depends(require_staff),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return update_batch(conn, batch_id, payload.model_dump(exclude_unset=True))


@batches_router.delete("/{batch_id}")
def batches_delete(
    batch_id: int,
    _staff: Dict[str, Any] = Depends(require_staff),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        delete_batch(conn, batch_id)
    return {"message": "batch_deleted"}


# -----------------------------
# Faculty
# -----------------------------


class FacultyRequest(BaseModel):
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    qualification: Optional[str] = None
    specialization: Optional[str] = None
    experience_years: Optional[int] = None
    joining_date: Optional[str] = None
    salary: Any = None
    address: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    is_active: Optional[bool] = None


@faculty_router.get("")
def faculty_list(
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    # Staff also see inactive members and private fields.
    with connect(cfg.DB_DSN) as conn:
        return {"data": list_faculty(conn, include_inactive=_is_staff(user))}


@faculty_router.get("/{faculty_id}")
def faculty_get(
    faculty_id: int,
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        f = get_faculty(conn, faculty_id, include_private=_is_staff(user))
    if f is None:
        raise not_found("faculty_not_found")
    return f


@faculty_router.post("", status_code=201)
def faculty_create(
    payload: FacultyRequest,
    _staff: Dict[str, Any] = Depends(require_staff),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return create_faculty(conn, payload.model_dump(exclude_unset=True))


@faculty_router.put("/{faculty_id}")
def faculty_update(
    faculty_id: int,
    payload: FacultyRequest,
    _staff: Dict[str, Any] = Depends(require_staff),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return update_faculty(conn, faculty_id, payload.model_dump(exclude_unset=True))


@faculty_router.delete("/{faculty_id}")
def faculty_delete(
    faculty_id: int,
    _staff: Dict[str, Any] = Depends(require_staff),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        delete_faculty(conn, faculty_id)
    return {"message": "faculty_deleted"}


# -----------------------------
# Tests and marks
# -----------------------------


class AssessmentRequest(BaseModel):
    name: Optional[str] = None
    course_id: Optional[int] = None
    batch_id: Optional[int] = None
    max_marks: Any = None
    passing_marks: Any = None
    test_date: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class MarkRequest(BaseModel):
    student_id: Optional[int] = None
    marks_obtained: Any = None
    remarks: Optional[str] = None


def _test_fields(payload: AssessmentRequest) -> Dict[str, Any]:
    # An explicit null score means "use the default", same as leaving it out.
    fields = payload.model_dump(exclude_unset=True)
    for name in ("max_marks", "passing_marks"):
        if fields.get(name, 0) is None:
            del fields[name]
    return fields


@tests_router.get("")
def tests_list(
    course_id: Optional[int] = None,
    batch_id: Optional[int] = None,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        rows = list_assessments(
            conn,
            include_inactive=_is_staff(user),
            course_id=course_id,
            batch_id=batch_id,
        )
    return {"data": rows}


@tests_router.post("", status_code=201)
def tests_create(
    payload: AssessmentRequest,
    _staff: Dict[str, Any] = Depends(require_staff),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return create_assessment(conn, _test_fields(payload))


@tests_router.put("/{test_id}")
def tests_update(
    test_id: int,
    payload: AssessmentRequest,
    _staff: Dict[str, Any] = Depends(require_staff),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return update_assessment(conn, test_id, _test_fields(payload))


@tests_router.delete("/{test_id}")
def tests_delete(
    test_id: int,
    _staff: Dict[str, Any] = Depends(require_staff),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        delete_assessment(conn, test_id)
    return {"message": "test_deleted"}


@tests_router.get("/{test_id}/marks")
def marks_list(
    test_id: int,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    owner = None if _is_staff(user) else int(user["user_id"])
    with connect(cfg.DB_DSN) as conn:
        if get_assessment(conn, test_id) is None:
            raise not_found("test_not_found")
        return {"data": list_marks(conn, test_id, owner_user_id=owner)}


@tests_router.post("/{test_id}/marks")
def marks_record(
    test_id: int,
    payload: MarkRequest,
    _staff: Dict[str, Any] = Depends(require_staff),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return record_mark(
            conn,
            test_id,
            student_id=payload.student_id,
            marks_obtained=payload.marks_obtained,
            remarks=payload.remarks,
        )


# -----------------------------
# Enquiries
# -----------------------------


class EnquiryRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    course_interest: Optional[str] = None
    message: Optional[str] = None


class EnquiryStatusRequest(BaseModel):
    status: Optional[str] = None


@enquiries_router.post("", status_code=201)
def enquiries_submit(payload: EnquiryRequest, cfg: Config = Depends(get_config)) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        created = submit_enquiry(conn, payload.model_dump())
    return {"message": "enquiry_submitted", "enquiry_id": created["enquiry_id"]}


@enquiries_router.get("")
def enquiries_list(
    status: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=200),
    _staff: Dict[str, Any] = Depends(require_staff),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        rows, total = list_enquiries(conn, status=status, page=page, limit=limit)
    return {
        "data": rows,
        "total": total,
        "page": page,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


@enquiries_router.put("/{enquiry_id}")
def enquiries_update(
    enquiry_id: int,
    payload: EnquiryStatusRequest,
    _staff: Dict[str, Any] = Depends(require_staff),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return set_enquiry_status(conn, enquiry_id, payload.status)


@enquiries_router.delete("/{enquiry_id}")
def enquiries_delete(
    enquiry_id: int,
    _staff: Dict[str, Any] = Depends(require_staff),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        delete_enquiry(conn, enquiry_id)
    return {"message": "enquiry_deleted"}
