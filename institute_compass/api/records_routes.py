from __future__ import annotations

import math
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from institute_compass.auth.deps import get_config, get_current_user, get_optional_user, require_staff
from institute_compass.config import Config
from institute_compass.db import connect
from institute_compass.errors import AppError, ErrorKind, invalid_input, not_found
from institute_compass.records.courses import (
    create_course,
    delete_course,
    get_course,
    list_courses,
    update_course,
)
from institute_compass.records.settings import get_setting, list_settings, upsert_setting
from institute_compass.records.students import (
    create_student,
    delete_student,
    get_student,
    list_students,
    update_student,
)


students_router = APIRouter(prefix="/students", tags=["students"])
courses_router = APIRouter(prefix="/courses", tags=["courses"])
settings_router = APIRouter(prefix="/settings", tags=["settings"])


# -----------------------------
# Students
# -----------------------------


class StudentRequest(BaseModel):
    enrollment_number: Optional[str] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    date_of_birth: Optional[str] = None
    guardian_name: Optional[str] = None
    guardian_phone: Optional[str] = None
    course_id: Optional[int] = None
    batch_id: Optional[int] = None
    user_id: Optional[int] = None
    status: Optional[str] = None
    total_fee: Any = None
    fee_status: Optional[str] = None
    notes: Optional[str] = None


@students_router.get("")
def students_list(
    search: Optional[str] = None,
    status: Optional[str] = None,
    fee_status: Optional[str] = None,
    batch_id: Optional[int] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=200),
    _staff: Dict[str, Any] = Depends(require_staff),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        rows, total = list_students(
            conn,
            search=search,
            status=status,
            fee_status=fee_status,
            batch_id=batch_id,
            page=page,
            limit=limit,
        )
    return {
        "data": rows,
        "total": total,
        "page": page,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


@students_router.get("/{student_id}")
def students_get(
    student_id: int,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        s = get_student(conn, student_id)
    if s is None:
        raise not_found("student_not_found")
    is_owner = s.get("user_id") is not None and int(s["user_id"]) == int(user["user_id"])
    if not is_owner and not user.get("is_staff"):
        raise AppError(ErrorKind.FORBIDDEN, "access_denied")
    return s


@students_router.post("", status_code=201)
def students_create(
    payload: StudentRequest,
    _staff: Dict[str, Any] = Depends(require_staff),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return create_student(conn, payload.model_dump(exclude_unset=True))


@students_router.put("/{student_id}")
def students_update(
    student_id: int,
    payload: StudentRequest,
    _staff: Dict[str, Any] = Depends(require_staff),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return update_student(conn, student_id, payload.model_dump(exclude_unset=True))


@students_router.delete("/{student_id}")
def students_delete(
    student_id: int,
    _staff: Dict[str, Any] = Depends(require_staff),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        delete_student(conn, student_id)
    return {"message": "student_deleted"}


# -----------------------------
# Courses
# -----------------------------


class CourseRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    duration_months: Optional[int] = None
    fee_amount: Any = None
    image_url: Optional[str] = None
    is_active: Optional[bool] = None


@courses_router.get("")
def courses_list(
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    # Anonymous and non-staff callers only see active courses.
    include_inactive = bool(user and user.get("is_staff"))
    with connect(cfg.DB_DSN) as conn:
        return {"data": list_courses(conn, include_inactive=include_inactive)}


@courses_router.get("/{course_id}")
def courses_get(course_id: int, cfg: Config = Depends(get_config)) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        c = get_course(conn, course_id)
    if c is None:
        raise not_found("course_not_found")
    return c


@courses_router.post("", status_code=201)
def courses_create(
    payload: CourseRequest,
    _staff: Dict[str, Any] = Depends(require_staff),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return create_course(conn, payload.model_dump(exclude_unset=True))


@courses_router.put("/{course_id}")
def courses_update(
    course_id: int,
    payload: CourseRequest,
    _staff: Dict[str, Any] = Depends(require_staff),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return update_course(conn, course_id, payload.model_dump(exclude_unset=True))


@courses_router.delete("/{course_id}")
def courses_delete(
    course_id: int,
    _staff: Dict[str, Any] = Depends(require_staff),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        delete_course(conn, course_id)
    return {"message": "course_deleted"}


# -----------------------------
# Settings
# -----------------------------


class SettingRequest(BaseModel):
    value: Any = None
    description: Optional[str] = None


@settings_router.get("")
def settings_list(cfg: Config = Depends(get_config)) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        raw: List[Dict[str, Any]] = list_settings(conn)
    return {"data": {s["key"]: s["value"] for s in raw}, "raw": raw}


@settings_router.get("/{key}")
def settings_get(key: str, cfg: Config = Depends(get_config)) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        s = get_setting(conn, key)
    if s is None:
        raise not_found("setting_not_found")
    return s


@settings_router.put("/{key}")
def settings_put(
    key: str,
    payload: SettingRequest,
    _staff: Dict[str, Any] = Depends(require_staff),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    if "value" not in payload.model_fields_set:
        raise invalid_input("value_required")
    with connect(cfg.DB_DSN) as conn:
        return upsert_setting(conn, key, payload.value, description=payload.description)
