"""Database schema for the Institute Compass backend.

SQLite is the default engine; Postgres is used when the DSN is a postgres:// URL.

We keep timestamps as ISO-8601 TEXT (UTC, with 'Z') for portability. Currency
columns (suffix `_minor`) are INTEGER minor units; never store money as REAL.

NOTE: The Postgres schema is generated from the SQLite schema with a small set of
transformations (types + autoincrement).
"""

from __future__ import annotations

import re


SCHEMA_SQLITE = r"""
PRAGMA foreign_keys = ON;

-- Identities
-- token_version is embedded in every JWT; bumping it revokes older tokens.
CREATE TABLE IF NOT EXISTS users (
    user_id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    full_name TEXT NOT NULL,
    phone TEXT,
    avatar_url TEXT,
    token_version INTEGER NOT NULL DEFAULT 0,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    last_login_at TEXT
);

-- One row per (identity, role); the primary key forbids duplicates.
CREATE TABLE IF NOT EXISTS user_roles (
    user_id INTEGER NOT NULL,
    role TEXT NOT NULL CHECK (role IN ('admin','director','faculty','student')),
    created_at TEXT NOT NULL,
    PRIMARY KEY (user_id, role),
    FOREIGN KEY (user_id) REFERENCES users(user_id)
);

CREATE TABLE IF NOT EXISTS courses (
    course_id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    description TEXT,
    duration_months INTEGER NOT NULL DEFAULT 12,
    fee_amount_minor INTEGER NOT NULL DEFAULT 0 CHECK (fee_amount_minor >= 0),
    image_url TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_courses_active ON courses (is_active, created_at);

CREATE TABLE IF NOT EXISTS batches (
    batch_id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    course_id INTEGER,
    start_date TEXT,
    end_date TEXT,
    capacity INTEGER NOT NULL DEFAULT 30 CHECK (capacity >= 0),
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (course_id) REFERENCES courses(course_id) ON DELETE SET NULL
);
CREATE INDEX IF NOT EXISTS idx_batches_course ON batches (course_id, is_active);

-- Fee ledger: paid_fee_minor must equal SUM(fee_payments.amount_minor) for the student.
CREATE TABLE IF NOT EXISTS students (
    student_id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER,
    enrollment_number TEXT NOT NULL UNIQUE,
    full_name TEXT NOT NULL,
    email TEXT NOT NULL,
    phone TEXT,
    address TEXT,
    date_of_birth TEXT,
    guardian_name TEXT,
    guardian_phone TEXT,
    course_id INTEGER,
    batch_id INTEGER,
    status TEXT NOT NULL DEFAULT 'active' CHECK (status IN ('active','inactive','dropped','graduated')),
    total_fee_minor INTEGER NOT NULL DEFAULT 0 CHECK (total_fee_minor >= 0),
    paid_fee_minor INTEGER NOT NULL DEFAULT 0 CHECK (paid_fee_minor >= 0),
    fee_status TEXT NOT NULL DEFAULT 'pending' CHECK (fee_status IN ('pending','partial','paid','overdue')),
    notes TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (user_id) REFERENCES users(user_id),
    FOREIGN KEY (course_id) REFERENCES courses(course_id) ON DELETE SET NULL,
    FOREIGN KEY (batch_id) REFERENCES batches(batch_id) ON DELETE SET NULL
);
CREATE INDEX IF NOT EXISTS idx_students_user ON students (user_id);
CREATE INDEX IF NOT EXISTS idx_students_fee_status ON students (fee_status, status);

CREATE TABLE IF NOT EXISTS fee_payments (
    payment_id INTEGER PRIMARY KEY AUTOINCREMENT,
    student_id INTEGER NOT NULL,
    amount_minor INTEGER NOT NULL CHECK (amount_minor > 0),
    payment_date TEXT NOT NULL,
    payment_method TEXT,
    receipt_number TEXT,
    notes TEXT,
    recorded_by INTEGER,
    created_at TEXT NOT NULL,
    FOREIGN KEY (student_id) REFERENCES students(student_id) ON DELETE CASCADE,
    FOREIGN KEY (recorded_by) REFERENCES users(user_id)
);
CREATE INDEX IF NOT EXISTS idx_fee_payments_student ON fee_payments (student_id, payment_date);

CREATE TABLE IF NOT EXISTS faculty (
    faculty_id INTEGER PRIMARY KEY AUTOINCREMENT,
    full_name TEXT NOT NULL,
    email TEXT NOT NULL,
    phone TEXT,
    qualification TEXT,
    specialization TEXT,
    experience_years INTEGER NOT NULL DEFAULT 0 CHECK (experience_years >= 0),
    joining_date TEXT,
    salary_minor INTEGER NOT NULL DEFAULT 0 CHECK (salary_minor >= 0),
    address TEXT,
    bio TEXT,
    avatar_url TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Tests/exams and the marks students scored in them.
CREATE TABLE IF NOT EXISTS assessments (
    assessment_id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    course_id INTEGER,
    batch_id INTEGER,
    max_marks REAL NOT NULL DEFAULT 100 CHECK (max_marks > 0),
    passing_marks REAL NOT NULL DEFAULT 40 CHECK (passing_marks >= 0),
    test_date TEXT,
    description TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (course_id) REFERENCES courses(course_id) ON DELETE SET NULL,
    FOREIGN KEY (batch_id) REFERENCES batches(batch_id) ON DELETE SET NULL
);
CREATE INDEX IF NOT EXISTS idx_assessments_date ON assessments (test_date, created_at);

-- One mark per (assessment, student); re-entering a mark overwrites it.
CREATE TABLE IF NOT EXISTS marks (
    mark_id INTEGER PRIMARY KEY AUTOINCREMENT,
    assessment_id INTEGER NOT NULL,
    student_id INTEGER NOT NULL,
    marks_obtained REAL NOT NULL CHECK (marks_obtained >= 0),
    remarks TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (assessment_id, student_id),
    FOREIGN KEY (assessment_id) REFERENCES assessments(assessment_id) ON DELETE CASCADE,
    FOREIGN KEY (student_id) REFERENCES students(student_id) ON DELETE CASCADE
);

-- Enquiries submitted anonymously from the public site.
CREATE TABLE IF NOT EXISTS enquiries (
    enquiry_id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT NOT NULL,
    phone TEXT,
    course_interest TEXT,
    message TEXT,
    status TEXT NOT NULL DEFAULT 'new' CHECK (status IN ('new','contacted','converted','closed')),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_enquiries_status ON enquiries (status, created_at);

-- Institute-wide settings (JSON values), e.g. institute / academic / fees.
CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    description TEXT,
    updated_at TEXT NOT NULL
);
"""


def _sqlite_to_postgres(ddl: str) -> str:
    # Remove SQLite pragmas
    lines: list[str] = []
    for line in ddl.splitlines():
        if line.strip().upper().startswith("PRAGMA "):
            continue
        lines.append(line)
    out = "\n".join(lines)

    # Types
    out = re.sub(r"\bREAL\b", "DOUBLE PRECISION", out)
    # Minor-unit money can exceed 32-bit range.
    out = re.sub(r"(_minor\s+)INTEGER\b", r"\1BIGINT", out)

    # AUTOINCREMENT primary keys
    out = re.sub(
        r"INTEGER\s+PRIMARY\s+KEY\s+AUTOINCREMENT",
        "BIGSERIAL PRIMARY KEY",
        out,
        flags=re.IGNORECASE,
    )
    out = re.sub(r"\bAUTOINCREMENT\b", "", out, flags=re.IGNORECASE)

    return out


SCHEMA_POSTGRES = _sqlite_to_postgres(SCHEMA_SQLITE)


def get_schema_sql(dialect: str) -> str:
    d = (dialect or "").lower()
    if d.startswith("post"):
        return SCHEMA_POSTGRES
    return SCHEMA_SQLITE
