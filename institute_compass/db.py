from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Sequence
from urllib.parse import urlparse

from institute_compass.errors import AppError, ErrorKind
from institute_compass.schema import get_schema_sql


def _debug(msg: str) -> None:
    print(f"[db] {msg}")


def _detect_dialect(dsn: str) -> str:
    """Return 'postgres' or 'sqlite'."""
    s = (dsn or "").strip()
    if not s:
        return "sqlite"
    try:
        scheme = urlparse(s).scheme.lower()
    except ValueError:
        scheme = ""
    if scheme in ("postgres", "postgresql"):
        return "postgres"
    # Allow sqlite:///path style, but default is file path.
    return "sqlite"


def _qmark_to_pct(sql: str) -> str:
    """Convert SQLite qmark placeholders (?) to psycopg2 placeholders (%s).

    This is a lightweight conversion that avoids replacing '?' inside single/double-quoted
    string literals. It's not a full SQL parser, but it is sufficient for this codebase.
    Literal '%' (e.g. in LIKE patterns) must be passed as parameters, never inlined.
    """
    out: List[str] = []
    in_single = False
    in_double = False
    i = 0
    while i < len(sql):
        ch = sql[i]

        if ch == "'" and not in_double:
            out.append(ch)
            if in_single:
                # Escaped single quote: ''
                if i + 1 < len(sql) and sql[i + 1] == "'":
                    out.append("'")
                    i += 2
                    continue
                in_single = False
            else:
                in_single = True
            i += 1
            continue

        if ch == '"' and not in_single:
            out.append(ch)
            if in_double:
                if i + 1 < len(sql) and sql[i + 1] == '"':
                    out.append('"')
                    i += 2
                    continue
                in_double = False
            else:
                in_double = True
            i += 1
            continue

        if ch == "?" and not in_single and not in_double:
            out.append("%s")
            i += 1
            continue

        out.append(ch)
        i += 1

    return "".join(out)


class PGCursor:
    def __init__(self, cur: Any):
        self._cur = cur

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> "PGCursor":
        self._cur.execute(_qmark_to_pct(sql), tuple(params or ()))
        return self

    def fetchone(self) -> Any:
        return self._cur.fetchone()

    def fetchall(self) -> Any:
        return self._cur.fetchall()

    @property
    def rowcount(self) -> int:
        return int(self._cur.rowcount or 0)

    def close(self) -> None:
        self._cur.close()

    def __getattr__(self, name: str) -> Any:
        return getattr(self._cur, name)


class PGConnection:
    """A tiny adapter that makes psycopg2 connections look like sqlite3 connections."""

    dialect = "postgres"

    def __init__(self, conn: Any):
        self._conn = conn

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> PGCursor:
        wrapper = PGCursor(self._conn.cursor())
        wrapper.execute(sql, params)
        return wrapper

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()


class SQLiteConnection(sqlite3.Connection):
    dialect = "sqlite"


# -----------------------------
# Connection slots
# -----------------------------
# A process-wide bound on concurrently open connections. Callers that cannot get
# a slot within the timeout fail with StoreUnavailable instead of queueing forever.

_slots_lock = threading.Lock()
_slots: threading.BoundedSemaphore | None = None
_slot_timeout: float = 5.0
_connect_timeout: float = 5.0
_statement_timeout: float | None = None


def configure_pool(
    max_connections: int,
    *,
    acquire_timeout: float = 5.0,
    connect_timeout: float = 5.0,
    statement_timeout: float | None = None,
) -> None:
    """Size the connection slots and set store-side time limits.

    `statement_timeout` (seconds) makes Postgres cancel a statement that runs
    longer; the transaction then rolls back like any other store error.
    """
    global _slots, _slot_timeout, _connect_timeout, _statement_timeout
    with _slots_lock:
        _slots = threading.BoundedSemaphore(max(1, int(max_connections)))
        _slot_timeout = float(acquire_timeout)
        _connect_timeout = float(connect_timeout)
        _statement_timeout = float(statement_timeout) if statement_timeout else None


def _get_slots() -> threading.BoundedSemaphore:
    global _slots
    with _slots_lock:
        if _slots is None:
            _slots = threading.BoundedSemaphore(10)
        return _slots


def _translate_sqlite_error(e: sqlite3.Error) -> AppError | None:
    msg = str(e)
    if isinstance(e, sqlite3.IntegrityError):
        if "FOREIGN KEY" in msg:
            return AppError(ErrorKind.INVALID_INPUT, "invalid_reference")
        if "CHECK constraint" in msg or "NOT NULL" in msg:
            return AppError(ErrorKind.INVALID_INPUT, "constraint_violation")
        return AppError(ErrorKind.CONFLICT, "duplicate_entry")
    if isinstance(e, sqlite3.OperationalError):
        return AppError(ErrorKind.STORE_UNAVAILABLE, "database_unavailable")
    return None


def _translate_pg_error(e: Exception) -> AppError | None:
    import psycopg2

    if isinstance(e, psycopg2.IntegrityError):
        code = getattr(e, "pgcode", None) or ""
        if code == "23503":
            return AppError(ErrorKind.INVALID_INPUT, "invalid_reference")
        if code in ("23514", "23502"):
            return AppError(ErrorKind.INVALID_INPUT, "constraint_violation")
        return AppError(ErrorKind.CONFLICT, "duplicate_entry")
    if isinstance(e, (psycopg2.OperationalError, psycopg2.InterfaceError)):
        return AppError(ErrorKind.STORE_UNAVAILABLE, "database_unavailable")
    return None


@contextmanager
def connect(db_dsn: str) -> Iterator[Any]:
    """Open one transaction against SQLite or Postgres.

    The block commits on success and rolls back on any exception. Store errors
    are re-raised as AppError (Conflict / InvalidInput / StoreUnavailable).

    - SQLite: uses WAL + NORMAL sync + busy timeout.
    - Postgres: uses psycopg2 (RealDictCursor) so rows behave like dicts.
    """
    dsn = (db_dsn or "").strip()
    dialect = _detect_dialect(dsn)

    slots = _get_slots()
    if not slots.acquire(timeout=_slot_timeout):
        _debug("connection slots exhausted")
        raise AppError(ErrorKind.STORE_UNAVAILABLE, "db_pool_exhausted")
    try:
        if dialect == "postgres":
            with _connect_postgres(dsn) as conn:
                yield conn
        else:
            with _connect_sqlite(dsn) as conn:
                yield conn
    finally:
        slots.release()


def _pg_options() -> str | None:
    if not _statement_timeout:
        return None
    return f"-c statement_timeout={int(_statement_timeout * 1000)}"


@contextmanager
def _connect_postgres(dsn: str) -> Iterator[Any]:
    import psycopg2
    import psycopg2.extras

    try:
        # RealDictCursor makes fetchone()/fetchall() rows act like dicts.
        raw = psycopg2.connect(
            dsn,
            cursor_factory=psycopg2.extras.RealDictCursor,
            connect_timeout=max(1, int(_connect_timeout)),
            options=_pg_options(),
        )
    except psycopg2.OperationalError as e:
        _debug(f"postgres connect failed: {e.__class__.__name__}")
        raise AppError(ErrorKind.STORE_UNAVAILABLE, "database_unavailable") from e

    conn = PGConnection(raw)
    try:
        yield conn
        conn.commit()
    except AppError:
        conn.rollback()
        raise
    except psycopg2.Error as e:
        conn.rollback()
        translated = _translate_pg_error(e)
        if translated is None:
            raise
        raise translated from e
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


@contextmanager
def _connect_sqlite(dsn: str) -> Iterator[Any]:
    # Support sqlite:///path style
    if dsn.lower().startswith("sqlite:///"):
        dsn = dsn[len("sqlite:///") :]
    dsn = dsn or "./institute_compass.sqlite"

    try:
        Path(dsn).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            dsn,
            timeout=_connect_timeout,
            check_same_thread=False,
            factory=SQLiteConnection,
        )
    except (OSError, sqlite3.Error) as e:
        _debug(f"sqlite connect failed: {e}")
        raise AppError(ErrorKind.STORE_UNAVAILABLE, "database_unavailable") from e

    conn.row_factory = sqlite3.Row
    try:
        # Concurrency pragmas (safe defaults for several API processes).
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.execute(f"PRAGMA busy_timeout={int(_connect_timeout * 1000)};")
        conn.execute("PRAGMA foreign_keys = ON;")
        yield conn
        conn.commit()
    except AppError:
        conn.rollback()
        raise
    except sqlite3.Error as e:
        conn.rollback()
        translated = _translate_sqlite_error(e)
        if translated is None:
            raise
        raise translated from e
    except OverflowError as e:
        # Python int wider than a 64-bit SQLite integer.
        conn.rollback()
        raise AppError(ErrorKind.INVALID_INPUT, "value_out_of_range") from e
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def ping(db_dsn: str) -> bool:
    """Return True when the store answers a trivial query."""
    try:
        with connect(db_dsn) as conn:
            conn.execute("SELECT 1").fetchone()
        return True
    except AppError:
        return False


def init_db(db_dsn: str) -> None:
    """Create all tables and run lightweight migrations."""
    dialect = _detect_dialect(db_dsn)
    _debug(f"Initializing DB ({dialect})")
    with connect(db_dsn) as conn:
        schema_sql = get_schema_sql(dialect)
        # Ensure only one process runs schema DDL at a time.
        # - Postgres: use an advisory lock.
        # - SQLite: DDL already takes an exclusive database lock.
        if dialect == "postgres":
            conn.execute("SELECT pg_advisory_lock(2147483647);")
            try:
                _exec_schema(conn, schema_sql, dialect=dialect)
            finally:
                conn.execute("SELECT pg_advisory_unlock(2147483647);")
        else:
            _exec_schema(conn, schema_sql, dialect=dialect)

        _migrate(conn, dialect=dialect)


def _exec_schema(conn: Any, ddl: str, *, dialect: str) -> None:
    if dialect == "postgres":
        # Execute multi-statement DDL (naive split is OK for our schema)
        statements = [s.strip() for s in ddl.split(";") if s.strip()]
        for stmt in statements:
            conn.execute(stmt)
        return

    # SQLite can run it in one go
    conn.executescript(ddl)


def _has_column(conn: Any, table: str, col: str, *, dialect: str) -> bool:
    if dialect == "postgres":
        r = conn.execute(
            """
            SELECT 1
            FROM information_schema.columns
            WHERE table_schema='public'
              AND table_name=?
              AND column_name=?
            LIMIT 1
            """,
            (table, col),
        ).fetchone()
        return r is not None

    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return any(r["name"] == col for r in rows)


def _migrate(conn: Any, *, dialect: str) -> None:
    """Lightweight forward-only migrations for existing DBs."""
    # users.token_version (token revocation on password change)
    if not _has_column(conn, "users", "token_version", dialect=dialect):
        conn.execute("ALTER TABLE users ADD COLUMN token_version INTEGER NOT NULL DEFAULT 0")

    # students.batch_id (batch enrolment link)
    if not _has_column(conn, "students", "batch_id", dialect=dialect):
        conn.execute(
            "ALTER TABLE students ADD COLUMN batch_id INTEGER REFERENCES batches(batch_id) ON DELETE SET NULL"
        )
