import threading

import pytest

from institute_compass.db import _qmark_to_pct, configure_pool, connect, ping
from institute_compass.errors import AppError, ErrorKind


@pytest.fixture
def tiny_pool():
    configure_pool(1, acquire_timeout=0.05)
    yield
    configure_pool(10)


def test_qmark_conversion_skips_string_literals():
    sql = "SELECT '?' AS q, x FROM t WHERE a=? AND b='it''s ?' AND c=?"
    assert _qmark_to_pct(sql) == "SELECT '?' AS q, x FROM t WHERE a=%s AND b='it''s ?' AND c=%s"


def test_pool_exhaustion_is_store_unavailable(db_dsn, tiny_pool):
    held = threading.Event()
    release = threading.Event()

    def hold():
        with connect(db_dsn):
            held.set()
            release.wait(5)

    t = threading.Thread(target=hold)
    t.start()
    try:
        assert held.wait(5)
        with pytest.raises(AppError) as ei:
            with connect(db_dsn):
                pass
        assert ei.value.kind == ErrorKind.STORE_UNAVAILABLE
        assert ei.value.detail == "db_pool_exhausted"
    finally:
        release.set()
        t.join()

    # Slot is released again.
    with connect(db_dsn) as conn:
        assert conn.execute("SELECT 1 AS one").fetchone()["one"] == 1


def test_block_commits_on_success_and_rolls_back_on_error(db_dsn):
    with connect(db_dsn) as conn:
        conn.execute("INSERT INTO settings (key, value, updated_at) VALUES ('a', '1', 'now')")

    with pytest.raises(RuntimeError):
        with connect(db_dsn) as conn:
            conn.execute("INSERT INTO settings (key, value, updated_at) VALUES ('b', '2', 'now')")
            raise RuntimeError("boom")

    with connect(db_dsn) as conn:
        keys = [r["key"] for r in conn.execute("SELECT key FROM settings ORDER BY key").fetchall()]
    assert keys == ["a"]


def test_duplicate_key_is_conflict(db_dsn):
    with pytest.raises(AppError) as ei:
        with connect(db_dsn) as conn:
            conn.execute("INSERT INTO settings (key, value, updated_at) VALUES ('a', '1', 'now')")
            conn.execute("INSERT INTO settings (key, value, updated_at) VALUES ('a', '2', 'now')")
    assert ei.value.kind == ErrorKind.CONFLICT


def test_check_constraint_is_invalid_input(db_dsn):
    with pytest.raises(AppError) as ei:
        with connect(db_dsn) as conn:
            conn.execute(
                "INSERT INTO user_roles (user_id, role, created_at) VALUES (1, 'wizard', 'now')"
            )
    assert ei.value.kind == ErrorKind.INVALID_INPUT


def test_ping(db_dsn, tmp_path):
    assert ping(db_dsn) is True
    blocker = tmp_path / "file"
    blocker.write_text("x")
    assert ping(str(blocker / "db.sqlite")) is False
