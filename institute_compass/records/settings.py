from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from institute_compass.util.time import utcnow_iso


def _public_setting(row: Any) -> Dict[str, Any]:
    d = dict(row)
    d["value"] = json.loads(d["value"])
    return d


def list_settings(conn: Any) -> List[Dict[str, Any]]:
    rows = conn.execute("SELECT * FROM settings ORDER BY key").fetchall()
    return [_public_setting(r) for r in rows]


def get_setting(conn: Any, key: str) -> Optional[Dict[str, Any]]:
    row = conn.execute("SELECT * FROM settings WHERE key=?", (key,)).fetchone()
    if row is None:
        return None
    return _public_setting(row)


def upsert_setting(conn: Any, key: str, value: Any, *, description: str | None = None) -> Dict[str, Any]:
    """Upsert a JSON-valued setting; `description` is kept when not given."""
    now = utcnow_iso()
    conn.execute(
        """
        INSERT INTO settings (key, value, description, updated_at) VALUES (?, ?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET
            value=excluded.value,
            description=COALESCE(excluded.description, settings.description),
            updated_at=excluded.updated_at
        """,
        (key, json.dumps(value, ensure_ascii=False), description, now),
    )
    row = get_setting(conn, key)
    assert row is not None
    return row
