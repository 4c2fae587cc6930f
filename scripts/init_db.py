import sys
from pathlib import Path

# Ensure project root is on sys.path when running as a script
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from institute_compass.config import load_config
from institute_compass.db import connect, init_db
from institute_compass.records.settings import get_setting, upsert_setting


# Defaults mirrored from the dashboard's settings page; existing values are kept.
_DEFAULT_SETTINGS = {
    "institute": {"name": "Institute Compass", "address": "", "phone": "", "email": "", "website": "", "logo_url": ""},
    "academic": {"current_session": "", "session_start": "", "session_end": ""},
    "fees": {"late_fee_percentage": 5, "grace_period_days": 7},
}


def main() -> None:
    cfg = load_config()
    init_db(cfg.DB_DSN)
    with connect(cfg.DB_DSN) as conn:
        for key, value in _DEFAULT_SETTINGS.items():
            if get_setting(conn, key) is None:
                upsert_setting(conn, key, value)

    print("DB initialized")


if __name__ == "__main__":
    main()
