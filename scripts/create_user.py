"""Create an identity (optionally with staff roles).

Usage:
  python scripts/create_user.py --email alice@example.com --password '...' --role admin --role faculty

NOTE: This is intended for local/dev and first-time setup.
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from institute_compass.config import load_config
from institute_compass.db import connect, init_db
from institute_compass.auth.crud import create_user
from institute_compass.models import ALL_ROLES


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--email", required=True)
    ap.add_argument("--password", required=True)
    ap.add_argument("--full-name", default=None)
    ap.add_argument("--role", action="append", choices=sorted(ALL_ROLES), default=None)
    args = ap.parse_args()

    cfg = load_config()
    init_db(cfg.DB_DSN)

    with connect(cfg.DB_DSN) as conn:
        u = create_user(
            conn,
            email=args.email,
            password=args.password,
            full_name=args.full_name,
            roles=args.role or ("student",),
        )

    print("Created user:")
    print(u)


if __name__ == "__main__":
    main()
