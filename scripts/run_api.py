"""Serve the API with uvicorn.

Host and port come from API_HOST / API_PORT (see .env.example). The app is
built by `create_app()`, which validates configuration before binding.
"""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

import uvicorn

from institute_compass.config import load_config


def main() -> None:
    cfg = load_config()
    if cfg.is_production and cfg.API_HOST == "0.0.0.0":
        print("[run_api] binding all interfaces in production; put a proxy in front")
    uvicorn.run(
        "institute_compass.api.server:create_app",
        factory=True,
        host=cfg.API_HOST,
        port=int(cfg.API_PORT),
        reload=False,
    )


if __name__ == "__main__":
    main()
