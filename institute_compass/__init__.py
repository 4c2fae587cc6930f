"""Institute Compass - administrative backend for a coaching institute.

- Identities, roles and JWT sessions live in `auth/`.
- Fee payments and the per-student paid/status ledger live in `fees/`.
- Students, courses and settings are plain resource services in `records/`.
- `api/server.py` wires them into a FastAPI app (`create_app`).
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
