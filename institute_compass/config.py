import os
import secrets
from dataclasses import dataclass, field, replace

from dotenv import load_dotenv

# Load a local .env file if present.
load_dotenv()


def _debug(msg: str) -> None:
    print(f"[config] {msg}")


def _env(name: str, default: str = ""):
    return field(default_factory=lambda: os.environ.get(name, default))


def _env_int(name: str, default: int):
    return field(default_factory=lambda: int(os.environ.get(name, str(default))))


def _env_float(name: str, default: float):
    return field(default_factory=lambda: float(os.environ.get(name, str(default))))


def _database_url() -> str:
    return os.environ.get("DATABASE_URL") or ""


@dataclass(frozen=True)
class Config:
    """Runtime configuration.

    Values are read from the environment (or a .env file) when the Config is
    constructed. Secrets have no literal fallback: see `load_config()`.
    """

    # -----------------
    # Core
    # -----------------
    # development | test | production
    APP_ENV: str = _env("APP_ENV", "development")

    # Preferred: set DATABASE_URL to a postgres:// URL.
    # Fallback: INSTITUTE_DB_PATH for SQLite.
    DATABASE_URL: str = field(default_factory=_database_url)
    DB_PATH: str = _env("INSTITUTE_DB_PATH", "./institute_compass.sqlite")

    # Bounded connection slots shared by all requests of this process.
    DB_POOL_MAX: int = _env_int("DB_POOL_MAX", 10)
    DB_POOL_TIMEOUT_SECONDS: float = _env_float("DB_POOL_TIMEOUT_SECONDS", 5.0)
    DB_CONNECT_TIMEOUT_SECONDS: float = _env_float("DB_CONNECT_TIMEOUT_SECONDS", 5.0)

    # -----------------
    # Auth (JWT)
    # -----------------
    # Required in production. Rotating it invalidates every outstanding token.
    AUTH_JWT_SECRET: str = _env("AUTH_JWT_SECRET", "")
    AUTH_TOKEN_EXPIRE_MINUTES: int = _env_int("AUTH_TOKEN_EXPIRE_MINUTES", 10080)  # 7 days
    AUTH_PASSWORD_ROUNDS: int = _env_int("AUTH_PASSWORD_ROUNDS", 29000)

    # Bootstrap first admin user if users table is empty (both must be set).
    AUTH_BOOTSTRAP_ADMIN_EMAIL: str = _env("AUTH_BOOTSTRAP_ADMIN_EMAIL", "")
    AUTH_BOOTSTRAP_ADMIN_PASSWORD: str = _env("AUTH_BOOTSTRAP_ADMIN_PASSWORD", "")

    # -----------------
    # HTTP
    # -----------------
    # If you develop with Vite on :5173 and API on :8000, allow that origin.
    CORS_ALLOW_ORIGINS: str = _env(
        "CORS_ALLOW_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000",
    )
    REQUEST_TIMEOUT_SECONDS: float = _env_float("REQUEST_TIMEOUT_SECONDS", 30.0)
    API_HOST: str = _env("API_HOST", "0.0.0.0")
    API_PORT: int = _env_int("API_PORT", 8000)

    @property
    def DB_DSN(self) -> str:
        return self.DATABASE_URL or self.DB_PATH

    @property
    def is_production(self) -> bool:
        return (self.APP_ENV or "").strip().lower() == "production"


def validate_config(cfg: Config) -> Config:
    """Fail fast on configuration that is unsafe to run with.

    Production refuses to start without a signing secret or an explicit
    database URL. Elsewhere a missing secret is replaced by a random value that
    lives as long as the process (tokens do not survive a restart).
    """

    if cfg.is_production:
        missing = []
        if not (cfg.AUTH_JWT_SECRET or "").strip():
            missing.append("AUTH_JWT_SECRET")
        if not (cfg.DATABASE_URL or "").strip():
            missing.append("DATABASE_URL")
        if missing:
            raise RuntimeError(f"missing required configuration: {', '.join(missing)}")
        return cfg

    if not (cfg.AUTH_JWT_SECRET or "").strip():
        _debug("AUTH_JWT_SECRET is not set; using a random per-process secret")
        return replace(cfg, AUTH_JWT_SECRET=secrets.token_urlsafe(48))
    return cfg


def load_config() -> Config:
    return validate_config(Config())
