"""
Institute Compass - test configuration and fixtures
"""
import os
from typing import Dict, Generator, Iterable, Tuple

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("APP_ENV", "test")

from institute_compass.api.server import create_app
from institute_compass.auth.crud import create_user
from institute_compass.auth.security import configure_password_rounds
from institute_compass.config import Config
from institute_compass.db import configure_pool, connect, init_db


TEST_SECRET = "test-jwt-secret-for-testing-only"


def make_config(db_path: str, **overrides) -> Config:
    values = dict(
        APP_ENV="test",
        DATABASE_URL="",
        DB_PATH=db_path,
        DB_POOL_MAX=10,
        DB_POOL_TIMEOUT_SECONDS=5.0,
        DB_CONNECT_TIMEOUT_SECONDS=5.0,
        AUTH_JWT_SECRET=TEST_SECRET,
        AUTH_TOKEN_EXPIRE_MINUTES=10080,
        AUTH_PASSWORD_ROUNDS=1000,
        AUTH_BOOTSTRAP_ADMIN_EMAIL="",
        AUTH_BOOTSTRAP_ADMIN_PASSWORD="",
        CORS_ALLOW_ORIGINS="",
        REQUEST_TIMEOUT_SECONDS=30.0,
        API_HOST="127.0.0.1",
        API_PORT=8000,
    )
    values.update(overrides)
    return Config(**values)


@pytest.fixture
def cfg(tmp_path) -> Config:
    """Config pointing at a fresh SQLite file per test"""
    return make_config(str(tmp_path / "test.sqlite"))


@pytest.fixture
def db_dsn(cfg: Config) -> str:
    """Initialized database for service-level tests"""
    configure_pool(10)
    configure_password_rounds(1000)
    init_db(cfg.DB_DSN)
    return cfg.DB_DSN


@pytest.fixture
def client(cfg: Config) -> Generator[TestClient, None, None]:
    """API client; entering the context runs startup (schema creation)"""
    app = create_app(cfg)
    with TestClient(app) as c:
        yield c


def add_user(dsn: str, email: str, password: str = "secret123", roles: Iterable[str] = ("student",)) -> Dict:
    with connect(dsn) as conn:
        return create_user(conn, email=email, password=password, roles=roles)


def login(client: TestClient, email: str, password: str = "secret123") -> Dict[str, str]:
    r = client.post("/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['token']}"}


def add_student(dsn: str, total_fee: str = "10000", **fields) -> Dict:
    from institute_compass.records.students import create_student

    data = {
        "enrollment_number": fields.pop("enrollment_number", "ENR-001"),
        "full_name": fields.pop("full_name", "Asha Verma"),
        "email": fields.pop("email", "asha@example.com"),
        "total_fee": total_fee,
    }
    data.update(fields)
    with connect(dsn) as conn:
        return create_student(conn, data)


@pytest.fixture
def admin_headers(client: TestClient, cfg: Config) -> Dict[str, str]:
    add_user(cfg.DB_DSN, "admin@example.com", roles=("admin",))
    return login(client, "admin@example.com")


@pytest.fixture
def student_headers(client: TestClient, cfg: Config) -> Dict[str, str]:
    add_user(cfg.DB_DSN, "pupil@example.com")
    return login(client, "pupil@example.com")


def staff_user(client: TestClient, cfg: Config, email: str, role: str) -> Tuple[Dict, Dict[str, str]]:
    u = add_user(cfg.DB_DSN, email, roles=(role,))
    return u, login(client, email)
