import pytest

from institute_compass.api.server import create_app
from institute_compass.config import Config, load_config, validate_config


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("APP_ENV", "AUTH_JWT_SECRET", "DATABASE_URL", "INSTITUTE_DB_PATH"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_production_without_secret_refuses_to_start(clean_env):
    clean_env.setenv("APP_ENV", "production")
    clean_env.setenv("DATABASE_URL", "postgresql://db.internal/institute")
    with pytest.raises(RuntimeError, match="AUTH_JWT_SECRET"):
        load_config()


def test_production_without_database_url_refuses_to_start(clean_env):
    clean_env.setenv("APP_ENV", "production")
    clean_env.setenv("AUTH_JWT_SECRET", "s3cret")
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        load_config()


def test_create_app_refuses_incomplete_production_config(clean_env):
    clean_env.setenv("APP_ENV", "production")
    with pytest.raises(RuntimeError):
        create_app()


def test_production_with_everything_set(clean_env):
    clean_env.setenv("APP_ENV", "production")
    clean_env.setenv("AUTH_JWT_SECRET", "s3cret")
    clean_env.setenv("DATABASE_URL", "postgresql://db.internal/institute")
    cfg = load_config()
    assert cfg.is_production
    assert cfg.AUTH_JWT_SECRET == "s3cret"
    assert cfg.DB_DSN == "postgresql://db.internal/institute"


def test_development_gets_random_secret(clean_env):
    a = load_config()
    b = load_config()
    assert a.AUTH_JWT_SECRET
    assert len(a.AUTH_JWT_SECRET) >= 32
    assert a.AUTH_JWT_SECRET != b.AUTH_JWT_SECRET


def test_explicit_secret_is_kept_outside_production(clean_env):
    clean_env.setenv("AUTH_JWT_SECRET", "dev-secret")
    assert load_config().AUTH_JWT_SECRET == "dev-secret"


def test_sqlite_path_is_the_fallback_dsn(clean_env):
    clean_env.setenv("INSTITUTE_DB_PATH", "/tmp/elsewhere.sqlite")
    cfg = validate_config(Config())
    assert cfg.DB_DSN == "/tmp/elsewhere.sqlite"


def test_defaults(clean_env):
    cfg = load_config()
    assert cfg.APP_ENV == "development"
    assert cfg.AUTH_TOKEN_EXPIRE_MINUTES == 10080
    assert cfg.DB_POOL_MAX == 10
