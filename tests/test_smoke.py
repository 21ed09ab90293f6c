import pytest

from app.exhibit import create_app
from app.exhibit.config import load_config
from app.exhibit.db import get_store
from app.exhibit.errors import ConfigError
from app.exhibit.models import Base

DB_VARS = ("DB_SERVER", "DB_USER", "DB_PASSWORD", "DB_NAME", "DB_CONNECTION_STRING", "DB_PORT")


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("APP_PASSWORD", "pw")
    for k in DB_VARS:
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    Base.metadata.create_all(bind=get_store(app).engine)
    return app.test_client()


def _login(client, password="pw"):
    return client.post("/", data={"password": password}, follow_redirects=False)


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_healthz_needs_no_login(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_pages_redirect_to_login_when_anonymous(client):
    for path in ("/query", "/report"):
        r = client.get(path)
        assert r.status_code == 302
        assert r.headers["Location"].endswith("/")


def test_api_returns_401_when_anonymous(client):
    r = client.get("/api/records?filename=x")
    assert r.status_code == 401
    assert "error" in r.json


def test_login_page_renders(client):
    r = client.get("/")
    assert r.status_code == 200
    assert b"password" in r.data


def test_wrong_password_stays_on_login(client):
    r = _login(client, "nope")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/")
    assert client.get("/query").status_code == 302


def test_login_and_page_access(client):
    r = _login(client)
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/query")

    assert client.get("/query").status_code == 200
    assert client.get("/report").status_code == 200


def test_authenticated_login_page_redirects_to_query(client):
    _login(client)
    r = client.get("/")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/query")


def test_logout_clears_auth(client):
    _login(client)
    r = client.get("/logout")
    assert r.status_code == 302
    assert client.get("/query").status_code == 302


def test_test_connection_reports_success(client):
    _login(client)
    r = client.get("/api/test-connection")
    assert r.status_code == 200
    assert r.json == {"status": "success", "message": "Database connection successful"}


def test_unknown_api_route_is_json_404(client):
    _login(client)
    r = client.get("/api/nope")
    assert r.status_code == 404
    assert r.json["error"] == "Resource not found"


def test_missing_password_is_fatal(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.delenv("APP_PASSWORD", raising=False)
    with pytest.raises(ConfigError, match="APP_PASSWORD"):
        create_app()


def test_missing_db_settings_are_fatal(monkeypatch):
    monkeypatch.setenv("APP_PASSWORD", "pw")
    monkeypatch.delenv("DATABASE_URL", raising=False)
    for k in DB_VARS:
        monkeypatch.delenv(k, raising=False)
    monkeypatch.setenv("DB_SERVER", "db.internal")
    with pytest.raises(ConfigError) as exc:
        load_config()
    msg = str(exc.value)
    for name in ("DB_USER", "DB_PASSWORD", "DB_NAME"):
        assert name in msg
    assert "DB_SERVER" not in msg


def test_production_rejects_default_secret(tmp_path, monkeypatch):
    monkeypatch.setenv("APP_PASSWORD", "pw")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "production")
    monkeypatch.delenv("SECRET_KEY", raising=False)
    with pytest.raises(ConfigError, match="SECRET_KEY"):
        load_config()
