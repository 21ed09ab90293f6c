import weakref

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import OperationalError

from app.exhibit import create_app, db
from app.exhibit.db import (
    NAMED_PIPE_TIMEOUT,
    ConnectionStrategy,
    RecordStore,
    build_strategies,
    create_store_engine,
    track_store,
)
from app.exhibit.errors import StoreConnectionError

CHAIN = ["config", "named_pipe_instance", "named_pipe_path", "tcp"]


def _config(**overrides):
    config = {
        "DATABASE_URL": "",
        "DB_SERVER": "db.internal",
        "DB_USER": "svc_exhibit",
        "DB_PASSWORD": "s3cret",
        "DB_NAME": "Evidence",
        "DB_PORT": 1433,
        "DB_DRIVER": "ODBC Driver 18 for SQL Server",
        "DB_CONNECTION_STRING": "",
        "DB_TIMEOUT_SECONDS": 30,
    }
    config.update(overrides)
    return config


class FakeConnector:
    """Fails every strategy not named in `succeed_on`, until `fail_rounds` full rounds have passed."""

    def __init__(self, succeed_on=(), fail_rounds=0, chain_length=len(CHAIN)):
        self.succeed_on = set(succeed_on)
        self.fail_calls = fail_rounds * chain_length
        self.calls = []

    def __call__(self, strategy):
        self.calls.append(strategy.name)
        if len(self.calls) <= self.fail_calls or strategy.name not in self.succeed_on:
            raise OperationalError("SELECT 1", {}, Exception(f"cannot reach {strategy.name}"))
        return create_engine("sqlite://")


def _store(connector, sleeps=None):
    sleeps = [] if sleeps is None else sleeps
    return RecordStore(build_strategies(_config()), connector=connector, sleep=sleeps.append)


# --- Strategy chain ---


def test_strategy_order():
    assert [s.name for s in build_strategies(_config())] == CHAIN


def test_connection_string_is_last_resort():
    strategies = build_strategies(_config(DB_CONNECTION_STRING="Driver={X};Server=db;UID=u;PWD=p;"))
    assert [s.name for s in strategies] == CHAIN + ["connection_string"]
    assert strategies[-1].url.query["odbc_connect"] == "Driver={X};Server=db;UID=u;PWD=p;"


def test_connection_string_accepts_sqlalchemy_url():
    strategies = build_strategies(_config(DB_CONNECTION_STRING="mssql+pyodbc://u:p@some_dsn"))
    assert strategies[-1].url.host == "some_dsn"


def test_strategy_targets():
    config, instance, pipe, tcp = build_strategies(_config())
    assert config.url.host == "db.internal"
    assert config.url.port == 1433
    assert config.url.database == "Evidence"
    assert config.url.query["driver"] == "ODBC Driver 18 for SQL Server"
    assert config.url.query["TrustServerCertificate"] == "yes"
    assert instance.url.host == "db.internal\\MSSQLSERVER"
    assert pipe.url.host.startswith("np:\\\\db.internal\\pipe")
    assert tcp.url.host == "tcp:db.internal"
    assert instance.timeout == pipe.timeout == NAMED_PIPE_TIMEOUT
    assert config.timeout == tcp.timeout == 30


def test_database_url_short_circuits_chain():
    strategies = build_strategies(_config(DATABASE_URL="sqlite:///x.db"))
    assert [s.name for s in strategies] == ["database_url"]


def test_describe_masks_passwords():
    strategies = build_strategies(_config(DB_CONNECTION_STRING="Driver={X};Server=db;UID=u;PWD=hunter2;"))
    for strategy in strategies:
        described = strategy.describe()
        assert "s3cret" not in described
        assert "hunter2" not in described
    assert "PWD=****" in strategies[-1].describe()


# --- Record store ---


def test_first_working_strategy_wins():
    connector = FakeConnector(succeed_on={"tcp", "named_pipe_path"})
    store = _store(connector)
    assert store.engine is not None
    assert store.active_strategy.name == "named_pipe_path"
    assert connector.calls == ["config", "named_pipe_instance", "named_pipe_path"]


def test_engine_is_cached():
    connector = FakeConnector(succeed_on={"config"})
    store = _store(connector)
    assert not store.is_connected
    first = store.engine
    assert store.engine is first
    assert connector.calls == ["config"]


def test_all_strategies_failing_retries_then_raises():
    sleeps = []
    connector = FakeConnector()
    store = _store(connector, sleeps)
    with pytest.raises(StoreConnectionError) as exc:
        store.engine
    assert len(connector.calls) == 4 * len(CHAIN)
    assert sleeps == [1.0, 1.0, 1.0]
    message = str(exc.value)
    assert message.startswith("Unable to connect to the database after multiple attempts.")
    for name in CHAIN:
        assert name in message
    assert not store.is_connected


def test_recovers_on_a_later_round():
    sleeps = []
    connector = FakeConnector(succeed_on={"config"}, fail_rounds=1)
    store = _store(connector, sleeps)
    store.engine
    assert connector.calls == CHAIN + ["config"]
    assert sleeps == [1.0]


def test_dispose_forgets_engine():
    connector = FakeConnector(succeed_on={"tcp"})
    store = _store(connector)
    store.engine
    store.dispose()
    assert not store.is_connected
    assert store.active_strategy is None
    store.engine
    assert connector.calls.count("tcp") == 2


def test_test_connection_reports_state():
    assert _store(FakeConnector(succeed_on={"config"})).test_connection() is True
    assert _store(FakeConnector()).test_connection() is False


def test_store_needs_a_strategy():
    with pytest.raises(ValueError):
        RecordStore([])


def test_create_store_engine_probes_sqlite(tmp_path):
    strategy = ConnectionStrategy("database_url", make_url(f"sqlite:///{tmp_path/'probe.db'}"), 5)
    engine = create_store_engine(strategy)
    with engine.connect() as conn:
        assert conn.execute(text("SELECT 1")).scalar() == 1
    engine.dispose()


def test_create_store_engine_raises_when_unreachable(tmp_path):
    strategy = ConnectionStrategy("database_url", make_url(f"sqlite:///{tmp_path/'missing'/'probe.db'}"), 5)
    with pytest.raises(OperationalError):
        create_store_engine(strategy)


# --- Store failures surface as generic 500s ---


@pytest.fixture()
def failing_connector():
    return FakeConnector()


@pytest.fixture()
def broken_client(tmp_path, monkeypatch, failing_connector):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'unused.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("APP_PASSWORD", "pw")
    store = RecordStore(build_strategies(_config()), connector=failing_connector, sleep=lambda _: None)
    app = create_app(store=store)
    c = app.test_client()
    c.post("/", data={"password": "pw"})
    return c


def test_search_api_hides_connection_details(broken_client):
    r = broken_client.get("/api/records?filename=x")
    assert r.status_code == 500
    assert r.json == {"error": "Failed to fetch records"}


def test_report_api_hides_connection_details(broken_client):
    r = broken_client.get("/api/records/report")
    assert r.status_code == 500
    assert r.json == {"error": "Failed to fetch report records"}


def test_test_connection_endpoint_reports_failure(broken_client):
    r = broken_client.get("/api/test-connection")
    assert r.status_code == 500
    assert r.json["status"] == "error"


def test_query_page_flashes_store_failure(broken_client):
    r = broken_client.get("/query?filename=x")
    assert r.status_code == 200
    assert b"Failed to fetch records" in r.data


def test_single_bound_rejected_without_touching_store(broken_client, failing_connector):
    r = broken_client.get("/api/records?filename=x&startDate=2023-05-01")
    assert r.status_code == 400
    assert r.json == {"error": "Please enter both start and end dates."}

    r = broken_client.get("/query?endDate=2023-05-01")
    assert b"both start and end dates" in r.data
    assert b"Failed to fetch records" not in r.data
    assert failing_connector.calls == []


# --- Process hooks ---


def test_process_hooks_installed_once(monkeypatch):
    registered = []
    monkeypatch.setattr(db, "_process_hooks_installed", False)
    monkeypatch.setattr(db, "_live_stores", weakref.WeakSet())
    monkeypatch.setattr(db.atexit, "register", lambda fn, *a, **kw: registered.append("atexit"))
    monkeypatch.setattr(db.os, "register_at_fork", lambda **kw: registered.append("fork"), raising=False)

    stores = [_store(FakeConnector(succeed_on={"config"})) for _ in range(3)]
    for store in stores:
        track_store(store)
        store.engine
    assert registered.count("atexit") == 1
    assert registered.count("fork") <= 1

    db._dispose_live_stores(quiet=True)
    assert not any(store.is_connected for store in stores)


def test_tracked_stores_are_held_weakly(monkeypatch):
    monkeypatch.setattr(db, "_process_hooks_installed", True)
    monkeypatch.setattr(db, "_live_stores", weakref.WeakSet())
    track_store(_store(FakeConnector(succeed_on={"config"})))
    assert len(db._live_stores) == 0
