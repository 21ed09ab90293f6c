from __future__ import annotations

import atexit
import logging
import os
import re
import threading
import time
import weakref
from collections.abc import Callable, Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from flask import Flask, g
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from app.exhibit.errors import StoreConnectionError

logger = logging.getLogger(__name__)

MSSQL_DIALECT = "mssql+pyodbc"
NAMED_PIPE_INSTANCE = "MSSQLSERVER"
NAMED_PIPE_PATH = r"np:\\{server}\pipe\MSSQL$SQLEXPRESS\sql\query"
NAMED_PIPE_TIMEOUT = 60
DEFAULT_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0

_ODBC_SECRET_RE = re.compile(r"((?:Password|PWD)=)[^;]*", re.IGNORECASE)


@dataclass(frozen=True)
class ConnectionStrategy:
    """One way of reaching the database. Strategies are tried in list order."""

    name: str
    url: URL
    timeout: int
    connect_args: dict[str, Any] = field(default_factory=dict)

    def describe(self) -> str:
        """Loggable form of the target with any password masked."""
        odbc = self.url.query.get("odbc_connect")
        if odbc:
            # Rendering would URL-encode the ODBC string past the mask.
            masked = _ODBC_SECRET_RE.sub(r"\1****", odbc)
            return f"{self.url.drivername} odbc_connect={masked}"
        return self.url.render_as_string(hide_password=True)


def _mssql_url(config: dict, host: str, *, port: int | None) -> URL:
    return URL.create(
        MSSQL_DIALECT,
        username=config["DB_USER"],
        password=config["DB_PASSWORD"],
        host=host,
        port=port,
        database=config["DB_NAME"],
        query={
            "driver": config["DB_DRIVER"],
            "Encrypt": "no",
            "TrustServerCertificate": "yes",
        },
    )


def _connection_string_url(raw: str) -> URL:
    # A SQLAlchemy URL is used as-is; anything else is treated as an ODBC string.
    if "://" in raw:
        return make_url(raw)
    return URL.create(MSSQL_DIALECT, query={"odbc_connect": raw})


def build_strategies(config: dict) -> list[ConnectionStrategy]:
    """
    Ordered fallback chain built from app config.

    DATABASE_URL short-circuits the chain (development, tests).
    """
    timeout = int(config.get("DB_TIMEOUT_SECONDS") or 30)
    database_url = (config.get("DATABASE_URL") or "").strip()
    if database_url:
        return [ConnectionStrategy("database_url", make_url(database_url), timeout)]

    server = config["DB_SERVER"]
    port = int(config.get("DB_PORT") or 1433)
    strategies = [
        ConnectionStrategy("config", _mssql_url(config, server, port=port), timeout),
        ConnectionStrategy(
            "named_pipe_instance",
            _mssql_url(config, f"{server}\\{NAMED_PIPE_INSTANCE}", port=None),
            NAMED_PIPE_TIMEOUT,
        ),
        ConnectionStrategy(
            "named_pipe_path",
            _mssql_url(config, NAMED_PIPE_PATH.format(server=server), port=None),
            NAMED_PIPE_TIMEOUT,
        ),
        ConnectionStrategy("tcp", _mssql_url(config, f"tcp:{server}", port=port), timeout),
    ]
    raw = (config.get("DB_CONNECTION_STRING") or "").strip()
    if raw:
        strategies.append(ConnectionStrategy("connection_string", _connection_string_url(raw), timeout))
    return strategies


def _timeout_connect_args(url: URL, timeout: int) -> dict[str, Any]:
    backend = url.get_backend_name()
    if backend in ("mssql", "sqlite"):
        return {"timeout": timeout}
    if backend == "postgresql":
        return {"connect_timeout": timeout}
    return {}


def create_store_engine(strategy: ConnectionStrategy, *, debug_checkout: bool = False) -> Engine:
    """
    Build an engine for one strategy and prove it with `SELECT 1`.
    The engine is disposed again if the probe fails.
    """
    url = strategy.url
    engine_kwargs: dict[str, Any] = {
        "future": True,
        "pool_pre_ping": True,
        "connect_args": {**_timeout_connect_args(url, strategy.timeout), **strategy.connect_args},
    }
    if url.get_backend_name() != "sqlite":
        engine_kwargs.update(
            {
                "pool_recycle": 1800,
                "pool_size": 10,
                "max_overflow": 0,
                "pool_timeout": strategy.timeout,
            }
        )
    engine = create_engine(url, **engine_kwargs)

    if url.get_backend_name() == "mssql":
        @event.listens_for(engine, "connect")
        def _set_query_timeout(dbapi_connection, connection_record):  # type: ignore[no-redef]
            dbapi_connection.timeout = strategy.timeout

    if debug_checkout:
        @event.listens_for(engine, "checkout")
        def _receive_checkout(dbapi_connection, connection_record, connection_proxy):  # type: ignore[no-redef]
            logger.debug("DB connection checkout from pool")

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        engine.dispose()
        raise
    return engine


class RecordStore:
    """
    Process-wide owner of the database engine.

    The engine is created on first use by walking the strategy chain; the
    winning strategy is kept until `dispose()`. A failed chain is retried
    `retries` more times, `retry_delay` seconds apart.
    """

    def __init__(
        self,
        strategies: list[ConnectionStrategy],
        *,
        retries: int = DEFAULT_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        connector: Callable[[ConnectionStrategy], Engine] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not strategies:
            raise ValueError("RecordStore needs at least one connection strategy.")
        self.strategies = list(strategies)
        self.retries = retries
        self.retry_delay = retry_delay
        self._connector = connector or create_store_engine
        self._sleep = sleep
        self._lock = threading.Lock()
        self._engine: Engine | None = None
        self._sessionmaker: sessionmaker[Session] | None = None
        self.active_strategy: ConnectionStrategy | None = None

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            with self._lock:
                if self._engine is None:
                    self._engine = self._connect()
                    self._sessionmaker = sessionmaker(
                        bind=self._engine,
                        class_=Session,
                        autoflush=False,
                        autocommit=False,
                        expire_on_commit=False,
                        future=True,
                    )
        return self._engine

    def session(self) -> Session:
        _ = self.engine  # connects on first use
        assert self._sessionmaker is not None
        return self._sessionmaker()

    def _try_chain(self) -> tuple[Engine | None, list[str]]:
        failures: list[str] = []
        for strategy in self.strategies:
            logger.info("Attempting DB connection via %s (%s)", strategy.name, strategy.describe())
            try:
                engine = self._connector(strategy)
            except Exception as e:
                logger.error("DB connection via %s failed: %s", strategy.name, e)
                failures.append(f"{strategy.name}: {e}")
                continue
            logger.info("DB connection successful via %s", strategy.name)
            self.active_strategy = strategy
            return engine, failures
        return None, failures

    def _connect(self) -> Engine:
        attempts = self.retries + 1
        failures: list[str] = []
        for attempt in range(1, attempts + 1):
            engine, failures = self._try_chain()
            if engine is not None:
                return engine
            remaining = attempts - attempt
            logger.error("All connection methods failed (attempt %d of %d)", attempt, attempts)
            if remaining:
                logger.info("Retrying connection... (%d attempts remaining)", remaining)
                self._sleep(self.retry_delay)

        raise StoreConnectionError(
            "Unable to connect to the database after multiple attempts. "
            "Please check your connection settings. " + "; ".join(failures)
        )

    def test_connection(self) -> bool:
        try:
            with self.engine.connect() as conn:
                return conn.execute(text("SELECT 1 AS test_connection")).scalar() == 1
        except Exception as e:
            logger.error("Database connection test failed: %s", e)
            return False

    def dispose(self, *, quiet: bool = False) -> None:
        with self._lock:
            if self._engine is not None:
                self._engine.dispose()
                if not quiet:
                    logger.info(
                        "Disposed DB engine (strategy=%s)",
                        self.active_strategy.name if self.active_strategy else None,
                    )
            self._engine = None
            self._sessionmaker = None
            self.active_strategy = None


_live_stores: "weakref.WeakSet[RecordStore]" = weakref.WeakSet()
_process_hooks_installed = False


def _dispose_live_stores(*, quiet: bool = False) -> None:
    for store in list(_live_stores):
        store.dispose(quiet=quiet)


def _after_fork_child() -> None:
    _dispose_live_stores()
    logger.info("Disposed DB engines after fork (pid=%s)", os.getpid())


def track_store(store: RecordStore) -> None:
    """
    Dispose `store` in forked children and at interpreter exit.

    The atexit and fork hooks are installed once per process; stores are held
    weakly so apps that are gone do not pin their engines.
    """
    global _process_hooks_installed
    _live_stores.add(store)
    if _process_hooks_installed:
        return
    _process_hooks_installed = True
    # Logging streams may already be closed at exit.
    atexit.register(_dispose_live_stores, quiet=True)
    if hasattr(os, "register_at_fork"):
        os.register_at_fork(after_in_child=_after_fork_child)


def init_db(app: Flask, store: RecordStore | None = None) -> RecordStore:
    if store is None:
        strategies = build_strategies(app.config)
        debug_checkout = app.config.get("ENV") not in ("prod", "production")
        store = RecordStore(
            strategies,
            connector=lambda strategy: create_store_engine(strategy, debug_checkout=debug_checkout),
        )
    app.extensions["record_store"] = store
    return store


def get_store(app: Flask | None = None) -> RecordStore:
    if app is None:
        from flask import current_app

        app = current_app
    return app.extensions["record_store"]


def db_session(app: Flask | None = None) -> Session:
    """
    Request-scoped session. Use inside request handlers.
    """
    if hasattr(g, "db_session") and g.db_session is not None:
        return g.db_session
    g.db_session = get_store(app).session()  # type: ignore[assignment]
    return g.db_session


def teardown_db_session(_exc: BaseException | None) -> None:
    s: Session | None = getattr(g, "db_session", None)
    if s is not None:
        try:
            s.close()
        except Exception as e:
            logger.warning("Failed to close DB session: %s", e)
        g.db_session = None


@contextmanager
def session_scope(app: Flask) -> Generator[Session, None, None]:
    """
    Non-request helper for scripts and tests: yields a session and commits/rolls back.
    """
    s = get_store(app).session()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
