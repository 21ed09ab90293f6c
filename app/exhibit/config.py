import os
from dataclasses import dataclass

from app.exhibit.errors import ConfigError

DEFAULT_DB_DRIVER = "ODBC Driver 18 for SQL Server"
REQUIRED_DB_VARS = ("DB_USER", "DB_PASSWORD", "DB_SERVER", "DB_NAME")


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    app_password: str

    database_url: str
    db_server: str
    db_user: str
    db_password: str
    db_name: str
    db_port: int
    db_driver: str
    db_connection_string: str
    db_timeout_seconds: int

    log_level: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer (got {raw!r}).") from e


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        # Not stripped: whitespace is part of the shared secret.
        app_password=os.environ.get("APP_PASSWORD") or "",
        database_url=_getenv("DATABASE_URL"),
        db_server=_getenv("DB_SERVER"),
        db_user=_getenv("DB_USER"),
        db_password=os.environ.get("DB_PASSWORD") or "",
        db_name=_getenv("DB_NAME"),
        db_port=_getenv_int("DB_PORT", 1433),
        db_driver=_getenv("DB_DRIVER", DEFAULT_DB_DRIVER),
        db_connection_string=_getenv("DB_CONNECTION_STRING"),
        db_timeout_seconds=_getenv_int("DB_TIMEOUT_SECONDS", 30),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
    )


def validate_settings(s: Settings) -> None:
    """
    Fail fast on missing required values. The DB_* group is only required when
    no DATABASE_URL override is given.
    """
    missing: list[str] = []
    if not s.app_password:
        missing.append("APP_PASSWORD")
    if not s.database_url:
        values = {
            "DB_USER": s.db_user,
            "DB_PASSWORD": s.db_password,
            "DB_SERVER": s.db_server,
            "DB_NAME": s.db_name,
        }
        missing.extend(name for name in REQUIRED_DB_VARS if not values[name])
    if missing:
        raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

    if s.env in ("prod", "production") and s.secret_key in ("", "change-me"):
        raise ConfigError("SECRET_KEY must be set to a strong value in production (not default).")


def load_config() -> dict:
    s = load_settings()
    validate_settings(s)
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "APP_PASSWORD": s.app_password,
        "DATABASE_URL": s.database_url,
        "DB_SERVER": s.db_server,
        "DB_USER": s.db_user,
        "DB_PASSWORD": s.db_password,
        "DB_NAME": s.db_name,
        "DB_PORT": s.db_port,
        "DB_DRIVER": s.db_driver,
        "DB_CONNECTION_STRING": s.db_connection_string,
        "DB_TIMEOUT_SECONDS": s.db_timeout_seconds,
        "LOG_LEVEL": s.log_level,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
    }
