"""
Error taxonomy shared by the store, the services and the JSON API.

Only `ValidationError` and `NotFoundError` messages are shown to users; store
failures are logged in full and answered with a generic message.
"""
from __future__ import annotations


class ExhibitError(Exception):
    pass


class ConfigError(ExhibitError):
    """Missing or malformed startup configuration."""


class ValidationError(ExhibitError):
    """Bad or missing input (filter combination, empty rename, bad id)."""


class NotFoundError(ExhibitError):
    """A stage/unstage/rename targeted an id that does not exist."""


class StoreConnectionError(ExhibitError):
    """No connection strategy could reach the database."""


class StoreQueryError(ExhibitError):
    """A statement failed after a connection was established."""
