from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import current_app, g, jsonify, request

from app.exhibit.errors import NotFoundError, StoreConnectionError, StoreQueryError, ValidationError


def json_errors(failure_message: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Map the error taxonomy onto JSON responses for one API endpoint.

    Validation and not-found messages are returned as-is. Store failures are
    logged with their stack trace and answered with `failure_message` only.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            try:
                return fn(*args, **kwargs)
            except ValidationError as e:
                current_app.logger.warning("Rejected %s %s: %s", request.method, request.path, e)
                return jsonify({"error": str(e)}), 400
            except NotFoundError as e:
                current_app.logger.warning("Not found %s %s: %s", request.method, request.path, e)
                return jsonify({"error": str(e)}), 404
            except (StoreConnectionError, StoreQueryError):
                current_app.logger.exception(
                    "%s (request_id=%s)", failure_message, getattr(g, "request_id", None)
                )
                return jsonify({"error": failure_message}), 500

        return wrapped

    return decorator


def json_body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Invalid request body.")
    return data
