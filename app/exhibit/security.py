from __future__ import annotations

import secrets

from flask import Request, jsonify, render_template, request, session

CSRF_SESSION_KEY = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"
UNSAFE_METHODS = ("POST", "PUT", "PATCH", "DELETE")
EXEMPT_PREFIXES = ("/static/", "/health", "/healthz")
CSRF_FAILURE = "CSRF token missing or invalid."


def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get(CSRF_SESSION_KEY)
    if not token:
        token = secrets.token_urlsafe(32)
        session[CSRF_SESSION_KEY] = token
    return token


def validate_csrf(req: Request) -> bool:
    """Token may come from the header (fetch calls), a form field, or the JSON body."""
    token = req.headers.get(CSRF_HEADER) or req.form.get(CSRF_SESSION_KEY)
    if not token and req.is_json:
        body = req.get_json(silent=True)
        if isinstance(body, dict):
            token = body.get(CSRF_SESSION_KEY)

    expected = session.get(CSRF_SESSION_KEY)
    return bool(token and expected and secrets.compare_digest(str(token), str(expected)))


def csrf_guard():
    """
    before_request hook. Mutating requests must echo the session token.

    The login form is exempt since it posts before the browser has a page
    carrying the token.
    """
    if request.path.startswith(EXEMPT_PREFIXES):
        return None
    ensure_csrf_token()
    if request.method not in UNSAFE_METHODS:
        return None
    if (request.endpoint or "").startswith("auth."):
        return None
    if validate_csrf(request):
        return None
    if request.path.startswith("/api/"):
        return jsonify({"error": CSRF_FAILURE}), 400
    return render_template("errors/400.html", message=CSRF_FAILURE), 400
