from __future__ import annotations

import hmac
import uuid

from flask import Blueprint, current_app, flash, g, jsonify, redirect, render_template, request, session, url_for

bp = Blueprint("auth", __name__)

SESSION_FLAG = "auth"
PUBLIC_PREFIXES = ("/static/", "/health", "/healthz")
LOGIN_ENDPOINTS = ("auth.login_get", "auth.login_post")


def is_authenticated() -> bool:
    return session.get(SESSION_FLAG) is True


def check_password(candidate: str) -> bool:
    # Single shared secret: no hashing, no per-user accounts, no rate limiting.
    expected = current_app.config.get("APP_PASSWORD") or ""
    return bool(expected) and hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))


def enforce_auth_gate():
    """
    Runs before every request.

    Unauthenticated page requests are redirected to the login page; API
    requests get a JSON 401 instead. Also assigns a per-request request_id
    for log correlation.
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(PUBLIC_PREFIXES):
        return None
    if request.endpoint in LOGIN_ENDPOINTS or is_authenticated():
        return None
    if request.path.startswith("/api/"):
        return jsonify({"error": "Authentication required"}), 401
    return redirect(url_for("auth.login_get"))


@bp.get("/")
def login_get():
    if is_authenticated():
        return redirect(url_for("routes.query_page"))
    return render_template("login.html")


@bp.post("/")
def login_post():
    password = request.form.get("password") or ""
    if not check_password(password):
        current_app.logger.warning("Login failed (ip=%s request_id=%s)", request.remote_addr, g.request_id)
        flash("Invalid password", "danger")
        return redirect(url_for("auth.login_get"))

    session[SESSION_FLAG] = True
    current_app.logger.info("Login ok (ip=%s)", request.remote_addr)
    return redirect(url_for("routes.query_page"))


@bp.get("/logout")
def logout():
    session.pop(SESSION_FLAG, None)
    return redirect(url_for("auth.login_get"))
