from __future__ import annotations

from flask import Blueprint, current_app, flash, g, jsonify, render_template, request, url_for

from app.exhibit.db import db_session, get_store
from app.exhibit.errors import StoreConnectionError, StoreQueryError, ValidationError
from app.exhibit.models import TransferRecord
from app.exhibit.modules.report.service import list_report_records
from app.exhibit.modules.search.filters import normalize_text, parse_search_args
from app.exhibit.modules.search.service import search_records
from app.exhibit.pagination import Page, paginate

bp = Blueprint("routes", __name__)

SEARCH_ARGS = ("filename", "startDate", "endDate")


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for container probes. No DB access, minimal overhead.
    """
    return "ok", 200


@bp.get("/api/test-connection")
def test_connection():
    """Diagnostic probe: runs SELECT 1 through the record store."""
    if get_store().test_connection():
        return jsonify({"status": "success", "message": "Database connection successful"})
    return jsonify({"status": "error", "message": "Database connection failed"}), 500


def _page_urls(endpoint: str, page: Page, params: dict[str, str]) -> tuple[str | None, str | None]:
    # Jinja cannot splat **kwargs in url_for; precompute pagination URLs here.
    prev_url = url_for(endpoint, page=page.page - 1, **params) if page.has_prev else None
    next_url = url_for(endpoint, page=page.page + 1, **params) if page.has_next else None
    return prev_url, next_url


@bp.get("/query")
def query_page():
    submitted = any(k in request.args for k in SEARCH_ARGS)
    params = {k: normalize_text(request.args.get(k)) for k in SEARCH_ARGS}
    params = {k: v for k, v in params.items() if v}
    records: list[TransferRecord] = []
    # A submitted form with every field blank is rejected, not ignored.
    if submitted:
        try:
            filters = parse_search_args(params)
            records = search_records(db_session(), filters)
        except ValidationError as e:
            flash(str(e), "danger")
        except (StoreConnectionError, StoreQueryError):
            current_app.logger.exception("Failed to fetch records (request_id=%s)", g.request_id)
            flash("Failed to fetch records", "danger")

    page = paginate(records, request.args.get("page"))
    prev_url, next_url = _page_urls("routes.query_page", page, params)
    return render_template(
        "query.html",
        page=page,
        filters=params,
        searched=bool(params),
        prev_url=prev_url,
        next_url=next_url,
    )


@bp.get("/report")
def report_page():
    records: list[TransferRecord] = []
    try:
        records = list_report_records(db_session())
    except (StoreConnectionError, StoreQueryError):
        current_app.logger.exception("Failed to fetch report records (request_id=%s)", g.request_id)
        flash("Failed to fetch report records", "danger")

    page = paginate(records, request.args.get("page"))
    prev_url, next_url = _page_urls("routes.report_page", page, {})
    return render_template(
        "report.html",
        page=page,
        prev_url=prev_url,
        next_url=next_url,
        export_url=url_for("report_api.export_report"),
    )
