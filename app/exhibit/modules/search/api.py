from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.exhibit.api import json_errors
from app.exhibit.db import db_session
from app.exhibit.errors import ValidationError
from app.exhibit.modules.search.filters import normalize_text, parse_search_args
from app.exhibit.modules.search.service import get_transactions, get_transactions_by_ip, search_records

bp = Blueprint("search_api", __name__)


@bp.get("")
@json_errors("Failed to fetch records")
def list_records():
    """GET /api/records?filename=&startDate=&endDate= -> un-staged matches, oldest first."""
    filters = parse_search_args(request.args)
    records = search_records(db_session(), filters)
    return jsonify([r.to_dict() for r in records])


@bp.get("/transactions")
@json_errors("Failed to fetch transactions")
def list_transactions():
    """All records sharing one exact filename, or one exact IP with `?ip=`."""
    filename = normalize_text(request.args.get("filename"))
    ip = normalize_text(request.args.get("ip"))
    s = db_session()
    if filename:
        records = get_transactions(s, filename)
    elif ip:
        records = get_transactions_by_ip(s, ip)
    else:
        raise ValidationError("Filename is required.")
    return jsonify([r.to_dict() for r in records])
