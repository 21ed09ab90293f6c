from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request, send_file

from app.exhibit.api import json_body, json_errors
from app.exhibit.db import db_session
from app.exhibit.errors import ValidationError
from app.exhibit.modules.report.export import XLSX_MIMETYPE, export_filename, render_report_xlsx
from app.exhibit.modules.report.service import (
    list_report_records,
    parse_record_id,
    rename_only,
    stage,
    unstage,
)

bp = Blueprint("report_api", __name__)


def _id_and_filename() -> tuple[int, str]:
    data = json_body()
    raw_id = data.get("id")
    new_filename = data.get("newFilename", data.get("newFileName"))
    if raw_id in (None, "") or not isinstance(new_filename, str) or not new_filename.strip():
        raise ValidationError("ID and new filename are required.")
    return parse_record_id(raw_id), new_filename


@bp.get("")
@json_errors("Failed to fetch report records")
def list_report():
    records = list_report_records(db_session())
    return jsonify([r.to_dict() for r in records])


@bp.post("")
@json_errors("Failed to add to report")
def add_to_report():
    record_id, new_filename = _id_and_filename()
    current_app.logger.info("Adding to report: id=%s newFilename=%r", record_id, new_filename)
    stage(db_session(), record_id, new_filename)
    return jsonify({"success": True})


@bp.patch("")
@json_errors("Failed to update filename")
def rename_report_record():
    record_id, new_filename = _id_and_filename()
    rename_only(db_session(), record_id, new_filename)
    return jsonify({"success": True})


@bp.delete("")
@json_errors("Failed to remove from report")
def remove_from_report():
    raw_id = request.args.get("id")
    if not raw_id:
        raise ValidationError("ID is required.")
    record_id = parse_record_id(raw_id)
    current_app.logger.info("Removing from report: id=%s", record_id)
    unstage(db_session(), record_id)
    return jsonify({"success": True})


@bp.get("/export")
@json_errors("Failed to download report")
def export_report():
    records = list_report_records(db_session())
    filename = export_filename()
    current_app.logger.info("Exporting report: %d rows -> %s", len(records), filename)
    return send_file(
        render_report_xlsx(records),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=filename,
        max_age=0,
    )
