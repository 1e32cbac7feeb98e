"""
Records Blueprint — Risk Assessment / Business Impact Analysis workflow.

  POST   /api/v1/records/<type>/submit-record        — Submit (201)
  GET    /api/v1/records                              — Caller's visible records
  GET    /api/v1/records/<id>                         — One visible record
  PUT    /api/v1/records/update-record/<id>           — Legacy partial update
  POST   /api/v1/records/<id>/commands                — Explicit workflow command
  DELETE /api/v1/records/record/<id>                  — Hard delete
  GET    /api/v1/records/records-for-actor/<actorId>  — Role-scoped list of an actor
  POST   /api/v1/records/add-comment/<id>             — Append a field comment
  GET    /api/v1/records/export/<year>                — Zip of yearly workbooks

``<type>`` is ``risk-assessment`` or ``business-impact-analysis``; list
endpoints accept the same value as an optional ``?type=`` filter.
"""

import logging

from flask import Blueprint, request, send_file

from app.auth import current_actor
from app.blueprints import json_body
from app.core.exceptions import NotFoundError, ValidationError
from app.models.record import resolve_record_type
from app.services import comment_service, record_workflow
from app.services.export_service import export_records_archive
from app.services.visibility import get_visible_record, visible_records
from app.utils.errors import api_ok, register_error_handlers

logger = logging.getLogger(__name__)

records_bp = Blueprint("records", __name__, url_prefix="/api/v1/records")
register_error_handlers(records_bp)


def _type_filter():
    raw = request.args.get("type")
    if not raw:
        return None
    record_type = resolve_record_type(raw)
    if record_type is None:
        raise ValidationError(f"Unknown record type: {raw}", details={"type": "invalid"})
    return record_type


# ═══════════════════════════════════════════════════════════════
# Submit
# ═══════════════════════════════════════════════════════════════
@records_bp.route("/<string:type_slug>/submit-record", methods=["POST"])
def submit_record(type_slug):
    """
    Body: { "company", "department", "module", "fields", "createdBy",
            "actorId", "currentStatus"? }
    """
    record_type = resolve_record_type(type_slug)
    if record_type is None:
        raise NotFoundError("Record type", type_slug)

    record = record_workflow.submit_record(current_actor(), record_type, json_body())
    return api_ok(record.to_dict(), status=201, message="Record saved successfully")


# ═══════════════════════════════════════════════════════════════
# Read
# ═══════════════════════════════════════════════════════════════
@records_bp.route("", methods=["GET"])
def list_records():
    records = visible_records(current_actor(), _type_filter())
    return api_ok([r.to_dict() for r in records])


@records_bp.route("/<int:record_id>", methods=["GET"])
def get_record(record_id):
    return api_ok(get_visible_record(current_actor(), record_id).to_dict())


@records_bp.route("/records-for-actor/<int:actor_id>", methods=["GET"])
def records_for_actor(actor_id):
    records = record_workflow.records_for_actor(current_actor(), actor_id, _type_filter())
    return api_ok([r.to_dict() for r in records])


# ═══════════════════════════════════════════════════════════════
# Update
# ═══════════════════════════════════════════════════════════════
@records_bp.route("/update-record/<int:record_id>", methods=["PUT"])
def update_record(record_id):
    """
    Legacy partial update.

    Body keys: approvedBy | finalApprovedBy (approve), currentStatus
    containing "reject" + rejectionReason (reject), fields + lastEditedBy
    (edit). The order picks the notification; fields sent with an
    approval or rejection are saved with it. Anything else leaves the
    record as is.
    """
    command = record_workflow.command_from_payload(json_body())
    record = record_workflow.apply_command(record_id, current_actor(), command)
    return api_ok(record.to_dict())


@records_bp.route("/<int:record_id>/commands", methods=["POST"])
def run_command(record_id):
    """
    Body: { "type": "SetFields" | "Approve" | "Reject" | "AddComment" | "Resubmit", ... }
    """
    command = record_workflow.command_from_json(json_body())
    record = record_workflow.apply_command(record_id, current_actor(), command)
    return api_ok(record.to_dict())


@records_bp.route("/add-comment/<int:record_id>", methods=["POST"])
def add_comment(record_id):
    """Body: { "fieldName", "text" }"""
    data = json_body()
    record = comment_service.add_field_comment(
        record_id, data.get("fieldName"), data.get("text"), current_actor(),
    )
    return api_ok(record.to_dict())


# ═══════════════════════════════════════════════════════════════
# Delete
# ═══════════════════════════════════════════════════════════════
@records_bp.route("/record/<int:record_id>", methods=["DELETE"])
def delete_record(record_id):
    snapshot = record_workflow.delete_record_for(current_actor(), record_id)
    return api_ok(snapshot)


# ═══════════════════════════════════════════════════════════════
# Export
# ═══════════════════════════════════════════════════════════════
@records_bp.route("/export/<int:year>", methods=["GET"])
def export_year(year):
    buf, filename = export_records_archive(current_actor(), year)
    return send_file(buf, mimetype="application/zip", as_attachment=True, download_name=filename)
