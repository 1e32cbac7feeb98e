"""
Header Comments Blueprint — scope-level threads on column headers.

  POST /api/v1/header-comments  — Append { fieldName, text } to the caller's scope thread
  GET  /api/v1/header-comments  — All threads of the caller's scope
"""

from flask import Blueprint

from app.auth import current_actor
from app.blueprints import json_body
from app.services.comment_service import add_header_comment, list_header_comments
from app.utils.errors import api_ok, register_error_handlers

header_comment_bp = Blueprint("header_comments", __name__, url_prefix="/api/v1/header-comments")
register_error_handlers(header_comment_bp)


@header_comment_bp.route("", methods=["POST"])
def create_header_comment():
    data = json_body()
    thread = add_header_comment(current_actor(), data.get("fieldName"), data.get("text"))
    return api_ok(thread.to_dict(), status=201)


@header_comment_bp.route("", methods=["GET"])
def get_header_comments():
    threads = list_header_comments(current_actor())
    return api_ok([t.to_dict() for t in threads])
