"""
Risk Governance Platform
Blueprint registry and shared request helpers.
"""

from flask import request

from app.core.exceptions import ValidationError


def json_body() -> dict:
    """Request JSON as a dict; anything else is a 400."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def limit_offset(default_limit=50, max_limit=200):
    """Read ``limit`` / ``offset`` query params.

    Returns:
        (limit, offset) with limit capped at max_limit
    """
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return max(limit, 1), offset


def flag_arg(name: str) -> bool:
    return request.args.get(name, "").strip().lower() in ("1", "true", "yes")
