"""
Buildroom Workflow
Blueprint registry and shared request helpers.
"""

from flask import current_app, request

from buildroom.core.exceptions import ValidationError
from buildroom.models.order import DEFAULT_URGENT_IDLE_HOURS


def json_body() -> dict:
    """Request JSON as a dict; an empty body counts as ``{}``."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object",
                              details={"body": "expected object"})
    return data


def serialize_order(order, include_systems=False) -> dict:
    """``Order.to_dict`` with the configured urgency threshold."""
    return order.to_dict(
        include_systems=include_systems,
        urgent_idle_hours=current_app.config.get("URGENT_IDLE_HOURS", DEFAULT_URGENT_IDLE_HOURS),
    )
