"""
Buildroom Workflow
Metrics blueprint.

Endpoints:
    GET /api/v1/metrics/users/<id>/performance   ?start=<iso>&end=<iso>

Staff may read their own summary; managers and admins may read anyone's.
"""

from flask import Blueprint, jsonify, request

from buildroom.auth import MANAGER_ROLES, current_actor, ensure_role
from buildroom.services import metrics_service
from buildroom.utils.validators import parse_datetime

metrics_bp = Blueprint("metrics", __name__, url_prefix="/api/v1/metrics")


def _optional_datetime(name):
    raw = request.args.get(name)
    return parse_datetime(raw, name) if raw else None


@metrics_bp.route("/users/<int:user_id>/performance", methods=["GET"])
def user_performance(user_id):
    actor = current_actor()
    if actor.id != user_id:
        ensure_role(actor, MANAGER_ROLES, "view_performance")
    summary = metrics_service.performance_summary(
        user_id, start=_optional_datetime("start"), end=_optional_datetime("end"),
    )
    return jsonify(summary)
