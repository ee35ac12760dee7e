"""
Buildroom Workflow
System blueprint — per-device edits and the work-intake queue.

Endpoints:
    GET    /api/v1/systems/queue             ?limit=
    GET    /api/v1/systems/<id>              system with its checklist
    PATCH  /api/v1/systems/<id>              serial / asset / assignee / queue fields
    PATCH  /api/v1/systems/<id>/status       {"status": "pending|in_progress|complete"}
"""

from flask import Blueprint, jsonify, request

from buildroom.auth import current_actor
from buildroom.blueprints import json_body
from buildroom.services import system_service
from buildroom.utils.validators import parse_optional_int, require_fields

system_bp = Blueprint("systems", __name__, url_prefix="/api/v1")


@system_bp.route("/systems/queue", methods=["GET"])
def work_queue():
    current_actor()
    limit = parse_optional_int(request.args.get("limit"), "limit", minimum=1, maximum=1000)
    systems = system_service.work_queue(limit=limit)
    return jsonify({"items": [s.to_dict() for s in systems], "total": len(systems)})


@system_bp.route("/systems/<int:system_id>", methods=["GET"])
def get_system(system_id):
    current_actor()
    return jsonify(system_service.get_system(system_id).to_dict(include_checklist=True))


@system_bp.route("/systems/<int:system_id>", methods=["PATCH"])
def update_system(system_id):
    actor = current_actor()
    system = system_service.update_system(system_id, json_body(), actor)
    return jsonify(system.to_dict())


@system_bp.route("/systems/<int:system_id>/status", methods=["PATCH"])
def set_system_status(system_id):
    actor = current_actor()
    data = json_body()
    require_fields(data, "status")
    system = system_service.set_system_status(system_id, data["status"], actor)
    return jsonify(system.to_dict())
