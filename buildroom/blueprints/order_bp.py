"""
Buildroom Workflow
Order blueprint — intake, board moves, assignment and priority.

Endpoints:
    GET    /api/v1/orders                       ?status=&assigned_to=<id|unassigned>&search=
    POST   /api/v1/orders                       create from a commerce event
    GET    /api/v1/orders/<id>                  order with its systems
    DELETE /api/v1/orders/<id>                  admin hard delete
    PATCH  /api/v1/orders/<id>/status           {"status", "notes"?}
    POST   /api/v1/orders/<id>/complete         {"tracking_number"?, "delivery_confirmation"?, "notes"?}
    PATCH  /api/v1/orders/<id>/assign           {"user_id": <id|null>}
    PATCH  /api/v1/orders/<id>/priority         {"priority": 0-5}
    POST   /api/v1/orders/bulk-assign           {"order_ids": [...], "user_id": <id|null>}
    GET    /api/v1/orders/<id>/systems
    GET    /api/v1/orders/<id>/activity

Layer contract:
    - Blueprint: parse request, resolve the actor, call the service, shape JSON.
    - Every state change, role check and commit lives in order_service.
"""

import logging

from flask import Blueprint, jsonify, request

from buildroom.auth import current_actor
from buildroom.blueprints import json_body, serialize_order
from buildroom.models.order import PRIORITY_MAX, PRIORITY_MIN
from buildroom.services import order_service, system_service
from buildroom.utils.validators import parse_int, parse_optional_int, require_fields

logger = logging.getLogger(__name__)

order_bp = Blueprint("orders", __name__, url_prefix="/api/v1")


def _assignee_filter():
    raw = request.args.get("assigned_to")
    if raw is None or raw == "":
        return None, False
    if raw.lower() == "unassigned":
        return None, True
    return parse_int(raw, "assigned_to", minimum=1), False


@order_bp.route("/orders", methods=["GET"])
def list_orders():
    current_actor()
    assigned_to, unassigned = _assignee_filter()
    orders = order_service.list_orders(
        status=request.args.get("status") or None,
        assigned_to=assigned_to,
        unassigned=unassigned,
        search=request.args.get("search"),
    )
    return jsonify({"items": [serialize_order(o) for o in orders], "total": len(orders)})


@order_bp.route("/orders", methods=["POST"])
def create_order():
    actor = current_actor()
    order = order_service.create_order(json_body(), actor)
    return jsonify(serialize_order(order, include_systems=True)), 201


@order_bp.route("/orders/<int:order_id>", methods=["GET"])
def get_order(order_id):
    current_actor()
    return jsonify(serialize_order(order_service.get_order(order_id), include_systems=True))


@order_bp.route("/orders/<int:order_id>", methods=["DELETE"])
def delete_order(order_id):
    actor = current_actor()
    order_service.delete_order(order_id, actor)
    return jsonify({"deleted": True, "id": order_id})


@order_bp.route("/orders/<int:order_id>/status", methods=["PATCH"])
def transition_order(order_id):
    actor = current_actor()
    data = json_body()
    require_fields(data, "status")
    order = order_service.transition_order(order_id, data["status"], actor,
                                           notes=data.get("notes"))
    return jsonify(serialize_order(order))


@order_bp.route("/orders/<int:order_id>/complete", methods=["POST"])
def complete_order(order_id):
    actor = current_actor()
    data = json_body()
    order = order_service.complete_order(
        order_id, actor,
        tracking_number=data.get("tracking_number"),
        delivery_confirmation=data.get("delivery_confirmation"),
        final_notes=data.get("notes"),
    )
    return jsonify(serialize_order(order))


@order_bp.route("/orders/<int:order_id>/assign", methods=["PATCH"])
def assign_order(order_id):
    actor = current_actor()
    data = json_body()
    user_id = parse_optional_int(data.get("user_id"), "user_id", minimum=1)
    order = order_service.assign_order(order_id, user_id, actor)
    return jsonify(serialize_order(order))


@order_bp.route("/orders/<int:order_id>/priority", methods=["PATCH"])
def set_priority(order_id):
    actor = current_actor()
    data = json_body()
    require_fields(data, "priority")
    priority = parse_int(data["priority"], "priority",
                         minimum=PRIORITY_MIN, maximum=PRIORITY_MAX)
    order = order_service.set_priority(order_id, priority, actor)
    return jsonify(serialize_order(order))


@order_bp.route("/orders/bulk-assign", methods=["POST"])
def bulk_assign():
    actor = current_actor()
    data = json_body()
    require_fields(data, "order_ids")
    user_id = parse_optional_int(data.get("user_id"), "user_id", minimum=1)
    orders = order_service.bulk_assign(data["order_ids"], user_id, actor)
    return jsonify({"items": [serialize_order(o) for o in orders], "total": len(orders)})


@order_bp.route("/orders/<int:order_id>/systems", methods=["GET"])
def list_order_systems(order_id):
    current_actor()
    systems = system_service.list_order_systems(order_id)
    return jsonify({"items": [s.to_dict() for s in systems], "total": len(systems)})


@order_bp.route("/orders/<int:order_id>/activity", methods=["GET"])
def list_activity(order_id):
    current_actor()
    entries = order_service.list_activity(order_id)
    return jsonify({"items": [e.to_dict() for e in entries], "total": len(entries)})
