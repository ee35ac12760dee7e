"""
Buildroom Workflow
Checklist blueprint — step work and QA sign-off.

Endpoints:
    GET    /api/v1/checklists/<id>
    POST   /api/v1/checklists/<id>/steps/<step_id>/complete   {"time_spent_minutes"?, "notes"?}
    POST   /api/v1/checklists/<id>/steps/<step_id>/qa-check   {"notes"?}

Both mutations answer with the refreshed checklist so the client can redraw
progress and the derived system status in one round trip.
"""

from flask import Blueprint, jsonify

from buildroom.auth import current_actor
from buildroom.blueprints import json_body
from buildroom.services import checklist_service

checklist_bp = Blueprint("checklists", __name__, url_prefix="/api/v1")


def _checklist_payload(checklist, completion=None):
    result = checklist.to_dict()
    result["system_status"] = checklist.system.derived_status
    if completion is not None:
        result["completion"] = completion.to_dict()
    return result


@checklist_bp.route("/checklists/<int:checklist_id>", methods=["GET"])
def get_checklist(checklist_id):
    current_actor()
    return jsonify(_checklist_payload(checklist_service.get_checklist(checklist_id)))


@checklist_bp.route("/checklists/<int:checklist_id>/steps/<int:step_id>/complete",
                    methods=["POST"])
def complete_step(checklist_id, step_id):
    actor = current_actor()
    data = json_body()
    completion = checklist_service.complete_step(
        checklist_id, step_id, actor,
        time_spent_minutes=data.get("time_spent_minutes"),
        notes=data.get("notes"),
    )
    return jsonify(_checklist_payload(completion.checklist, completion))


@checklist_bp.route("/checklists/<int:checklist_id>/steps/<int:step_id>/qa-check",
                    methods=["POST"])
def qa_check_step(checklist_id, step_id):
    actor = current_actor()
    data = json_body()
    completion = checklist_service.qa_check_step(checklist_id, step_id, actor,
                                                 notes=data.get("notes"))
    return jsonify(_checklist_payload(completion.checklist, completion))
