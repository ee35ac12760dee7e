"""
Buildroom Workflow
Catalog blueprint — system types and checklist templates.

Endpoints:
    GET    /api/v1/system-types
    POST   /api/v1/system-types                          manager/admin
    GET    /api/v1/checklist-templates                   ?system_type_id=&active=true
    GET    /api/v1/checklist-templates/<id>
    POST   /api/v1/checklist-templates                   manager/admin
    POST   /api/v1/checklist-templates/<id>/deactivate   manager/admin
"""

from flask import Blueprint, jsonify, request

from buildroom.auth import current_actor
from buildroom.blueprints import json_body
from buildroom.services import catalog_service
from buildroom.utils.validators import parse_bool, parse_optional_int

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/v1")


@catalog_bp.route("/system-types", methods=["GET"])
def list_system_types():
    current_actor()
    types = catalog_service.list_system_types()
    return jsonify({"items": [t.to_dict() for t in types], "total": len(types)})


@catalog_bp.route("/system-types", methods=["POST"])
def create_system_type():
    actor = current_actor()
    system_type = catalog_service.create_system_type(json_body(), actor)
    return jsonify(system_type.to_dict()), 201


@catalog_bp.route("/checklist-templates", methods=["GET"])
def list_templates():
    current_actor()
    templates = catalog_service.list_templates(
        system_type_id=parse_optional_int(request.args.get("system_type_id"),
                                          "system_type_id", minimum=1),
        active_only=parse_bool(request.args.get("active", "false"), "active"),
    )
    return jsonify({"items": [t.to_dict(include_steps=False) for t in templates],
                    "total": len(templates)})


@catalog_bp.route("/checklist-templates/<int:template_id>", methods=["GET"])
def get_template(template_id):
    current_actor()
    return jsonify(catalog_service.get_template(template_id).to_dict())


@catalog_bp.route("/checklist-templates", methods=["POST"])
def create_template():
    actor = current_actor()
    template = catalog_service.create_template(json_body(), actor)
    return jsonify(template.to_dict()), 201


@catalog_bp.route("/checklist-templates/<int:template_id>/deactivate", methods=["POST"])
def deactivate_template(template_id):
    actor = current_actor()
    template = catalog_service.deactivate_template(template_id, actor)
    return jsonify(template.to_dict(include_steps=False))
