"""
Catalog Service — system types and checklist templates.

Templates are never edited in place. ``create_template`` deactivates the
type's current active template in the same transaction, so systems created
afterwards pick up the new steps while existing checklists keep theirs.

Usage:
    from buildroom.services import catalog_service

    laptop = catalog_service.create_system_type({"name": "Laptop", "code": "laptop"}, actor)
    catalog_service.create_template({"system_type_id": laptop.id, "name": "...",
                                     "steps": [{"name": "Image"}]}, actor)
"""

import logging

from sqlalchemy import select

from buildroom.auth import MANAGER_ROLES, ensure_role
from buildroom.core.exceptions import ConflictError, NoChangeError, ValidationError
from buildroom.models import db
from buildroom.models.auth import User
from buildroom.models.checklist import ChecklistStep, ChecklistTemplate
from buildroom.models.system import SystemType
from buildroom.utils.helpers import commit_or_rollback, get_or_raise
from buildroom.utils.validators import (
    optional_text,
    parse_bool,
    parse_int,
    require_fields,
)

logger = logging.getLogger(__name__)

MAX_STEPS_PER_TEMPLATE = 100


# ── System types ─────────────────────────────────────────────────────────────


def list_system_types() -> list[SystemType]:
    return list(db.session.execute(select(SystemType).order_by(SystemType.name)).scalars())


def create_system_type(data: dict, actor: User) -> SystemType:
    ensure_role(actor, MANAGER_ROLES, "create_system_type")
    require_fields(data, "name", "code")
    name = optional_text(data["name"], "name", 100)
    code = optional_text(data["code"], "code", 50)
    if not name or not code:
        raise ValidationError("name and code must not be blank",
                              details={"name": "required", "code": "required"})
    code = code.lower()

    existing = db.session.execute(
        select(SystemType.id).where(SystemType.code == code)
    ).scalar_one_or_none()
    if existing is not None:
        raise ConflictError("SystemType", "code", code)

    system_type = SystemType(
        name=name, code=code,
        requires_imaging=parse_bool(data.get("requires_imaging", False), "requires_imaging"),
    )
    db.session.add(system_type)
    commit_or_rollback(on_integrity_error=ConflictError("SystemType", "code", code))
    logger.info("SystemType %s (%s) created by user=%s", system_type.id, code, actor.id)
    return system_type


# ── Checklist templates ──────────────────────────────────────────────────────


def list_templates(*, system_type_id: int | None = None,
                   active_only: bool = False) -> list[ChecklistTemplate]:
    stmt = select(ChecklistTemplate)
    if system_type_id is not None:
        stmt = stmt.where(ChecklistTemplate.system_type_id == system_type_id)
    if active_only:
        stmt = stmt.where(ChecklistTemplate.is_active.is_(True))
    stmt = stmt.order_by(ChecklistTemplate.system_type_id, ChecklistTemplate.id.desc())
    return list(db.session.execute(stmt).scalars())


def get_template(template_id: int) -> ChecklistTemplate:
    return get_or_raise(ChecklistTemplate, template_id)


def _parse_steps(raw) -> list[dict]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError("steps must be a non-empty list",
                              details={"steps": "expected non-empty list"})
    if len(raw) > MAX_STEPS_PER_TEMPLATE:
        raise ValidationError(f"A template holds at most {MAX_STEPS_PER_TEMPLATE} steps",
                              details={"steps": "too many"})
    steps = []
    for i, item in enumerate(raw):
        field = f"steps[{i}]"
        if not isinstance(item, dict):
            raise ValidationError(f"{field} must be an object", details={field: "expected object"})
        name = optional_text(item.get("name"), f"{field}.name", 200)
        if not name:
            raise ValidationError(f"{field}.name is required", details={f"{field}.name": "required"})
        weight = item.get("step_weight", 1.0)
        try:
            weight = float(weight)
        except (TypeError, ValueError):
            raise ValidationError(f"{field}.step_weight must be a number",
                                  details={f"{field}.step_weight": "not a number"})
        if not 0 < weight < 10:
            raise ValidationError(f"{field}.step_weight must be between 0 and 10",
                                  details={f"{field}.step_weight": "out of range"})
        steps.append({
            "step_order": i + 1,
            "name": name,
            "description": optional_text(item.get("description"), f"{field}.description"),
            "requires_qa": parse_bool(item.get("requires_qa", False), f"{field}.requires_qa"),
            "estimated_minutes": parse_int(item.get("estimated_minutes", 5),
                                           f"{field}.estimated_minutes", minimum=0),
            "step_weight": round(weight, 2),
        })
    return steps


def create_template(data: dict, actor: User) -> ChecklistTemplate:
    """Create a template and make it the active one for its system type.

    Steps are numbered in the order given.

    Raises:
        ForbiddenError: actor is not a manager or admin.
        NotFoundError: unknown system type.
        ValidationError: missing name or malformed steps.
    """
    ensure_role(actor, MANAGER_ROLES, "create_template")
    require_fields(data, "name", "system_type_id")
    name = optional_text(data["name"], "name", 200)
    if not name:
        raise ValidationError("name must not be blank", details={"name": "required"})
    type_id = parse_int(data["system_type_id"], "system_type_id", minimum=1)
    steps = _parse_steps(data.get("steps"))
    system_type = get_or_raise(SystemType, type_id)

    previous = system_type.active_template()
    if previous is not None:
        previous.is_active = False

    template = ChecklistTemplate(name=name, system_type_id=system_type.id, is_active=True)
    template.steps = [ChecklistStep(**s) for s in steps]
    db.session.add(template)
    commit_or_rollback()
    logger.info("Template %s for %s created by user=%s (replaces %s)",
                template.id, system_type.code, actor.id, previous.id if previous else None)
    return template


def deactivate_template(template_id: int, actor: User) -> ChecklistTemplate:
    """Retire a template. New systems of its type get no checklist until a
    new template is created; existing checklists are unaffected."""
    ensure_role(actor, MANAGER_ROLES, "deactivate_template")
    template = get_or_raise(ChecklistTemplate, template_id)
    if not template.is_active:
        raise NoChangeError("ChecklistTemplate", template.id, "is_active", False)
    template.is_active = False
    commit_or_rollback()
    logger.info("Template %s deactivated by user=%s", template.id, actor.id)
    return template


# ── Seeding ──────────────────────────────────────────────────────────────────

DEFAULT_CATALOG = [
    {
        "name": "Laptop", "code": "laptop", "requires_imaging": True,
        "template": "Laptop build",
        "steps": [
            ("Unbox and inspect", False, 5, 0.5),
            ("Record serial number", False, 2, 0.5),
            ("Apply OS image", False, 30, 2.0),
            ("Install department software", False, 20, 1.5),
            ("Enroll in device management", True, 10, 1.0),
            ("Asset tag and label", False, 5, 0.5),
            ("Final inspection", True, 10, 1.0),
        ],
    },
    {
        "name": "Desktop", "code": "desktop", "requires_imaging": True,
        "template": "Desktop build",
        "steps": [
            ("Unbox and inspect", False, 5, 0.5),
            ("Record serial number", False, 2, 0.5),
            ("Apply OS image", False, 30, 2.0),
            ("Install department software", False, 20, 1.5),
            ("Asset tag and label", False, 5, 0.5),
            ("Final inspection", True, 10, 1.0),
        ],
    },
    {
        "name": "Monitor", "code": "monitor", "requires_imaging": False,
        "template": "Monitor check",
        "steps": [
            ("Unbox and inspect", False, 5, 1.0),
            ("Power-on test", False, 5, 1.0),
            ("Asset tag and label", False, 5, 0.5),
        ],
    },
    {
        "name": "Accessory", "code": "accessory", "requires_imaging": False,
        "template": "Accessory check",
        "steps": [
            ("Verify contents", False, 2, 1.0),
        ],
    },
]


def seed_default_catalog() -> int:
    """
    Insert the default system types and one active template for each.
    Safe to run multiple times: existing type codes are skipped.

    Call this from the ``seed-catalog`` CLI command; the caller commits.
    """
    created = 0
    for entry in DEFAULT_CATALOG:
        exists = db.session.execute(
            select(SystemType.id).where(SystemType.code == entry["code"])
        ).scalar_one_or_none()
        if exists is not None:
            continue
        system_type = SystemType(name=entry["name"], code=entry["code"],
                                 requires_imaging=entry["requires_imaging"])
        template = ChecklistTemplate(name=entry["template"], system_type=system_type)
        template.steps = [
            ChecklistStep(step_order=i, name=name, requires_qa=qa,
                          estimated_minutes=minutes, step_weight=weight)
            for i, (name, qa, minutes, weight) in enumerate(entry["steps"], start=1)
        ]
        db.session.add_all([system_type, template])
        created += 1

    if created > 0:
        db.session.flush()
        logger.info("Seeded %s system types", created)
    return created
