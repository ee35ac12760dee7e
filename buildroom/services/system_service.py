"""
System Service — operator-facing edits on individual devices.

``pending`` / ``in_progress`` are set by operators; ``complete`` is only
accepted when the system's checklist has no open step (a system without a
checklist may be completed directly).
"""

import logging

from sqlalchemy import select

from buildroom.core.exceptions import NoChangeError, NotFoundError, PreconditionFailedError
from buildroom.models import db
from buildroom.models.audit import write_activity
from buildroom.models.auth import User
from buildroom.models.order import Order
from buildroom.models.system import SYSTEM_STATUSES, System
from buildroom.utils.helpers import commit_or_rollback, get_or_raise
from buildroom.utils.validators import optional_text, parse_bool, parse_enum, parse_optional_int

logger = logging.getLogger(__name__)

# text field → max length
_TEXT_FIELDS = {
    "serial_number": 100,
    "asset_name": 100,
    "agiloft_asset_id": 100,
    "inflow_item_id": 100,
}


def get_system(system_id: int) -> System:
    return get_or_raise(System, system_id)


def list_order_systems(order_id: int) -> list[System]:
    order = get_or_raise(Order, order_id)
    return list(order.systems)


def work_queue(limit: int | None = None) -> list[System]:
    """Open systems in intake order: skip-queue first, then queue position."""
    stmt = (
        select(System)
        .join(Order, Order.id == System.order_id)
        .where(System.status != "complete", Order.status != "complete")
        .order_by(System.skip_queue.desc(), System.queue_position.asc().nulls_last(),
                  System.id.asc())
    )
    if limit:
        stmt = stmt.limit(limit)
    return list(db.session.execute(stmt).scalars())


def _ensure_order_open(system: System) -> None:
    if system.order.is_terminal:
        raise PreconditionFailedError(
            f"Order {system.order_id} is complete; system {system.id} is closed",
            details={"order_id": system.order_id, "system_id": system.id},
        )


def update_system(system_id: int, data: dict, actor: User) -> System:
    """Edit descriptive / intake fields of a system. Unknown keys are ignored."""
    changes = {}
    for field, max_len in _TEXT_FIELDS.items():
        if field in data:
            changes[field] = optional_text(data[field], field, max_len)
    if "queue_position" in data:
        changes["queue_position"] = parse_optional_int(data["queue_position"],
                                                       "queue_position", minimum=1)
    if "skip_queue" in data:
        changes["skip_queue"] = parse_bool(data["skip_queue"], "skip_queue")
    if "assigned_to" in data:
        assignee = parse_optional_int(data["assigned_to"], "assigned_to", minimum=1)
        if assignee is not None:
            user = db.session.get(User, assignee)
            if user is None or not user.is_active:
                raise NotFoundError(resource="User", resource_id=assignee)
        changes["assigned_to"] = assignee

    system = get_or_raise(System, system_id, for_update=True)
    _ensure_order_open(system)

    diff = {}
    for field, value in changes.items():
        old = getattr(system, field)
        if old != value:
            setattr(system, field, value)
            diff[field] = {"old": old, "new": value}
    if not diff:
        return system

    write_activity(action="system_update", user_id=actor.id,
                   order_id=system.order_id, system_id=system.id, details=diff)
    commit_or_rollback()
    return system


def set_system_status(system_id: int, status: str, actor: User) -> System:
    """Operator status change for one system.

    Raises:
        ValidationError: unknown status.
        NoChangeError: system already has that (derived) status.
        PreconditionFailedError: ``complete`` requested while checklist steps
            are open, or the order is already complete.
    """
    parse_enum(status, "status", SYSTEM_STATUSES)
    system = get_or_raise(System, system_id, for_update=True)
    _ensure_order_open(system)

    current = system.derived_status
    if current == status:
        raise NoChangeError("System", system.id, "status", status)
    checklist = system.checklist
    if checklist is not None:
        open_steps = checklist.open_steps()
        if status == "complete" and open_steps:
            raise PreconditionFailedError(
                f"System {system.id} has {len(open_steps)} open checklist step(s)",
                details={"system_id": system.id,
                         "open_step_ids": [s.id for s in open_steps]},
            )
        if status != "complete" and not open_steps:
            raise PreconditionFailedError(
                f"System {system.id} checklist is fully done; status is derived as complete",
                details={"system_id": system.id},
            )

    previous = system.status
    system.status = status
    write_activity(
        action="system_status_change", user_id=actor.id,
        order_id=system.order_id, system_id=system.id,
        details={"from": previous, "to": status},
    )
    commit_or_rollback()
    logger.info("System %s status %s → %s", system.id, previous, status,
                extra={"order_id": system.order_id, "system_id": system.id,
                       "user_id": actor.id, "action": "system_status_change"})
    return system
