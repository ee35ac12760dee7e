"""
Order Lifecycle Service

Owns the status / priority / assignment state of an order and the creation
of its systems. Every mutating function:
  - takes the acting ``User`` explicitly (never reads request state),
  - validates before touching any row,
  - writes exactly one activity row per changed order in the same session,
  - commits once via ``commit_or_rollback``.

Transitions:
    any non-terminal status → any other non-terminal status
    any non-terminal status → complete   (only when every system is complete)
    complete → nothing (terminal)

Usage:
    from buildroom.services import order_service

    order = order_service.create_order(payload, actor)
    order_service.transition_order(order.id, "in_progress", actor)
"""

import logging

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError

from buildroom.auth import ADMIN_ROLES, MANAGER_ROLES, ensure_role
from buildroom.core.exceptions import (
    DuplicateExternalReferenceError,
    NoChangeError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from buildroom.models import db, utcnow
from buildroom.models.audit import ActivityLog, write_activity
from buildroom.models.auth import User
from buildroom.models.order import (
    DELIVERY_METHODS,
    ORDER_STATUSES,
    TERMINAL_STATUS,
    Order,
    clamp_priority,
    validate_order_transition,
)
from buildroom.models.system import System, SystemType
from buildroom.services import checklist_service
from buildroom.utils.helpers import commit_or_rollback, get_or_raise
from buildroom.utils.validators import (
    optional_text,
    parse_datetime,
    parse_email,
    parse_enum,
    parse_external_ref,
    parse_int,
    parse_int_list,
    require_fields,
)

logger = logging.getLogger(__name__)

MAX_SYSTEMS_PER_LINE = 100


# ── Reads ────────────────────────────────────────────────────────────────────


def get_order(order_id: int) -> Order:
    return get_or_raise(Order, order_id)


def _escape_like(term: str) -> str:
    # Literal match for LIKE metacharacters; paired with escape="\\"
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def list_orders(
    *,
    status: str | None = None,
    assigned_to: int | None = None,
    unassigned: bool = False,
    search: str | None = None,
) -> list[Order]:
    """Filtered board view. All filters are optional and AND-composed.

    Args:
        status: exact status match.
        assigned_to: exact assignee match.
        unassigned: only orders with ``assigned_to IS NULL``.
        search: case-insensitive substring over external reference,
            customer name and department.
    """
    stmt = select(Order)
    if status:
        parse_enum(status, "status", ORDER_STATUSES)
        stmt = stmt.where(Order.status == status)
    if assigned_to is not None:
        stmt = stmt.where(Order.assigned_to == assigned_to)
    if unassigned:
        stmt = stmt.where(Order.assigned_to.is_(None))
    if search and search.strip():
        pattern = f"%{_escape_like(search.strip().lower())}%"
        stmt = stmt.where(or_(
            func.lower(Order.external_ref).like(pattern, escape="\\"),
            func.lower(Order.customer_name).like(pattern, escape="\\"),
            func.lower(func.coalesce(Order.customer_department, "")).like(pattern, escape="\\"),
        ))
    stmt = stmt.order_by(Order.priority.desc(), Order.order_date.asc(), Order.id.asc())
    return list(db.session.execute(stmt).scalars())


def list_activity(order_id: int) -> list[ActivityLog]:
    order = get_or_raise(Order, order_id)
    return order.activity.all()


# ── Creation ─────────────────────────────────────────────────────────────────


def _next_queue_position() -> int:
    current = db.session.execute(select(func.max(System.queue_position))).scalar()
    return (current or 0) + 1


def _parse_system_lines(lines) -> list[tuple[SystemType, dict]]:
    """Resolve ``[{"type": code, "quantity": n, ...}]`` into one
    (type, fields) pair per physical unit."""
    if lines is None:
        return []
    if not isinstance(lines, list):
        raise ValidationError("systems must be a list", details={"systems": "expected list"})
    resolved = []
    for i, line in enumerate(lines):
        if not isinstance(line, dict):
            raise ValidationError("systems entries must be objects",
                                  details={f"systems[{i}]": "expected object"})
        code = line.get("type") or line.get("system_type")
        if not code:
            raise ValidationError("system type is required",
                                  details={f"systems[{i}].type": "required"})
        system_type = db.session.execute(
            select(SystemType).where(SystemType.code == code)
        ).scalar_one_or_none()
        if system_type is None:
            raise ValidationError(f"Unknown system type {code!r}",
                                  details={f"systems[{i}].type": "unknown"})
        quantity = parse_int(line.get("quantity", 1), f"systems[{i}].quantity",
                             minimum=1, maximum=MAX_SYSTEMS_PER_LINE)
        fields = {
            "serial_number": optional_text(line.get("serial_number"),
                                           f"systems[{i}].serial_number", 100),
            "asset_name": optional_text(line.get("asset_name"),
                                        f"systems[{i}].asset_name", 100),
        }
        if quantity > 1 and fields["serial_number"]:
            raise ValidationError(
                "serial_number identifies one unit; use quantity 1 per serial",
                details={f"systems[{i}].serial_number": "quantity must be 1"},
            )
        resolved.extend([(system_type, fields)] * quantity)
    return resolved


def _violates_external_ref(exc: IntegrityError) -> bool:
    # SQLite: "UNIQUE constraint failed: orders.external_ref"
    # PostgreSQL: unique constraint "orders_external_ref_key"
    message = str(exc.orig).lower()
    return "unique" in message and "external_ref" in message


def create_order(data: dict, actor: User) -> Order:
    """Create an order (and its systems) from a commerce-platform event.

    Idempotent on ``external_ref``: a re-delivery raises
    ``DuplicateExternalReferenceError`` and leaves the store unchanged.

    Args:
        data: external_ref, customer_name, customer_email, order_date,
            delivery_method, and optionally customer_department,
            delivery_address, notes, systems=[{type, quantity, serial_number?,
            asset_name?}].
        actor: user (or integration account) recording the order.
    """
    require_fields(data, "external_ref", "customer_name", "customer_email",
                   "order_date", "delivery_method")
    external_ref = parse_external_ref(data["external_ref"])
    customer_name = optional_text(data["customer_name"], "customer_name", 255)
    if not customer_name:
        raise ValidationError("customer_name is required", details={"customer_name": "required"})
    customer_email = parse_email(data["customer_email"])
    order_date = parse_datetime(data["order_date"], "order_date")
    delivery_method = parse_enum(data["delivery_method"], "delivery_method", DELIVERY_METHODS)
    system_lines = _parse_system_lines(data.get("systems"))

    existing = db.session.execute(
        select(Order.id).where(Order.external_ref == external_ref)
    ).scalar_one_or_none()
    if existing is not None:
        logger.info("Duplicate order delivery external_ref=%s existing=%s",
                    external_ref, existing)
        raise DuplicateExternalReferenceError(external_ref, existing)

    order = Order(
        external_ref=external_ref,
        customer_name=customer_name,
        customer_email=customer_email,
        customer_department=optional_text(data.get("customer_department"),
                                          "customer_department", 255),
        order_date=order_date,
        delivery_method=delivery_method,
        delivery_address=optional_text(data.get("delivery_address"), "delivery_address"),
        notes=optional_text(data.get("notes"), "notes"),
        status="ordered",
        priority=0,
    )
    db.session.add(order)
    try:
        db.session.flush()
    except IntegrityError as exc:
        db.session.rollback()
        if _violates_external_ref(exc):
            raise DuplicateExternalReferenceError(external_ref) from exc
        raise

    position = _next_queue_position()
    for system_type, fields in system_lines:
        system = System(
            order_id=order.id,
            system_type_id=system_type.id,
            serial_number=fields["serial_number"],
            asset_name=fields["asset_name"],
            status="pending",
            queue_position=position,
        )
        position += 1
        db.session.add(system)
        db.session.flush()
        checklist_service.instantiate_checklist(system)

    write_activity(
        action="order_created", user_id=actor.id, order_id=order.id,
        details={"external_ref": external_ref, "system_count": len(system_lines)},
    )
    try:
        commit_or_rollback()
    except IntegrityError as exc:
        # A concurrent delivery of the same ref can win the race after our check
        if _violates_external_ref(exc):
            raise DuplicateExternalReferenceError(external_ref) from exc
        raise
    logger.info("Order created external_ref=%s systems=%d", external_ref, len(system_lines),
                extra={"order_id": order.id, "user_id": actor.id, "action": "order_created"})
    return order


# ── Status transitions ───────────────────────────────────────────────────────


def _check_transition(order: Order, target: str) -> None:
    if order.status == target:
        raise NoChangeError("Order", order.id, "status", target)
    if not validate_order_transition(order.status, target):
        raise PreconditionFailedError(
            f"Order {order.id} is {order.status} and cannot change status",
            details={"order_id": order.id, "status": order.status},
        )
    if target == TERMINAL_STATUS:
        blocking = order.blocking_system_ids()
        if blocking:
            raise PreconditionFailedError(
                f"Order {order.id} has {len(blocking)} incomplete system(s): "
                f"{', '.join(str(b) for b in blocking)}",
                details={"order_id": order.id, "blocking_system_ids": blocking},
            )


def transition_order(order_id: int, target_status: str, actor: User,
                     notes: str | None = None) -> Order:
    """Move an order to ``target_status``.

    Raises:
        ValidationError: target is not one of the five statuses.
        NotFoundError: unknown order.
        NoChangeError: target equals the current status.
        PreconditionFailedError: order is terminal, or target is
            ``complete`` while systems are open (ids in details).
    """
    parse_enum(target_status, "status", ORDER_STATUSES)
    order = get_or_raise(Order, order_id, for_update=True)
    _check_transition(order, target_status)

    previous = order.status
    order.status = target_status
    order.updated_at = utcnow()
    if target_status == TERMINAL_STATUS:
        order.completed_at = order.updated_at
    if notes:
        order.notes = f"{order.notes}\n{notes}" if order.notes else notes

    write_activity(
        action="status_change", user_id=actor.id, order_id=order.id,
        details={"from": previous, "to": target_status},
    )
    commit_or_rollback()
    logger.info("Order %s status %s → %s", order.id, previous, target_status,
                extra={"order_id": order.id, "user_id": actor.id, "action": "status_change"})
    return order


def complete_order(order_id: int, actor: User, *, tracking_number: str | None = None,
                   delivery_confirmation: str | None = None,
                   final_notes: str | None = None) -> Order:
    """Mark an order complete and record how it left the building."""
    order = get_or_raise(Order, order_id, for_update=True)
    _check_transition(order, TERMINAL_STATUS)

    previous = order.status
    now = utcnow()
    order.status = TERMINAL_STATUS
    order.updated_at = now
    order.completed_at = now
    order.tracking_number = optional_text(tracking_number, "tracking_number", 100)
    order.delivery_confirmation = optional_text(delivery_confirmation, "delivery_confirmation", 255)
    if final_notes:
        order.notes = f"{order.notes}\n{final_notes}" if order.notes else final_notes

    details = {"from": previous, "to": TERMINAL_STATUS}
    if order.tracking_number:
        details["tracking_number"] = order.tracking_number
    if order.delivery_confirmation:
        details["delivery_confirmation"] = order.delivery_confirmation
    write_activity(action="status_change", user_id=actor.id, order_id=order.id, details=details)
    commit_or_rollback()
    logger.info("Order %s completed from %s", order.id, previous,
                extra={"order_id": order.id, "user_id": actor.id, "action": "status_change"})
    return order


# ── Assignment & priority ────────────────────────────────────────────────────


def _ensure_mutable(order: Order, action: str) -> None:
    if order.is_terminal:
        raise PreconditionFailedError(
            f"Order {order.id} is complete; {action} is no longer allowed",
            details={"order_id": order.id, "status": order.status},
        )


def _resolve_assignee(user_id: int | None) -> User | None:
    if user_id is None:
        return None
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        raise NotFoundError(resource="User", resource_id=user_id)
    return user


def _apply_assignment(order: Order, assignee: User | None, actor: User) -> None:
    previous = order.assigned_to
    order.assigned_to = assignee.id if assignee else None
    order.updated_at = utcnow()
    write_activity(
        action="assign", user_id=actor.id, order_id=order.id,
        details={"from": previous, "to": order.assigned_to},
    )


def assign_order(order_id: int, user_id: int | None, actor: User) -> Order:
    """Assign (or, with ``user_id=None``, unassign) an order. Manager/admin only."""
    ensure_role(actor, MANAGER_ROLES, "assign")
    order = get_or_raise(Order, order_id, for_update=True)
    _ensure_mutable(order, "assignment")
    assignee = _resolve_assignee(user_id)
    _apply_assignment(order, assignee, actor)
    commit_or_rollback()
    logger.info("Order %s assigned to %s", order.id, user_id,
                extra={"order_id": order.id, "user_id": actor.id, "action": "assign"})
    return order


def bulk_assign(order_ids: list[int], user_id: int | None, actor: User) -> list[Order]:
    """Assign several orders in one transaction, all or nothing.

    Every id is resolved and checked before any row changes; the first
    missing or terminal order aborts the batch and is named in the error.
    """
    ensure_role(actor, MANAGER_ROLES, "bulk_assign")
    ids = list(dict.fromkeys(parse_int_list(order_ids, "order_ids", minimum=1)))
    assignee = _resolve_assignee(user_id)

    orders = []
    try:
        for oid in ids:
            order = db.session.get(Order, oid, with_for_update=True)
            if order is None:
                raise NotFoundError(resource="Order", resource_id=oid)
            _ensure_mutable(order, "assignment")
            orders.append(order)
        for order in orders:
            _apply_assignment(order, assignee, actor)
    except Exception:
        db.session.rollback()
        raise
    commit_or_rollback()
    logger.info("Bulk-assigned %d order(s) to %s: %s", len(orders), user_id, ids,
                extra={"user_id": actor.id, "action": "assign"})
    return orders


def set_priority(order_id: int, priority: int, actor: User) -> Order:
    """Set priority (0–5). Manager/admin only."""
    ensure_role(actor, MANAGER_ROLES, "set_priority")
    value = clamp_priority(parse_int(priority, "priority"))
    order = get_or_raise(Order, order_id, for_update=True)
    _ensure_mutable(order, "priority change")

    previous = order.priority
    order.priority = value
    order.updated_at = utcnow()
    write_activity(
        action="priority_change", user_id=actor.id, order_id=order.id,
        details={"from": previous, "to": value},
    )
    commit_or_rollback()
    logger.info("Order %s priority %s → %s", order.id, previous, value,
                extra={"order_id": order.id, "user_id": actor.id, "action": "priority_change"})
    return order


# ── Administration ───────────────────────────────────────────────────────────


def delete_order(order_id: int, actor: User) -> None:
    """Administrative hard delete; cascades to systems, checklists and
    completions, and removes the order's activity rows."""
    ensure_role(actor, ADMIN_ROLES, "delete_order")
    order = get_or_raise(Order, order_id)
    external_ref = order.external_ref
    ActivityLog.query.filter_by(order_id=order.id).delete(synchronize_session=False)
    db.session.delete(order)
    commit_or_rollback()
    logger.warning("Order %s (%s) deleted", order_id, external_ref,
                   extra={"order_id": order_id, "user_id": actor.id, "action": "delete"})

