"""
Checklist Service

Instantiates per-system checklists from templates and records work against
them. A step counts as done once its completion row carries a worker
timestamp and, for QA-required steps, a QA timestamp as well.

QA policy:
  - any active user may complete a step; completion never fills QA fields
  - only roles in ``QA_ROLES`` (config, default manager/admin) may QA-check
  - the worker who completed a step may not QA-check it unless
    ``ALLOW_SELF_QA`` is enabled
  - re-completing a step clears an earlier QA sign-off

After every mutation the owning system's stored status is re-synced with the
derived one, so board queries on ``systems.status`` stay truthful.

Usage:
    from buildroom.services.checklist_service import complete_step, qa_check_step

    complete_step(checklist_id, step_id, actor, time_spent_minutes=12)
    qa_check_step(checklist_id, step_id, qa_actor)
"""

import logging

from flask import current_app

from buildroom.auth import ensure_role
from buildroom.core.exceptions import (
    ForbiddenError,
    NoChangeError,
    NotFoundError,
    PreconditionFailedError,
)
from buildroom.models import db, utcnow
from buildroom.models.audit import write_activity
from buildroom.models.auth import User
from buildroom.models.checklist import ChecklistCompletion, ChecklistStep, SystemChecklist
from buildroom.models.system import System
from buildroom.utils.helpers import commit_or_rollback, get_or_raise
from buildroom.utils.validators import optional_text, parse_optional_int

logger = logging.getLogger(__name__)

DEFAULT_QA_ROLES = ("manager", "admin")


def _qa_roles() -> frozenset:
    return frozenset(current_app.config.get("QA_ROLES") or DEFAULT_QA_ROLES)


def _self_qa_allowed() -> bool:
    return bool(current_app.config.get("ALLOW_SELF_QA", False))


# ── Instantiation ────────────────────────────────────────────────────────────


def instantiate_checklist(system: System) -> SystemChecklist | None:
    """Attach a checklist built from the active template of the system's type.

    Returns None (and the system keeps an operator-driven status) when the
    type has no active template. Caller owns the transaction.
    """
    template = system.system_type.active_template() if system.system_type else None
    if template is None:
        logger.debug("No active checklist template for system_type_id=%s", system.system_type_id)
        return None
    checklist = SystemChecklist(system_id=system.id, template_id=template.id)
    db.session.add(checklist)
    db.session.flush()
    return checklist


# ── Reads ────────────────────────────────────────────────────────────────────


def get_checklist(checklist_id: int) -> SystemChecklist:
    return get_or_raise(SystemChecklist, checklist_id)


# ── Internals ────────────────────────────────────────────────────────────────


def _load_for_update(checklist_id: int, step_id: int) -> tuple[SystemChecklist, ChecklistStep]:
    """Lock the checklist row and resolve a step of its template."""
    checklist = get_or_raise(SystemChecklist, checklist_id, for_update=True)
    step = db.session.get(ChecklistStep, step_id)
    if step is None or step.template_id != checklist.template_id:
        raise NotFoundError(resource="ChecklistStep", resource_id=step_id)
    order = checklist.system.order
    if order.is_terminal:
        raise PreconditionFailedError(
            f"Order {order.id} is complete; its checklists are closed",
            details={"order_id": order.id, "checklist_id": checklist.id},
        )
    return checklist, step


def sync_system_status(system: System) -> tuple[str, str]:
    """Align ``system.status`` with checklist state. Returns (old, new)."""
    old = system.status
    checklist = system.checklist
    if checklist is None:
        return old, old
    if not checklist.open_steps():
        new = "complete"
    elif old == "complete":
        new = "in_progress"
    elif old == "pending" and any(c.completed_at for c in checklist.completions):
        new = "in_progress"
    else:
        new = old
    if new != old:
        system.status = new
        logger.info("System %s status %s → %s", system.id, old, new,
                    extra={"order_id": system.order_id, "system_id": system.id,
                           "checklist_id": checklist.id})
    return old, new


# ── Mutations ────────────────────────────────────────────────────────────────


def complete_step(checklist_id: int, step_id: int, actor: User, *,
                  time_spent_minutes: int | None = None,
                  notes: str | None = None) -> ChecklistCompletion:
    """Record that ``actor`` performed a step (upsert on checklist + step).

    For a QA-required step the completion is stored but the step stays open
    until ``qa_check_step`` is called by a QA-authorized user.

    Raises:
        NotFoundError: unknown checklist, or step not part of its template.
        PreconditionFailedError: the owning order is already complete.
        ValidationError: negative or non-integer ``time_spent_minutes``.
    """
    minutes = parse_optional_int(time_spent_minutes, "time_spent_minutes", minimum=0)
    notes = optional_text(notes, "notes")
    checklist, step = _load_for_update(checklist_id, step_id)

    completion = checklist.completion_for(step.id)
    qa_reset = False
    if completion is None:
        completion = ChecklistCompletion(step_id=step.id)
        checklist.completions.append(completion)
    elif completion.qa_checked_at is not None:
        qa_reset = True

    completion.completed_by = actor.id
    completion.completed_at = utcnow()
    completion.qa_checked_by = None
    completion.qa_checked_at = None
    completion.time_spent_minutes = minutes
    completion.notes = notes

    system = checklist.system
    old_status, new_status = sync_system_status(system)
    details = {
        "checklist_id": checklist.id,
        "step_id": step.id,
        "step_name": step.name,
        "requires_qa": step.requires_qa,
        "done": completion.satisfies(step),
        "system_status": {"from": old_status, "to": new_status},
    }
    if qa_reset:
        details["qa_reset"] = True
    write_activity(action="step_complete", user_id=actor.id,
                   order_id=system.order_id, system_id=system.id, details=details)
    commit_or_rollback()
    logger.info("Step %s done on checklist %s (qa_pending=%s)", step.id, checklist.id,
                not completion.satisfies(step),
                extra={"order_id": system.order_id, "system_id": system.id,
                       "checklist_id": checklist.id, "user_id": actor.id,
                       "action": "step_complete"})
    return completion


def qa_check_step(checklist_id: int, step_id: int, actor: User, *,
                  notes: str | None = None) -> ChecklistCompletion:
    """QA counterpart of ``complete_step``.

    Raises:
        NotFoundError: unknown checklist, or step not part of its template.
        ForbiddenError: actor's role is not QA-authorized, or actor did the
            work and self-QA is disabled.
        PreconditionFailedError: step does not require QA, has no worker
            completion yet, or the order is already complete.
        NoChangeError: step was already QA-checked.
    """
    notes = optional_text(notes, "notes")
    checklist, step = _load_for_update(checklist_id, step_id)
    ensure_role(actor, _qa_roles(), "qa_check")

    if not step.requires_qa:
        raise PreconditionFailedError(
            f"Step {step.id} does not require QA",
            details={"checklist_id": checklist.id, "step_id": step.id},
        )
    completion = checklist.completion_for(step.id)
    if completion is None or completion.completed_at is None:
        raise PreconditionFailedError(
            f"Step {step.id} has not been completed yet",
            details={"checklist_id": checklist.id, "step_id": step.id},
        )
    if completion.qa_checked_at is not None:
        raise NoChangeError("ChecklistCompletion", completion.id, "qa_checked_by",
                            completion.qa_checked_by)
    if completion.completed_by == actor.id and not _self_qa_allowed():
        raise ForbiddenError(actor.id, "qa_check", "self-QA of own work is not allowed")

    completion.qa_checked_by = actor.id
    completion.qa_checked_at = utcnow()
    if notes:
        completion.notes = f"{completion.notes}\nQA: {notes}" if completion.notes else f"QA: {notes}"

    system = checklist.system
    old_status, new_status = sync_system_status(system)
    write_activity(
        action="step_qa_check", user_id=actor.id,
        order_id=system.order_id, system_id=system.id,
        details={
            "checklist_id": checklist.id,
            "step_id": step.id,
            "step_name": step.name,
            "completed_by": completion.completed_by,
            "system_status": {"from": old_status, "to": new_status},
        },
    )
    commit_or_rollback()
    logger.info("Step %s QA-checked on checklist %s", step.id, checklist.id,
                extra={"order_id": system.order_id, "system_id": system.id,
                       "checklist_id": checklist.id, "user_id": actor.id,
                       "action": "step_qa_check"})
    return completion
