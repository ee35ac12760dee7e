"""
Metrics Service — per-user performance summary.

Read-only projection over checklist completions and the activity log; nothing
is aggregated ahead of time. A system counts as completed by the user whose
action flipped its status to ``complete``; an order counts for the user who
moved it to ``complete``.
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select

from buildroom.core.exceptions import ValidationError
from buildroom.models import db, utcnow
from buildroom.models.audit import ActivityLog
from buildroom.models.auth import User
from buildroom.models.checklist import ChecklistCompletion, ChecklistStep
from buildroom.utils.helpers import get_or_raise

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 30

_SYSTEM_COMPLETING_ACTIONS = ("step_complete", "step_qa_check", "system_status_change")


def _window(start: datetime | None, end: datetime | None) -> tuple[datetime, datetime]:
    end = end or utcnow()
    start = start or end - timedelta(days=DEFAULT_WINDOW_DAYS)
    if start > end:
        raise ValidationError("start must not be after end",
                              details={"start": "after end"})
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def _flipped_to_complete(log: ActivityLog) -> bool:
    details = log.details or {}
    if log.action == "system_status_change":
        return details.get("to") == "complete"
    change = details.get("system_status") or {}
    return change.get("to") == "complete" and change.get("from") != "complete"


def performance_summary(user_id: int, start: datetime | None = None,
                        end: datetime | None = None) -> dict:
    """Work done by one user in ``[start, end)`` (default: the last 30 days)."""
    user = get_or_raise(User, user_id)
    start, end = _window(start, end)

    steps_done, weight_done, minutes = db.session.execute(
        select(
            func.count(ChecklistCompletion.id),
            func.coalesce(func.sum(ChecklistStep.step_weight), 0),
            func.coalesce(func.sum(ChecklistCompletion.time_spent_minutes), 0),
        )
        .select_from(ChecklistCompletion)
        .join(ChecklistStep, ChecklistStep.id == ChecklistCompletion.step_id)
        .where(
            ChecklistCompletion.completed_by == user.id,
            ChecklistCompletion.completed_at >= start,
            ChecklistCompletion.completed_at < end,
        )
    ).one()

    qa_checks = db.session.execute(
        select(func.count(ChecklistCompletion.id)).where(
            ChecklistCompletion.qa_checked_by == user.id,
            ChecklistCompletion.qa_checked_at >= start,
            ChecklistCompletion.qa_checked_at < end,
        )
    ).scalar_one()

    logs = db.session.execute(
        select(ActivityLog).where(
            ActivityLog.user_id == user.id,
            ActivityLog.created_at >= start,
            ActivityLog.created_at < end,
            ActivityLog.action.in_(_SYSTEM_COMPLETING_ACTIONS + ("status_change",)),
        )
    ).scalars()

    systems_completed = set()
    orders_completed = set()
    for log in logs:
        if log.action == "status_change":
            if (log.details or {}).get("to") == "complete" and log.order_id is not None:
                orders_completed.add(log.order_id)
        elif log.system_id is not None and _flipped_to_complete(log):
            systems_completed.add(log.system_id)

    return {
        "user_id": user.id,
        "user_name": user.full_name,
        "start": start.isoformat(),
        "end": end.isoformat(),
        "steps_completed": steps_done,
        "weight_completed": round(float(weight_done), 2),
        "time_spent_minutes": int(minutes),
        "avg_minutes_per_step": round(minutes / steps_done, 1) if steps_done else None,
        "qa_checks": qa_checks,
        "systems_completed": len(systems_completed),
        "orders_completed": len(orders_completed),
    }
