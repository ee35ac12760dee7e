"""
Buildroom Workflow
Activity domain model.

Models:
    - ActivityLog: immutable, append-only trail of workflow transitions.

Every mutating service call writes exactly one row per entity it changes,
inside the same session as the change, so both commit or roll back together.
"""

from buildroom.models import db, iso, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

ACTIVITY_ACTIONS = {
    # Order lifecycle
    "order_created",
    "status_change",
    "assign",
    "priority_change",
    # System / checklist
    "system_status_change",
    "system_update",
    "step_complete",
    "step_qa_check",
}


class ActivityLog(db.Model):
    """
    One row per action. ``details`` carries the transition payload,
    e.g. ``{"from": "ordered", "to": "in_progress"}``.
    """

    __tablename__ = "activity_logs"
    __table_args__ = (
        db.Index("idx_activity_logs_user", "user_id"),
        db.Index("idx_activity_logs_order", "order_id"),
        db.Index("idx_activity_logs_action", "action"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"))
    system_id = db.Column(db.Integer, db.ForeignKey("systems.id", ondelete="SET NULL"))
    action = db.Column(db.String(100), nullable=False)
    details = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "order_id": self.order_id,
            "system_id": self.system_id,
            "action": self.action,
            "details": self.details or {},
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<ActivityLog {self.id}: {self.action} order={self.order_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_activity(
    *,
    action: str,
    user_id: int | None,
    order_id: int | None = None,
    system_id: int | None = None,
    details: dict | None = None,
) -> ActivityLog:
    """
    Append a single activity row. Uses ``flush`` so callers keep
    transaction control; the row is committed (or rolled back) with the
    state change it describes.
    """
    if action not in ACTIVITY_ACTIONS:
        raise ValueError(f"Unknown activity action: {action}")
    log = ActivityLog(
        user_id=user_id,
        order_id=order_id,
        system_id=system_id,
        action=action,
        details=details or {},
    )
    db.session.add(log)
    db.session.flush()
    return log
