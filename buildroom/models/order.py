"""
Buildroom Workflow
Order domain model.

Models:
    - Order: one customer purchase event received from the commerce platform.

Architecture:
    Order ──1:N──▶ System ──1:1──▶ SystemChecklist ──1:N──▶ ChecklistCompletion
    Order ──1:N──▶ ActivityLog

Lifecycle states:
    ordered ⇄ in_progress ⇄ qa_review ⇄ ready_to_deliver → complete (terminal)

    Every non-terminal state may move to every other non-terminal state; the
    board models operator correction, not a strict pipeline.
"""

from datetime import datetime, timedelta

from buildroom.models import as_utc, db, iso, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

ORDER_STATUSES = ("ordered", "in_progress", "qa_review", "ready_to_deliver", "complete")
TERMINAL_STATUS = "complete"

DELIVERY_METHODS = ("delivery", "shipping")

PRIORITY_MIN = 0
PRIORITY_MAX = 5

DEFAULT_URGENT_IDLE_HOURS = 48


def validate_order_transition(old_status, new_status):
    """Return True if the Order status transition is structurally valid.

    No-op moves and moves out of the terminal state are invalid; the
    ``complete`` precondition on child systems is checked by the service.
    """
    if new_status not in ORDER_STATUSES or old_status == new_status:
        return False
    return old_status != TERMINAL_STATUS


def clamp_priority(value: int) -> int:
    return max(PRIORITY_MIN, min(PRIORITY_MAX, int(value)))


class Order(db.Model):
    """
    A procurement order. ``external_ref`` is the commerce platform's order
    number and doubles as the idempotency key for order creation.
    """

    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    external_ref = db.Column(
        db.String(100), unique=True, nullable=False,
        comment="Upstream commerce order id (e.g. WooCommerce), immutable",
    )

    # Customer
    customer_name = db.Column(db.String(255), nullable=False)
    customer_email = db.Column(db.String(255), nullable=False)
    customer_department = db.Column(db.String(255), nullable=True)

    # Workflow
    status = db.Column(db.String(50), nullable=False, default="ordered")
    priority = db.Column(db.Integer, nullable=False, default=0)
    assigned_to = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )

    # Fulfilment
    order_date = db.Column(db.DateTime(timezone=True), nullable=False)
    delivery_method = db.Column(db.String(50), nullable=True)
    delivery_address = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    tracking_number = db.Column(db.String(100), nullable=True)
    delivery_confirmation = db.Column(db.String(255), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # ── Constraints ──────────────────────────────────────────────────────
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('ordered','in_progress','qa_review','ready_to_deliver','complete')",
            name="ck_orders_status",
        ),
        db.CheckConstraint(
            "delivery_method IS NULL OR delivery_method IN ('delivery','shipping')",
            name="ck_orders_delivery_method",
        ),
        db.CheckConstraint("priority BETWEEN 0 AND 5", name="ck_orders_priority"),
        db.Index("idx_orders_status", "status"),
    )

    # ── Relationships ────────────────────────────────────────────────────
    systems = db.relationship(
        "System", backref="order", cascade="all, delete-orphan",
        passive_deletes=True, order_by="System.id",
    )
    activity = db.relationship(
        "ActivityLog", viewonly=True, order_by="ActivityLog.id", lazy="dynamic",
    )
    assignee = db.relationship("User", foreign_keys=[assigned_to])

    @property
    def is_terminal(self) -> bool:
        return self.status == TERMINAL_STATUS

    def blocking_system_ids(self) -> list[int]:
        """Ids of owned systems whose derived status is not ``complete``."""
        return [s.id for s in self.systems if s.derived_status != "complete"]

    def is_urgent(self, now: datetime | None = None,
                  idle_hours: int = DEFAULT_URGENT_IDLE_HOURS) -> bool:
        """Idle longer than ``idle_hours`` in a non-terminal status.

        Depends on the wall clock, so it is evaluated on every read and
        never persisted.
        """
        if self.is_terminal or self.updated_at is None:
            return False
        now = now or utcnow()
        return now - as_utc(self.updated_at) > timedelta(hours=idle_hours)

    def progress(self) -> float:
        """Weighted checklist progress across all systems, 0.0–1.0."""
        done = total = 0.0
        for system in self.systems:
            if system.checklist is None:
                continue
            d, t = system.checklist.weight_totals()
            done += d
            total += t
        return round(done / total, 4) if total else 0.0

    def to_dict(self, include_systems=False, now=None,
                urgent_idle_hours=DEFAULT_URGENT_IDLE_HOURS):
        result = {
            "id": self.id,
            "external_ref": self.external_ref,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_department": self.customer_department,
            "status": self.status,
            "priority": self.priority,
            "assigned_to": self.assigned_to,
            "order_date": iso(self.order_date),
            "delivery_method": self.delivery_method,
            "delivery_address": self.delivery_address,
            "notes": self.notes,
            "tracking_number": self.tracking_number,
            "delivery_confirmation": self.delivery_confirmation,
            "completed_at": iso(self.completed_at),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
            "is_urgent": self.is_urgent(now=now, idle_hours=urgent_idle_hours),
            "open_system_count": len(self.blocking_system_ids()),
            "system_count": len(self.systems),
            "progress": self.progress(),
        }
        if include_systems:
            result["systems"] = [s.to_dict() for s in self.systems]
        return result

    def __repr__(self):
        return f"<Order {self.id} {self.external_ref} [{self.status}]>"
