"""
Buildroom Workflow
System domain models.

Models:
    - SystemType: catalog of device kinds (laptop, desktop, monitor, ...)
    - System:     one physical unit inside an order

Lifecycle states (System):
    pending → in_progress → complete

    ``pending`` and ``in_progress`` are operator-set. ``complete`` is derived:
    a system with a checklist is complete exactly when no checklist step is
    open, whatever the stored column says.
"""

from buildroom.models import db, iso, utcnow

SYSTEM_STATUSES = ("pending", "in_progress", "complete")


class SystemType(db.Model):
    __tablename__ = "system_types"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    code = db.Column(db.String(50), unique=True, nullable=False)
    requires_imaging = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    templates = db.relationship(
        "ChecklistTemplate", backref="system_type", lazy="dynamic",
        order_by="ChecklistTemplate.id.desc()",
    )

    def active_template(self):
        """Most recently created active template, or None."""
        from buildroom.models.checklist import ChecklistTemplate
        return self.templates.filter(ChecklistTemplate.is_active.is_(True)).first()

    def to_dict(self):
        active = self.active_template()
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "requires_imaging": self.requires_imaging,
            "active_template_id": active.id if active else None,
            "created_at": iso(self.created_at),
        }


class System(db.Model):
    """One device within an order. Belongs to exactly one order."""

    __tablename__ = "systems"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('pending','in_progress','complete')",
            name="ck_systems_status",
        ),
        db.Index("idx_systems_status", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(
        db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    system_type_id = db.Column(
        db.Integer, db.ForeignKey("system_types.id"), nullable=False,
    )
    serial_number = db.Column(db.String(100), nullable=True)
    asset_name = db.Column(db.String(100), nullable=True)
    status = db.Column(db.String(50), nullable=False, default="pending")
    assigned_to = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    queue_position = db.Column(db.Integer, nullable=True)
    skip_queue = db.Column(db.Boolean, nullable=False, default=False)

    # Opaque references into external asset / inventory systems
    agiloft_asset_id = db.Column(db.String(100), nullable=True)
    inflow_item_id = db.Column(db.String(100), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    system_type = db.relationship("SystemType")
    checklist = db.relationship(
        "SystemChecklist", backref="system", uselist=False,
        cascade="all, delete-orphan", passive_deletes=True,
    )

    @property
    def derived_status(self) -> str:
        if self.checklist is not None:
            if not self.checklist.open_steps():
                return "complete"
            return "in_progress" if self.status == "complete" else self.status
        return self.status

    def to_dict(self, include_checklist=False):
        result = {
            "id": self.id,
            "order_id": self.order_id,
            "system_type_id": self.system_type_id,
            "system_type": self.system_type.code if self.system_type else None,
            "serial_number": self.serial_number,
            "asset_name": self.asset_name,
            "status": self.derived_status,
            "assigned_to": self.assigned_to,
            "queue_position": self.queue_position,
            "skip_queue": self.skip_queue,
            "agiloft_asset_id": self.agiloft_asset_id,
            "inflow_item_id": self.inflow_item_id,
            "checklist_id": self.checklist.id if self.checklist else None,
            "progress": self.checklist.progress() if self.checklist else None,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_checklist and self.checklist is not None:
            result["checklist"] = self.checklist.to_dict()
        return result

    def __repr__(self):
        return f"<System {self.id} order={self.order_id} [{self.status}]>"
