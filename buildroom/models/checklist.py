"""
Buildroom Workflow
Checklist domain models.

Models:
    - ChecklistTemplate:   static, versionless definition per system type
    - ChecklistStep:       one ordered work item of a template
    - SystemChecklist:     the per-system instance of a template
    - ChecklistCompletion: who did a step (and who QA-checked it), at most one
                           row per (checklist, step)

Templates have no step-edit path. A changed process is a new template; the
previous one is deactivated, so instances never see retroactive changes.
"""

from buildroom.models import db, iso, utcnow


class ChecklistTemplate(db.Model):
    __tablename__ = "checklist_templates"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    system_type_id = db.Column(
        db.Integer, db.ForeignKey("system_types.id"), nullable=False, index=True,
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    steps = db.relationship(
        "ChecklistStep", backref="template", cascade="all, delete-orphan",
        order_by="ChecklistStep.step_order",
    )

    def to_dict(self, include_steps=True):
        result = {
            "id": self.id,
            "name": self.name,
            "system_type_id": self.system_type_id,
            "is_active": self.is_active,
            "step_count": len(self.steps),
            "estimated_minutes": sum(s.estimated_minutes or 0 for s in self.steps),
            "created_at": iso(self.created_at),
        }
        if include_steps:
            result["steps"] = [s.to_dict() for s in self.steps]
        return result


class ChecklistStep(db.Model):
    __tablename__ = "checklist_steps"

    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(
        db.Integer, db.ForeignKey("checklist_templates.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    step_order = db.Column(db.Integer, nullable=False)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    requires_qa = db.Column(db.Boolean, nullable=False, default=False)
    estimated_minutes = db.Column(db.Integer, nullable=False, default=5)
    step_weight = db.Column(db.Numeric(3, 2), nullable=False, default=1.0)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    @property
    def weight(self) -> float:
        return float(self.step_weight if self.step_weight is not None else 1.0)

    def to_dict(self):
        return {
            "id": self.id,
            "template_id": self.template_id,
            "step_order": self.step_order,
            "name": self.name,
            "description": self.description,
            "requires_qa": self.requires_qa,
            "estimated_minutes": self.estimated_minutes,
            "step_weight": self.weight,
        }


class SystemChecklist(db.Model):
    __tablename__ = "system_checklists"

    id = db.Column(db.Integer, primary_key=True)
    system_id = db.Column(
        db.Integer, db.ForeignKey("systems.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    template_id = db.Column(
        db.Integer, db.ForeignKey("checklist_templates.id"), nullable=False,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    template = db.relationship("ChecklistTemplate")
    completions = db.relationship(
        "ChecklistCompletion", backref="checklist",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    @property
    def steps(self):
        return self.template.steps

    def completion_for(self, step_id):
        for c in self.completions:
            if c.step_id == step_id:
                return c
        return None

    def step_is_done(self, step) -> bool:
        completion = self.completion_for(step.id)
        return completion is not None and completion.satisfies(step)

    def open_steps(self):
        """Template steps not yet done on this instance."""
        return [s for s in self.steps if not self.step_is_done(s)]

    def weight_totals(self) -> tuple[float, float]:
        done = sum(s.weight for s in self.steps if self.step_is_done(s))
        total = sum(s.weight for s in self.steps)
        return done, total

    def progress(self) -> float:
        done, total = self.weight_totals()
        return round(done / total, 4) if total else 1.0

    def to_dict(self):
        steps = []
        for step in self.steps:
            completion = self.completion_for(step.id)
            entry = step.to_dict()
            entry["done"] = completion is not None and completion.satisfies(step)
            entry["completion"] = completion.to_dict() if completion else None
            steps.append(entry)
        return {
            "id": self.id,
            "system_id": self.system_id,
            "template_id": self.template_id,
            "template_name": self.template.name if self.template else None,
            "open_step_count": len(self.open_steps()),
            "progress": self.progress(),
            "steps": steps,
            "created_at": iso(self.created_at),
        }


class ChecklistCompletion(db.Model):
    __tablename__ = "checklist_completions"
    __table_args__ = (
        db.UniqueConstraint(
            "system_checklist_id", "step_id", name="uq_completion_checklist_step",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    system_checklist_id = db.Column(
        db.Integer, db.ForeignKey("system_checklists.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    step_id = db.Column(db.Integer, db.ForeignKey("checklist_steps.id"), nullable=False)

    completed_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    qa_checked_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    qa_checked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    time_spent_minutes = db.Column(db.Integer, nullable=True)

    step = db.relationship("ChecklistStep")

    def satisfies(self, step) -> bool:
        """A worker timestamp, plus a QA timestamp when the step needs one."""
        if self.completed_at is None:
            return False
        return not step.requires_qa or self.qa_checked_at is not None

    def to_dict(self):
        return {
            "id": self.id,
            "system_checklist_id": self.system_checklist_id,
            "step_id": self.step_id,
            "completed_by": self.completed_by,
            "completed_at": iso(self.completed_at),
            "qa_checked_by": self.qa_checked_by,
            "qa_checked_at": iso(self.qa_checked_at),
            "notes": self.notes,
            "time_spent_minutes": self.time_spent_minutes,
        }
