"""initial_workflow_schema

Create users, orders, system catalog, systems, checklist and activity tables.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _ts(name, nullable=True):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("first_name", sa.String(length=100), nullable=False),
            sa.Column("last_name", sa.String(length=100), nullable=False),
            sa.Column("role", sa.String(length=50), nullable=False, server_default="staff"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            _ts("created_at"),
            _ts("updated_at"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
            sa.CheckConstraint("role IN ('staff','manager','admin')", name="ck_users_role"),
        )

    if "orders" not in existing_tables:
        op.create_table(
            "orders",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("external_ref", sa.String(length=100), nullable=False),
            sa.Column("customer_name", sa.String(length=255), nullable=False),
            sa.Column("customer_email", sa.String(length=255), nullable=False),
            sa.Column("customer_department", sa.String(length=255), nullable=True),
            sa.Column("status", sa.String(length=50), nullable=False, server_default="ordered"),
            sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("assigned_to", sa.Integer(), nullable=True),
            _ts("order_date", nullable=False),
            sa.Column("delivery_method", sa.String(length=50), nullable=True),
            sa.Column("delivery_address", sa.Text(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("tracking_number", sa.String(length=100), nullable=True),
            sa.Column("delivery_confirmation", sa.String(length=255), nullable=True),
            _ts("completed_at"),
            _ts("created_at"),
            _ts("updated_at"),
            sa.ForeignKeyConstraint(["assigned_to"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("external_ref"),
            sa.CheckConstraint(
                "status IN ('ordered','in_progress','qa_review','ready_to_deliver','complete')",
                name="ck_orders_status",
            ),
            sa.CheckConstraint(
                "delivery_method IS NULL OR delivery_method IN ('delivery','shipping')",
                name="ck_orders_delivery_method",
            ),
            sa.CheckConstraint("priority BETWEEN 0 AND 5", name="ck_orders_priority"),
        )
        op.create_index("idx_orders_status", "orders", ["status"])
        op.create_index("ix_orders_assigned_to", "orders", ["assigned_to"])

    if "system_types" not in existing_tables:
        op.create_table(
            "system_types",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("code", sa.String(length=50), nullable=False),
            sa.Column("requires_imaging", sa.Boolean(), nullable=False, server_default=sa.false()),
            _ts("created_at"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("code"),
        )

    if "systems" not in existing_tables:
        op.create_table(
            "systems",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("order_id", sa.Integer(), nullable=False),
            sa.Column("system_type_id", sa.Integer(), nullable=False),
            sa.Column("serial_number", sa.String(length=100), nullable=True),
            sa.Column("asset_name", sa.String(length=100), nullable=True),
            sa.Column("status", sa.String(length=50), nullable=False, server_default="pending"),
            sa.Column("assigned_to", sa.Integer(), nullable=True),
            sa.Column("queue_position", sa.Integer(), nullable=True),
            sa.Column("skip_queue", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("agiloft_asset_id", sa.String(length=100), nullable=True),
            sa.Column("inflow_item_id", sa.String(length=100), nullable=True),
            _ts("created_at"),
            _ts("updated_at"),
            sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["system_type_id"], ["system_types.id"]),
            sa.ForeignKeyConstraint(["assigned_to"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "status IN ('pending','in_progress','complete')", name="ck_systems_status",
            ),
        )
        op.create_index("ix_systems_order_id", "systems", ["order_id"])
        op.create_index("idx_systems_status", "systems", ["status"])

    if "checklist_templates" not in existing_tables:
        op.create_table(
            "checklist_templates",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("system_type_id", sa.Integer(), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            _ts("created_at"),
            sa.ForeignKeyConstraint(["system_type_id"], ["system_types.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_checklist_templates_system_type_id", "checklist_templates",
                        ["system_type_id"])

    if "checklist_steps" not in existing_tables:
        op.create_table(
            "checklist_steps",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("template_id", sa.Integer(), nullable=False),
            sa.Column("step_order", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("requires_qa", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("estimated_minutes", sa.Integer(), nullable=False, server_default="5"),
            sa.Column("step_weight", sa.Numeric(3, 2), nullable=False, server_default="1.0"),
            _ts("created_at"),
            sa.ForeignKeyConstraint(["template_id"], ["checklist_templates.id"],
                                    ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_checklist_steps_template_id", "checklist_steps", ["template_id"])

    if "system_checklists" not in existing_tables:
        op.create_table(
            "system_checklists",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("system_id", sa.Integer(), nullable=False),
            sa.Column("template_id", sa.Integer(), nullable=False),
            _ts("created_at"),
            sa.ForeignKeyConstraint(["system_id"], ["systems.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["template_id"], ["checklist_templates.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("system_id"),
        )

    if "checklist_completions" not in existing_tables:
        op.create_table(
            "checklist_completions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("system_checklist_id", sa.Integer(), nullable=False),
            sa.Column("step_id", sa.Integer(), nullable=False),
            sa.Column("completed_by", sa.Integer(), nullable=True),
            _ts("completed_at"),
            sa.Column("qa_checked_by", sa.Integer(), nullable=True),
            _ts("qa_checked_at"),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("time_spent_minutes", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["system_checklist_id"], ["system_checklists.id"],
                                    ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["step_id"], ["checklist_steps.id"]),
            sa.ForeignKeyConstraint(["completed_by"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["qa_checked_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("system_checklist_id", "step_id",
                                name="uq_completion_checklist_step"),
        )
        op.create_index("ix_checklist_completions_system_checklist_id",
                        "checklist_completions", ["system_checklist_id"])

    if "activity_logs" not in existing_tables:
        op.create_table(
            "activity_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("order_id", sa.Integer(), nullable=True),
            sa.Column("system_id", sa.Integer(), nullable=True),
            sa.Column("action", sa.String(length=100), nullable=False),
            sa.Column("details", sa.JSON(), nullable=True),
            _ts("created_at", nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["system_id"], ["systems.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_activity_logs_user", "activity_logs", ["user_id"])
        op.create_index("idx_activity_logs_order", "activity_logs", ["order_id"])
        op.create_index("idx_activity_logs_action", "activity_logs", ["action"])


def downgrade():
    for table in (
        "activity_logs",
        "checklist_completions",
        "system_checklists",
        "checklist_steps",
        "checklist_templates",
        "systems",
        "system_types",
        "orders",
        "users",
    ):
        op.drop_table(table)
