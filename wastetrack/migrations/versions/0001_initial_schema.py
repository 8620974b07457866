"""Initial schema: shipments, shipment_stages, user_roles, audit_logs, notifications

Revision ID: 0001
Revises: None
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all core tables."""

    # --- shipments (no FK deps) ---
    op.create_table(
        "shipments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("shipment_number", sa.String(32), nullable=False),
        sa.Column("generator_company_id", sa.Uuid(), nullable=False),
        sa.Column("transporter_company_id", sa.Uuid(), nullable=False),
        sa.Column("recycler_company_id", sa.Uuid(), nullable=False),
        sa.Column("driver_id", sa.Uuid(), nullable=True),
        sa.Column("waste_type_id", sa.Uuid(), nullable=False),
        sa.Column("quantity", sa.Numeric(12, 3), nullable=False),
        sa.Column("unit", sa.String(20), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="created"),
        sa.Column("stage_entered_at", sa.DateTime(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("departure_time", sa.DateTime(), nullable=True),
        sa.Column("arrival_time", sa.DateTime(), nullable=True),
        sa.Column("sorting_start_time", sa.DateTime(), nullable=True),
        sa.Column("sorting_end_time", sa.DateTime(), nullable=True),
        sa.Column("recycling_start_time", sa.DateTime(), nullable=True),
        sa.Column("recycling_end_time", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("current_latitude", sa.Float(), nullable=True),
        sa.Column("current_longitude", sa.Float(), nullable=True),
        sa.Column("location_captured_at", sa.DateTime(), nullable=True),
        sa.Column("disposal_report", sa.Text(), nullable=True),
        sa.Column("recycling_report", sa.Text(), nullable=True),
        sa.Column("final_report", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_shipments"),
        sa.CheckConstraint(
            "status IN ('created', 'in_transit', 'delivered', 'sorting', 'recycling', 'completed')",
            name="ck_shipments_status",
        ),
    )
    op.create_index("ix_shipments_shipment_number", "shipments", ["shipment_number"], unique=True)
    op.create_index("ix_shipments_generator_company_id", "shipments", ["generator_company_id"])
    op.create_index("ix_shipments_transporter_company_id", "shipments", ["transporter_company_id"])
    op.create_index("ix_shipments_recycler_company_id", "shipments", ["recycler_company_id"])
    op.create_index("ix_shipments_driver_id", "shipments", ["driver_id"])
    op.create_index("ix_shipments_status", "shipments", ["status"])
    op.create_index("ix_shipments_stage_entered_at", "shipments", ["stage_entered_at"])
    # Dwell scan: WHERE status = ? AND stage_entered_at < ?
    op.create_index("ix_shipments_status_stage_entered_at", "shipments", ["status", "stage_entered_at"])

    # --- shipment_stages (FK -> shipments), append-only ---
    op.create_table(
        "shipment_stages",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("shipment_id", sa.Uuid(), nullable=False),
        sa.Column("stage", sa.String(32), nullable=False),
        sa.Column("from_status", sa.String(20), nullable=True),
        sa.Column("to_status", sa.String(20), nullable=False),
        sa.Column("trigger", sa.String(10), nullable=False, server_default="human"),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_shipment_stages"),
        sa.ForeignKeyConstraint(
            ["shipment_id"],
            ["shipments.id"],
            name="fk_shipment_stages_shipment_id_shipments",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_shipment_stages_shipment_id", "shipment_stages", ["shipment_id"])
    op.create_index("ix_shipment_stages_timestamp", "shipment_stages", ["timestamp"])
    op.create_index("ix_shipment_stages_user_id", "shipment_stages", ["user_id"])

    # --- user_roles (no FK deps) ---
    op.create_table(
        "user_roles",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("role", sa.String(50), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_user_roles"),
        sa.UniqueConstraint("user_id", "role", name="uq_user_roles_user_id_role"),
    )
    op.create_index("ix_user_roles_user_id", "user_roles", ["user_id"])

    # --- audit_logs (no FK deps, immutable) ---
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("trigger", sa.String(10), nullable=False, server_default="human"),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("resource_type", sa.String(100), nullable=False),
        sa.Column("resource_id", sa.Uuid(), nullable=True),
        sa.Column("old_values", sa.JSON(), nullable=True),
        sa.Column("new_values", sa.JSON(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("severity", sa.String(20), nullable=False, server_default="info"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_audit_logs"),
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_trigger", "audit_logs", ["trigger"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_resource_type", "audit_logs", ["resource_type"])
    op.create_index("ix_audit_logs_resource_id", "audit_logs", ["resource_id"])
    op.create_index("ix_audit_logs_severity", "audit_logs", ["severity"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])

    # --- notifications (FK -> shipments) ---
    op.create_table(
        "notifications",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("shipment_id", sa.Uuid(), nullable=False),
        sa.Column("recipient_company_id", sa.Uuid(), nullable=False),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_notifications"),
        sa.ForeignKeyConstraint(
            ["shipment_id"],
            ["shipments.id"],
            name="fk_notifications_shipment_id_shipments",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_notifications_shipment_id", "notifications", ["shipment_id"])
    op.create_index("ix_notifications_recipient_company_id", "notifications", ["recipient_company_id"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])


def downgrade() -> None:
    """Drop all core tables in reverse dependency order."""
    op.drop_table("notifications")
    op.drop_table("audit_logs")
    op.drop_table("user_roles")
    op.drop_table("shipment_stages")
    op.drop_table("shipments")
