"""owner foreign keys, product and icp links, cadences

Revision ID: 202610190002
Revises: 202610190001
Create Date: 2026-10-19 15:00:00
"""

from __future__ import annotations

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610190002"
down_revision: str | None = "202610190001"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None

OWNED_TABLES = (
    "crm_organization",
    "crm_lead",
    "crm_contact",
    "crm_partner",
    "crm_deal",
    "crm_activity",
    "catalog_icp",
)

ICP_LINK_TABLES = (
    ("crm_lead_icp", "lead_id", "crm_lead"),
    ("crm_organization_icp", "organization_id", "crm_organization"),
)


def _icp_link_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("icp_id", sa.String(length=36), nullable=False),
        sa.Column("match_score", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("icp_fit_status", sa.String(length=16), nullable=True),
        sa.Column("real_decision_maker", sa.String(length=32), nullable=True),
        sa.Column("real_decision_maker_other", sa.String(length=100), nullable=True),
        sa.Column("perceived_urgency", sa.JSON(), nullable=True),
        sa.Column("business_moment", sa.JSON(), nullable=True),
        sa.Column("current_platforms", sa.JSON(), nullable=True),
        sa.Column("fragmentation_level", sa.Integer(), nullable=True),
        sa.Column("main_declared_pain", sa.String(length=32), nullable=True),
        sa.Column("strategic_desire", sa.String(length=32), nullable=True),
        sa.Column("perceived_technical_complexity", sa.Integer(), nullable=True),
        sa.Column("purchase_trigger", sa.String(length=500), nullable=True),
        sa.Column("non_closing_reason", sa.String(length=32), nullable=True),
        sa.Column("estimated_decision_time", sa.String(length=32), nullable=True),
        sa.Column("expansion_potential", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    for table in OWNED_TABLES:
        with op.batch_alter_table(table) as batch_op:
            batch_op.create_foreign_key(f"fk_{table}_owner_id", "crm_user", ["owner_id"], ["id"])

    op.create_table(
        "crm_lead_product",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("lead_id", sa.String(length=36), nullable=False),
        sa.Column("product_id", sa.String(length=36), nullable=False),
        sa.Column("interest_level", sa.String(length=16), nullable=True),
        sa.Column("estimated_value", sa.Numeric(18, 2), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["lead_id"], ["crm_lead.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["catalog_product.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("lead_id", "product_id", name="uq_crm_lead_product"),
    )
    op.create_index("ix_crm_lead_product_product_id", "crm_lead_product", ["product_id"])

    op.create_table(
        "crm_organization_product",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organization_id", sa.String(length=36), nullable=False),
        sa.Column("product_id", sa.String(length=36), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="interested"),
        sa.Column("first_purchase_at", sa.Date(), nullable=True),
        sa.Column("last_purchase_at", sa.Date(), nullable=True),
        sa.Column("total_purchases", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_revenue", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["organization_id"], ["crm_organization.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["catalog_product.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organization_id", "product_id", name="uq_crm_organization_product"),
    )
    op.create_index("ix_crm_organization_product_product_id", "crm_organization_product", ["product_id"])

    op.create_table(
        "crm_deal_product",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("deal_id", sa.String(length=36), nullable=False),
        sa.Column("product_id", sa.String(length=36), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("unit_price", sa.Numeric(18, 2), nullable=False),
        sa.Column("discount", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("total_value", sa.Numeric(18, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("delivery_time", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["deal_id"], ["crm_deal.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["catalog_product.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("deal_id", "product_id", name="uq_crm_deal_product"),
    )
    op.create_index("ix_crm_deal_product_product_id", "crm_deal_product", ["product_id"])

    op.create_table(
        "crm_partner_product",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("partner_id", sa.String(length=36), nullable=False),
        sa.Column("product_id", sa.String(length=36), nullable=False),
        sa.Column("expertise_level", sa.String(length=16), nullable=True),
        sa.Column("can_refer", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("can_deliver", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("commission_type", sa.String(length=16), nullable=True),
        sa.Column("commission_value", sa.Numeric(18, 2), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["partner_id"], ["crm_partner.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["catalog_product.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("partner_id", "product_id", name="uq_crm_partner_product"),
    )
    op.create_index("ix_crm_partner_product_product_id", "crm_partner_product", ["product_id"])

    for table, parent_column, parent_table in ICP_LINK_TABLES:
        op.create_table(
            table,
            *_icp_link_columns(),
            sa.Column(parent_column, sa.String(length=36), nullable=False),
            sa.ForeignKeyConstraint(["icp_id"], ["catalog_icp.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint([parent_column], [f"{parent_table}.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(parent_column, "icp_id", name=f"uq_{table}"),
        )
        op.create_index(f"ix_{table}_icp_id", table, ["icp_id"])

    op.create_table(
        "crm_cadence",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("slug", sa.String(length=50), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("objective", sa.Text(), nullable=True),
        sa.Column("duration_days", sa.Integer(), nullable=False, server_default="14"),
        sa.Column("icp_id", sa.String(length=36), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="draft"),
        sa.Column("owner_id", sa.String(length=36), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["icp_id"], ["catalog_icp.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["owner_id"], ["crm_user.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )
    op.create_index("ix_crm_cadence_icp_id", "crm_cadence", ["icp_id"])
    op.create_index("ix_crm_cadence_owner_id", "crm_cadence", ["owner_id"])

    op.create_table(
        "crm_cadence_step",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("cadence_id", sa.String(length=36), nullable=False),
        sa.Column("day_number", sa.Integer(), nullable=False),
        sa.Column("channel", sa.String(length=16), nullable=False),
        sa.Column("subject", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["cadence_id"], ["crm_cadence.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_cadence_step_cadence_id", "crm_cadence_step", ["cadence_id"])

    op.create_table(
        "crm_lead_cadence",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("lead_id", sa.String(length=36), nullable=False),
        sa.Column("cadence_id", sa.String(length=36), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("paused_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("owner_id", sa.String(length=36), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["lead_id"], ["crm_lead.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["cadence_id"], ["crm_cadence.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["owner_id"], ["crm_user.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("lead_id", "cadence_id", name="uq_crm_lead_cadence"),
    )
    op.create_index("ix_crm_lead_cadence_cadence_id", "crm_lead_cadence", ["cadence_id"])
    op.create_index("ix_crm_lead_cadence_owner_id", "crm_lead_cadence", ["owner_id"])

    op.create_table(
        "crm_lead_cadence_activity",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("lead_cadence_id", sa.String(length=36), nullable=False),
        sa.Column("cadence_step_id", sa.String(length=36), nullable=True),
        sa.Column("activity_id", sa.String(length=36), nullable=False),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.ForeignKeyConstraint(["lead_cadence_id"], ["crm_lead_cadence.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["cadence_step_id"], ["crm_cadence_step.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["activity_id"], ["crm_activity.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("activity_id"),
    )
    op.create_index("ix_crm_lead_cadence_activity_lead_cadence_id", "crm_lead_cadence_activity", ["lead_cadence_id"])


def downgrade() -> None:
    op.drop_index("ix_crm_lead_cadence_activity_lead_cadence_id", table_name="crm_lead_cadence_activity")
    op.drop_table("crm_lead_cadence_activity")
    op.drop_index("ix_crm_lead_cadence_owner_id", table_name="crm_lead_cadence")
    op.drop_index("ix_crm_lead_cadence_cadence_id", table_name="crm_lead_cadence")
    op.drop_table("crm_lead_cadence")
    op.drop_index("ix_crm_cadence_step_cadence_id", table_name="crm_cadence_step")
    op.drop_table("crm_cadence_step")
    op.drop_index("ix_crm_cadence_owner_id", table_name="crm_cadence")
    op.drop_index("ix_crm_cadence_icp_id", table_name="crm_cadence")
    op.drop_table("crm_cadence")
    for table, _parent_column, _parent_table in reversed(ICP_LINK_TABLES):
        op.drop_index(f"ix_{table}_icp_id", table_name=table)
        op.drop_table(table)
    for table in ("crm_partner_product", "crm_deal_product", "crm_organization_product", "crm_lead_product"):
        op.drop_index(f"ix_{table}_product_id", table_name=table)
        op.drop_table(table)
    for table in reversed(OWNED_TABLES):
        with op.batch_alter_table(table) as batch_op:
            batch_op.drop_constraint(f"fk_{table}_owner_id", type_="foreignkey")
