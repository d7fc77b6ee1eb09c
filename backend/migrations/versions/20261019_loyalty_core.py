"""Customers, points ledger, memberships and seat sessions

Revision ID: 20261019_loyalty_core
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_loyalty_core"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("display_name", sa.String(128), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("points_balance", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_customers_email"),
        sa.CheckConstraint("points_balance >= 0", name="ck_customers_points_non_negative"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "points_settings",
        sa.Column("id", sa.String(16), nullable=False),
        sa.Column("regular_earn_rate", sa.Integer(), nullable=False, server_default=sa.text("50")),
        sa.Column("member_earn_rate", sa.Integer(), nullable=False, server_default=sa.text("40")),
        sa.Column("points_per_yen", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "points_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("order_ref", sa.String(64), nullable=True),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("points_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_points_transactions_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_points_transactions_order_ref", ["order_ref"], unique=False)
        batch_op.create_index("ix_points_transactions_type", ["type"], unique=False)
        batch_op.create_index("ix_points_transactions_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_points_txns_customer_created", ["customer_id", "created_at"], unique=False)

    op.create_table(
        "membership_plans",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("hours_included", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("overage_rate", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("points_on_purchase", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("earn_rate_denominator", sa.Integer(), nullable=False, server_default=sa.text("40")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_membership_plans_name"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("membership_plans", schema=None) as batch_op:
        batch_op.create_index("ix_membership_plans_is_active", ["is_active"], unique=False)

    op.create_table(
        "customer_memberships",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("plan_id", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("hours_used", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("carried_over_hours", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("auto_renew", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(16), nullable=False, server_default="ACTIVE"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.ForeignKeyConstraint(["plan_id"], ["membership_plans.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("customer_memberships", schema=None) as batch_op:
        batch_op.create_index("ix_customer_memberships_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_customer_memberships_plan_id", ["plan_id"], unique=False)
        batch_op.create_index("ix_customer_memberships_status", ["status"], unique=False)
        batch_op.create_index("ix_memberships_customer_status", ["customer_id", "status"], unique=False)
        batch_op.create_index("ix_memberships_status_end", ["status", "end_date"], unique=False)

    op.create_table(
        "seat_sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("seat_label", sa.String(64), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("order_ref", sa.String(64), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("billed_minutes", sa.Integer(), nullable=True),
        sa.Column("billed_charge", sa.Integer(), nullable=True),
        sa.Column("rate_applied", sa.String(16), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("seat_sessions", schema=None) as batch_op:
        batch_op.create_index("ix_seat_sessions_seat_label", ["seat_label"], unique=False)
        batch_op.create_index("ix_seat_sessions_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_seat_sessions_order_ref", ["order_ref"], unique=False)
        batch_op.create_index("ix_seat_sessions_seat_closed", ["seat_label", "closed_at"], unique=False)

    op.create_table(
        "membership_usages",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("membership_id", sa.Integer(), nullable=False),
        sa.Column("seat_session_id", sa.Integer(), nullable=True),
        sa.Column("hours_used", sa.Float(), nullable=False),
        sa.Column("overage_hours", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("overage_charge", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["membership_id"], ["customer_memberships.id"]),
        sa.ForeignKeyConstraint(["seat_session_id"], ["seat_sessions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("membership_usages", schema=None) as batch_op:
        batch_op.create_index("ix_membership_usages_membership_id", ["membership_id"], unique=False)
        batch_op.create_index("ix_membership_usages_seat_session_id", ["seat_session_id"], unique=False)
        batch_op.create_index("ix_membership_usages_membership_created", ["membership_id", "created_at"], unique=False)


def downgrade():
    op.drop_table("membership_usages")
    op.drop_table("seat_sessions")
    op.drop_table("customer_memberships")
    op.drop_table("membership_plans")
    op.drop_table("points_transactions")
    op.drop_table("points_settings")
    op.drop_table("customers")
