from alembic import op
import sqlalchemy as sa


revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("email", sa.String(255), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="CLIENTE"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_table(
        "branches",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("address", sa.String(500), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("name", name="uq_branch_name"),
    )
    op.create_table(
        "folio_counters",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("tipo", sa.String(20), nullable=False, index=True),
        sa.Column("next_seq", sa.Integer(), nullable=False, server_default="1"),
        sa.UniqueConstraint("tipo", name="uq_folio_counters_tipo"),
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("folio", sa.String(50), nullable=False, unique=True, index=True),
        sa.Column("status", sa.String(30), nullable=False, server_default="UNDER_REVIEW", index=True),
        sa.Column("total", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=False, index=True),
        sa.Column("branch_id", sa.Integer(), nullable=True, index=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(), nullable=True),
        sa.Column("ready_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"], ondelete="SET NULL"),
    )
    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("order_id", sa.Integer(), nullable=False, index=True),
        sa.Column("product_id", sa.Integer(), nullable=True, index=True),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=True),
        sa.Column("confirmed_quantity", sa.Integer(), nullable=True),
        sa.Column("subtotal", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        sa.CheckConstraint(
            "confirmed_quantity IS NULL OR (confirmed_quantity >= 0 AND confirmed_quantity <= quantity)",
            name="ck_order_items_confirmed_quantity",
        ),
    )

    op.create_table(
        "cash_express_config",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("service_days", sa.JSON(), nullable=False),
        sa.Column("start_time", sa.String(5), nullable=False),
        sa.Column("end_time", sa.String(5), nullable=False),
        sa.Column("holidays", sa.JSON(), nullable=False),
        sa.Column("non_working_day_message", sa.Text(), nullable=True),
        sa.Column("available_balance", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("daily_minimum_deposit", sa.Numeric(12, 2), nullable=False),
        sa.Column("max_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("commission_percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("id = 1", name="ck_cash_express_config_singleton"),
        sa.CheckConstraint("available_balance >= 0", name="ck_cash_express_config_balance_non_negative"),
    )
    op.create_table(
        "cash_express_bank_accounts",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("config_id", sa.Integer(), nullable=False),
        sa.Column("beneficiary_name", sa.String(255), nullable=False),
        sa.Column("bank_name", sa.String(100), nullable=False),
        sa.Column("account_number", sa.String(50), nullable=False),
        sa.Column("clabe", sa.String(18), nullable=True),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["config_id"], ["cash_express_config.id"], ondelete="CASCADE"),
    )
    op.create_table(
        "cash_express_requests",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("folio", sa.String(50), nullable=False, unique=True, index=True),
        sa.Column("status", sa.String(30), nullable=False, server_default="PENDIENTE", index=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("commission", sa.Numeric(10, 2), nullable=False),
        sa.Column("total_to_deposit", sa.Numeric(10, 2), nullable=False),
        sa.Column("sender_name", sa.String(255), nullable=True),
        sa.Column("sender_phone", sa.String(20), nullable=True),
        sa.Column("recipient_name", sa.String(255), nullable=True),
        sa.Column("recipient_phone", sa.String(20), nullable=True),
        sa.Column("relationship", sa.String(50), nullable=True),
        sa.Column("deposit_receipt", sa.Text(), nullable=True),
        sa.Column("signed_receipt", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("estimated_delivery_date", sa.DateTime(), nullable=True),
        sa.Column("receipt_sent_at", sa.DateTime(), nullable=True),
        sa.Column("deposit_validated_at", sa.DateTime(), nullable=True),
        sa.Column("available_from", sa.DateTime(), nullable=True),
        sa.Column("delivered_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=False, index=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
    )
    op.create_table(
        "cash_express_balance_history",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("previous_balance", sa.Numeric(12, 2), nullable=False),
        sa.Column("new_balance", sa.Numeric(12, 2), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=False, index=True),
        sa.Column("config_id", sa.Integer(), nullable=False),
        sa.Column("request_id", sa.Integer(), nullable=True, index=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["config_id"], ["cash_express_config.id"]),
        sa.ForeignKeyConstraint(["request_id"], ["cash_express_requests.id"], ondelete="SET NULL"),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.String(500), nullable=False),
        sa.Column("action", sa.String(500), nullable=True),
        sa.Column("status", sa.String(30), nullable=False),
        sa.Column("previous_status", sa.String(30), nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_notifications_user_read", "notifications", ["user_id", "read"])


def downgrade() -> None:
    op.drop_index("ix_notifications_user_read", table_name="notifications")
    op.drop_table("notifications")
    op.drop_table("cash_express_balance_history")
    op.drop_table("cash_express_requests")
    op.drop_table("cash_express_bank_accounts")
    op.drop_table("cash_express_config")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("folio_counters")
    op.drop_table("branches")
    op.drop_table("users")
