"""transactions with parent/child linking and import logs

Revision ID: 001
Revises: 
Create Date: 2025-10-24 09:00:00
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("hash", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("date", sa.DateTime(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("merchant", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("order_id", sa.String(64), nullable=True),
        sa.Column("category_id", sa.String(36), nullable=True),
        sa.Column("account_id", sa.String(36), nullable=True),
        sa.Column("is_income", sa.Boolean(), nullable=False),
        sa.Column(
            "parent_transaction_id",
            sa.String(36),
            sa.ForeignKey("transactions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("link_type", sa.Enum("auto", "manual", name="linktype"), nullable=True),
        sa.Column("link_confidence", sa.Integer(), nullable=True),
        sa.Column("link_metadata", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "link_confidence IS NULL OR (link_confidence >= 0 AND link_confidence <= 100)",
            name="ck_transaction_link_confidence",
        ),
    )
    op.create_index("ix_transactions_hash", "transactions", ["hash"], unique=True)
    op.create_index("ix_transactions_user_id", "transactions", ["user_id"])
    op.create_index("ix_transactions_date", "transactions", ["date"])
    op.create_index("idx_transaction_date_user", "transactions", ["date", "user_id"])
    op.create_index("idx_transaction_parent", "transactions", ["parent_transaction_id"])

    op.create_table(
        "import_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("source", sa.String(50), nullable=False),
        sa.Column(
            "status",
            sa.Enum("processing", "completed", "failed", name="importstatus"),
            nullable=False,
        ),
        sa.Column("transactions_imported", sa.Integer(), nullable=False),
        sa.Column("transactions_skipped", sa.Integer(), nullable=False),
        sa.Column("transactions_auto_linked", sa.Integer(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_import_logs_user_id", "import_logs", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_import_logs_user_id", table_name="import_logs")
    op.drop_table("import_logs")
    op.drop_index("idx_transaction_parent", table_name="transactions")
    op.drop_index("idx_transaction_date_user", table_name="transactions")
    op.drop_index("ix_transactions_date", table_name="transactions")
    op.drop_index("ix_transactions_user_id", table_name="transactions")
    op.drop_index("ix_transactions_hash", table_name="transactions")
    op.drop_table("transactions")
    sa.Enum(name="importstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="linktype").drop(op.get_bind(), checkfirst=True)
