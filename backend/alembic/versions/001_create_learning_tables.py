"""create categories, transactions, rules and corrections

Revision ID: 001
Revises: 
Create Date: 2026-10-17 09:00:00
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "categories",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("color", sa.String(7), nullable=True),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("date", sa.Date(), nullable=False, index=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("raw_description", sa.Text(), nullable=False),
        sa.Column("category_id", sa.String(36), sa.ForeignKey("categories.id"), nullable=True),
        sa.Column("categorisation_source", sa.String(20), nullable=True),
        sa.Column("categorisation_confidence", sa.Float(), nullable=True),
        sa.Column("import_session_id", sa.String(36), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("idx_transaction_category", "transactions", ["category_id"])

    op.create_table(
        "category_rules",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("pattern", sa.Text(), nullable=False),
        sa.Column("category_id", sa.String(36), sa.ForeignKey("categories.id"), nullable=False, index=True),
        sa.Column("match_type", sa.Enum("exact", "contains", "regex", name="matchtype"), nullable=False, index=True),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("provenance_pending", sa.Boolean(), nullable=False, server_default=sa.false(), index=True),
        sa.Column("pending_correction_ids", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "category_corrections",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("original_category_id", sa.String(36), sa.ForeignKey("categories.id"), nullable=True),
        sa.Column("corrected_category_id", sa.String(36), sa.ForeignKey("categories.id"), nullable=False),
        sa.Column("original_source", sa.String(20), nullable=True),
        sa.Column("import_session_id", sa.String(36), nullable=True),
        sa.Column("created_rule_id", sa.String(36), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("idx_correction_category", "category_corrections", ["corrected_category_id"])
    op.create_index("idx_correction_created_at", "category_corrections", ["created_at"])
    op.create_index("idx_correction_rule", "category_corrections", ["created_rule_id"])


def downgrade() -> None:
    op.drop_table("category_corrections")
    op.drop_table("category_rules")
    op.drop_table("transactions")
    op.drop_table("categories")
