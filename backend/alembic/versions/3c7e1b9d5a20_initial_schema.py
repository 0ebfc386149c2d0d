"""initial schema

Revision ID: 3c7e1b9d5a20
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3c7e1b9d5a20"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.String(length=26), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "xero_credentials",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.String(length=255), nullable=True),
        sa.Column("client_secret", sa.String(length=255), nullable=True),
        sa.Column("scope", sa.Text(), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=True),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.String(length=26), nullable=True),
        sa.Column("tenant_id", sa.String(length=36), nullable=True),
        sa.Column("tenant_name", sa.String(length=255), nullable=True),
        sa.Column("tenant_type", sa.String(length=50), nullable=True),
        sa.Column("created_at", sa.String(length=26), nullable=True),
        sa.Column("updated_at", sa.String(length=26), nullable=True),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("xero_credentials", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_xero_credentials_company_id"), ["company_id"], unique=True)

    op.create_table(
        "staged_transactions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("bank_account", sa.String(length=255), nullable=False),
        sa.Column("bank_account_number", sa.String(length=100), nullable=False),
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("payee", sa.String(length=255), nullable=False),
        sa.Column("particulars", sa.String(length=255), nullable=True),
        sa.Column("spent", sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column("received", sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column("tax", sa.String(length=50), nullable=True),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("account_code", sa.String(length=20), nullable=True),
        sa.Column("account_name", sa.String(length=255), nullable=True),
        sa.Column("xero_bank_transaction_id", sa.String(length=36), nullable=True),
        sa.Column("imported_at", sa.String(length=26), nullable=True),
        sa.Column("updated_at", sa.String(length=26), nullable=True),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("staged_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_staged_transactions_company_status", ["company_id", "status"], unique=False)
        batch_op.create_index(
            "ix_staged_transactions_dedup",
            ["company_id", "bank_account_number", "date", "payee"],
            unique=False,
        )


def downgrade() -> None:
    """Downgrade schema."""
    with op.batch_alter_table("staged_transactions", schema=None) as batch_op:
        batch_op.drop_index("ix_staged_transactions_dedup")
        batch_op.drop_index("ix_staged_transactions_company_status")

    op.drop_table("staged_transactions")

    with op.batch_alter_table("xero_credentials", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_xero_credentials_company_id"))

    op.drop_table("xero_credentials")
    op.drop_table("companies")
