"""add customer files table

Revision ID: 7d2e4b1c9a30
Revises: 3f1a9c2e7b10
Create Date: 2025-02-10 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "7d2e4b1c9a30"
down_revision = "3f1a9c2e7b10"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "customer_files",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("file_type", sa.String(length=120), nullable=True),
        sa.Column("file_size", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("file_path", sa.String(length=512), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("uploaded_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_customer_files_customer_id", "customer_files", ["customer_id"])
    op.create_index("ix_customer_files_year", "customer_files", ["year"])


def downgrade():
    op.drop_index("ix_customer_files_year", table_name="customer_files")
    op.drop_index("ix_customer_files_customer_id", table_name="customer_files")
    op.drop_table("customer_files")
