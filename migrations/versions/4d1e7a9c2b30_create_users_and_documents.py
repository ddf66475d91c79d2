"""create users and documents

Revision ID: 4d1e7a9c2b30
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = "4d1e7a9c2b30"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    existing_tables = set(inspect(bind).get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("email", sa.String(length=320), nullable=False),
            sa.Column("role", sa.String(length=16), nullable=False),
            sa.Column("drop_off_location", sa.String(length=255), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.current_timestamp()),
            sa.UniqueConstraint("email", name="uq_users_email"),
        )

    if "documents" not in existing_tables:
        op.create_table(
            "documents",
            sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("doc_type", sa.String(length=128), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("workflow", sa.String(length=8), nullable=False),
            sa.Column("document_status", sa.String(length=16), nullable=True),
            sa.Column("tracking_status", sa.String(length=32), nullable=True),
            sa.Column("status", sa.String(length=64), nullable=False),
            sa.Column("created_by", sa.String(length=320), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("recipient", sa.String(length=320), nullable=True),
            sa.Column("rejection_reason", sa.Text(), nullable=True),
            sa.Column("current_step_index", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("approval_steps", sa.JSON(), nullable=False),
            sa.Column("action_history", sa.JSON(), nullable=False),
            sa.Column("revision_data", sa.JSON(), nullable=True),
            sa.Column("chain_root_id", sa.String(length=64), nullable=False),
            sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        )
        op.create_index("idx_documents_created_by", "documents", ["created_by"])
        op.create_index("idx_documents_recipient", "documents", ["recipient"])
        op.create_index("idx_documents_chain_root", "documents", ["chain_root_id"])


def downgrade() -> None:
    op.drop_index("idx_documents_chain_root", table_name="documents")
    op.drop_index("idx_documents_recipient", table_name="documents")
    op.drop_index("idx_documents_created_by", table_name="documents")
    op.drop_table("documents")
    op.drop_table("users")
