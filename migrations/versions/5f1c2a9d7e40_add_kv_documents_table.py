"""add_kv_documents_table

Create `kv_documents`, the key-value table holding the `projectTypes` and
`formVersions_<categoryId>` JSON documents with their revision counters.

Revision ID: 5f1c2a9d7e40
Revises:
Create Date: 2026-10-19 09:30:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5f1c2a9d7e40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "kv_documents" not in existing_tables:
        op.create_table(
            "kv_documents",
            sa.Column("key", sa.String(length=200), nullable=False),
            sa.Column("value", sa.Text(), nullable=False, server_default="null"),
            sa.Column("revision", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("key"),
        )


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    if "kv_documents" in set(inspector.get_table_names()):
        op.drop_table("kv_documents")
