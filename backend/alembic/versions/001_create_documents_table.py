"""Create documents table

Revision ID: 001
Revises: None
Create Date: 2026-10-16 00:00:00.000000+00:00

What:  Creates the `documents` table backing SqlDocumentStore: one row per
       (collection, id) with a JSON body and a write version.
Rollback: downgrade() drops the table (all documents are lost).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "documents",
        sa.Column(
            "collection",
            sa.String(64),
            nullable=False,
            comment="Collection name, e.g. users, explore, messages",
        ),
        sa.Column(
            "id",
            sa.String(255),
            nullable=False,
            comment="Document id, unique within its collection",
        ),
        sa.Column(
            "data",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=False,
        ),
        sa.Column(
            "version",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("1"),
            comment="Incremented on every write; polled by subscriptions",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        # Composite key doubles as the uniqueness constraint for explicit ids
        sa.PrimaryKeyConstraint("collection", "id"),
    )

    op.create_index(
        "idx_documents_collection_created_at",
        "documents",
        ["collection", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("idx_documents_collection_created_at", table_name="documents")
    op.drop_table("documents")
