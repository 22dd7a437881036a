"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-18

Creates the portrait store tables:
- portraits
- job_status
- job_unpublished_ids

The SQLite FTS5 search table is created at runtime by init_db(); server
databases use the Elasticsearch search backend.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Portraits table
    op.create_table(
        "portraits",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=False),
        sa.Column("username", sa.String(255), nullable=False),
        sa.Column("avatar_reference", sa.String(512), nullable=True),
        sa.Column("profile_link", sa.String(512), nullable=False),
        sa.Column("is_published", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("owner_address", sa.String(42), nullable=True),
        sa.Column(
            "last_checked_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_index("idx_portraits_username", "portraits", ["username"])
    op.create_index("idx_portraits_published", "portraits", ["is_published", "id"])

    # Fetch job status table
    op.create_table(
        "job_status",
        sa.Column("job_name", sa.String(64), primary_key=True),
        sa.Column("last_run_timestamp", sa.DateTime, nullable=True),
        sa.Column(
            "last_run_status",
            sa.Enum("running", "success", "error", name="fetch_run_status_enum"),
            nullable=True,
        ),
        sa.Column("last_run_error", sa.Text, nullable=True),
        sa.Column("highest_id_processed", sa.BigInteger, nullable=False, server_default="0"),
    )

    # Checkpoint unpublished ids
    op.create_table(
        "job_unpublished_ids",
        sa.Column(
            "job_name",
            sa.String(64),
            sa.ForeignKey("job_status.job_name", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("portrait_id", sa.BigInteger, primary_key=True, autoincrement=False),
    )


def downgrade() -> None:
    op.drop_table("job_unpublished_ids")
    op.drop_table("job_status")
    op.drop_index("idx_portraits_published", table_name="portraits")
    op.drop_index("idx_portraits_username", table_name="portraits")
    op.drop_table("portraits")
    sa.Enum(name="fetch_run_status_enum").drop(op.get_bind(), checkfirst=True)
