"""installation session entries

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:40:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "installation_session_entries",
        sa.Column("session_id", sa.String(length=64), nullable=False),
        sa.Column("key", sa.String(length=32), nullable=False),
        sa.Column("value_text", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("session_id", "key", name="pk_installation_session_entries"),
    )
    op.create_index(
        "ix_installation_session_entries_updated_at",
        "installation_session_entries",
        ["updated_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_installation_session_entries_updated_at", table_name="installation_session_entries")
    op.drop_table("installation_session_entries")
