"""delivery queue order

Revision ID: 8f3d6b1a7e25
Revises: 5c1e8a2f9b4d
Create Date: 2026-10-19 15:40:02.551930

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "8f3d6b1a7e25"
down_revision: Union[str, Sequence[str], None] = "5c1e8a2f9b4d"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _recreate() -> str:
    # SQLite cannot ADD COLUMN with a CURRENT_TIMESTAMP default.
    return "always" if op.get_context().dialect.name == "sqlite" else "auto"


def upgrade() -> None:
    """Add claim ordering and the transient attempt count to queued tasks."""
    with op.batch_alter_table("issue_delivery_queue", recreate=_recreate()) as batch_op:
        batch_op.add_column(
            sa.Column(
                "enqueued_at",
                sa.DateTime(timezone=True),
                server_default=sa.func.now(),
                nullable=False,
            )
        )
        batch_op.add_column(
            sa.Column("attempts", sa.Integer(), server_default=sa.text("0"), nullable=False)
        )
        batch_op.create_index("ix_issue_delivery_queue_enqueued_at", ["enqueued_at"])


def downgrade() -> None:
    """Remove claim ordering from queued tasks."""
    with op.batch_alter_table("issue_delivery_queue", recreate=_recreate()) as batch_op:
        batch_op.drop_index("ix_issue_delivery_queue_enqueued_at")
        batch_op.drop_column("attempts")
        batch_op.drop_column("enqueued_at")
