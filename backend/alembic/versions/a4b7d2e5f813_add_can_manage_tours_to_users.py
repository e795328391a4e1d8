"""add can_manage_tours to users

Revision ID: a4b7d2e5f813
Revises: 9f3a6c4d1e52
Create Date: 2025-11-03 09:15:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "a4b7d2e5f813"
down_revision: Union[str, None] = "9f3a6c4d1e52"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    with op.batch_alter_table("users") as batch_op:
        batch_op.add_column(
            sa.Column("can_manage_tours", sa.Boolean(), nullable=False, server_default=sa.false())
        )


def downgrade() -> None:
    with op.batch_alter_table("users") as batch_op:
        batch_op.drop_column("can_manage_tours")
