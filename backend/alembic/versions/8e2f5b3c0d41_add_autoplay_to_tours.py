"""add autoplay to tours

Revision ID: 8e2f5b3c0d41
Revises: 7d1e4a2b9c30
Create Date: 2025-10-20 11:37:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "8e2f5b3c0d41"
down_revision: Union[str, None] = "7d1e4a2b9c30"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    with op.batch_alter_table("tours") as batch_op:
        batch_op.add_column(
            sa.Column("autoplay", sa.Boolean(), nullable=True, server_default=sa.false())
        )


def downgrade() -> None:
    with op.batch_alter_table("tours") as batch_op:
        batch_op.drop_column("autoplay")
