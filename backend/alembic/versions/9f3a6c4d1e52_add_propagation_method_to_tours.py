"""add propagation_method to tours

Revision ID: 9f3a6c4d1e52
Revises: 8e2f5b3c0d41
Create Date: 2025-10-20 13:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "9f3a6c4d1e52"
down_revision: Union[str, None] = "8e2f5b3c0d41"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    with op.batch_alter_table("tours") as batch_op:
        batch_op.add_column(
            sa.Column(
                "propagation_method",
                sa.Enum("none", "all", name="tour_propagation_method_enum", native_enum=False),
                nullable=True,
            )
        )
    # Existing translatable tours were already shown on every site.
    op.execute(
        "UPDATE tours SET propagation_method = CASE WHEN translatable THEN 'all' ELSE 'none' END"
    )


def downgrade() -> None:
    with op.batch_alter_table("tours") as batch_op:
        batch_op.drop_column("propagation_method")
