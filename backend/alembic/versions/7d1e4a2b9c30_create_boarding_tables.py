"""create boarding tables

Revision ID: 7d1e4a2b9c30
Revises:
Create Date: 2025-01-01 00:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "7d1e4a2b9c30"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "sites",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("handle", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("language", sa.String(length=12), nullable=False),
        sa.Column("primary", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index(op.f("ix_sites_id"), "sites", ["id"], unique=False)
    op.create_index(op.f("ix_sites_handle"), "sites", ["handle"], unique=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=255), nullable=True),
        sa.Column("last_name", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        *_timestamps(),
    )
    op.create_index(op.f("ix_users_id"), "users", ["id"], unique=False)
    op.create_index(op.f("ix_users_username"), "users", ["username"], unique=True)

    op.create_table(
        "user_groups",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("handle", sa.String(length=64), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        *_timestamps(),
    )
    op.create_index(op.f("ix_user_groups_id"), "user_groups", ["id"], unique=False)

    op.create_table(
        "users_usergroups",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("user_groups.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.UniqueConstraint("user_id", "group_id", name="uq_users_usergroups_user_group"),
    )
    op.create_index(op.f("ix_users_usergroups_id"), "users_usergroups", ["id"], unique=False)
    op.create_index(op.f("ix_users_usergroups_user_id"), "users_usergroups", ["user_id"], unique=False)
    op.create_index(op.f("ix_users_usergroups_group_id"), "users_usergroups", ["group_id"], unique=False)

    # Installs created from this revision have no autoplay or propagation_method yet.
    op.create_table(
        "tours",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("site_id", sa.Integer(), sa.ForeignKey("sites.id", ondelete="SET NULL"), nullable=True),
        sa.Column("tour_id", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("data", sa.Text(), nullable=True),
        sa.Column("enabled", sa.Boolean(), nullable=False),
        sa.Column("translatable", sa.Boolean(), nullable=False),
        sa.Column(
            "progress_position",
            sa.Enum(
                "off",
                "top",
                "bottom",
                "header",
                "footer",
                name="tour_progress_position_enum",
                native_enum=False,
            ),
            nullable=True,
        ),
        sa.Column("uid", sa.String(length=36), nullable=False, unique=True),
        *_timestamps(),
    )
    op.create_index(op.f("ix_tours_id"), "tours", ["id"], unique=False)
    op.create_index(op.f("ix_tours_tour_id"), "tours", ["tour_id"], unique=True)

    op.create_table(
        "tour_completions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tour_id", sa.Integer(), sa.ForeignKey("tours.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("tour_id", "user_id", name="uq_tour_completions_tour_user"),
    )
    op.create_index(op.f("ix_tour_completions_id"), "tour_completions", ["id"], unique=False)
    op.create_index(op.f("ix_tour_completions_tour_id"), "tour_completions", ["tour_id"], unique=False)
    op.create_index(op.f("ix_tour_completions_user_id"), "tour_completions", ["user_id"], unique=False)

    op.create_table(
        "tours_usergroups",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tour_id", sa.Integer(), sa.ForeignKey("tours.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "user_group_id",
            sa.Integer(),
            sa.ForeignKey("user_groups.id", ondelete="CASCADE"),
            nullable=False,
        ),
        *_timestamps(),
    )
    op.create_index(op.f("ix_tours_usergroups_id"), "tours_usergroups", ["id"], unique=False)
    op.create_index(op.f("ix_tours_usergroups_tour_id"), "tours_usergroups", ["tour_id"], unique=False)
    op.create_index(
        op.f("ix_tours_usergroups_user_group_id"), "tours_usergroups", ["user_group_id"], unique=False
    )
    op.create_index(
        "ix_tours_usergroups_tour_group", "tours_usergroups", ["tour_id", "user_group_id"], unique=False
    )

    op.create_table(
        "tours_i18n",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tour_id", sa.Integer(), sa.ForeignKey("tours.id", ondelete="CASCADE"), nullable=False),
        sa.Column("site_id", sa.Integer(), sa.ForeignKey("sites.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("data", sa.Text(), nullable=True),
        sa.Column("enabled", sa.Boolean(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tour_id", "site_id", name="uq_tours_i18n_tour_site"),
    )
    op.create_index(op.f("ix_tours_i18n_id"), "tours_i18n", ["id"], unique=False)
    op.create_index(op.f("ix_tours_i18n_tour_id"), "tours_i18n", ["tour_id"], unique=False)
    op.create_index(op.f("ix_tours_i18n_site_id"), "tours_i18n", ["site_id"], unique=False)


def downgrade() -> None:
    op.drop_table("tours_i18n")
    op.drop_table("tours_usergroups")
    op.drop_table("tour_completions")
    op.drop_table("tours")
    op.drop_table("users_usergroups")
    op.drop_table("user_groups")
    op.drop_table("users")
    op.drop_table("sites")
