from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, UniqueConstraint, false

from boarding.core.db import Base
from boarding.models.mixins import TimestampMixin


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    can_manage_tours = Column(Boolean, nullable=False, default=False, server_default=false())


class UserGroup(TimestampMixin, Base):
    __tablename__ = "user_groups"

    id = Column(Integer, primary_key=True, index=True)
    handle = Column(String(64), unique=True, nullable=False)
    name = Column(String(255), nullable=False)


class UserGroupMembership(Base):
    __tablename__ = "users_usergroups"
    __table_args__ = (
        UniqueConstraint("user_id", "group_id", name="uq_users_usergroups_user_group"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    group_id = Column(
        Integer,
        ForeignKey("user_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
