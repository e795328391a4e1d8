from sqlalchemy import (
    Boolean,
    Column,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from boarding.core.db import Base
from boarding.models.enums import PropagationMethod, ProgressPosition, enum_values
from boarding.models.mixins import TimestampMixin


class Tour(TimestampMixin, Base):
    """
    Canonical tour record. Content stored here belongs to the home site
    (``site_id``); other sites inherit it unless a translation row exists.
    """

    __tablename__ = "tours"

    id = Column(Integer, primary_key=True, index=True)
    site_id = Column(Integer, ForeignKey("sites.id", ondelete="SET NULL"), nullable=True)
    # Natural key, stable across export/import.
    tour_id = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    # JSON text: {"steps": [...], "progressPosition": ...}
    data = Column(Text, nullable=True)
    enabled = Column(Boolean, nullable=False, default=True)
    translatable = Column(Boolean, nullable=False, default=False)
    propagation_method = Column(
        Enum(
            PropagationMethod,
            name="tour_propagation_method_enum",
            native_enum=False,
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=True,
    )
    progress_position = Column(
        Enum(
            ProgressPosition,
            name="tour_progress_position_enum",
            native_enum=False,
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=True,
        default=ProgressPosition.BOTTOM,
    )
    autoplay = Column(Boolean, nullable=True, default=False)
    uid = Column(String(36), nullable=False, unique=True)


class TourCompletion(TimestampMixin, Base):
    __tablename__ = "tour_completions"
    __table_args__ = (
        UniqueConstraint("tour_id", "user_id", name="uq_tour_completions_tour_user"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tour_id = Column(Integer, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)


class TourUserGroup(TimestampMixin, Base):
    __tablename__ = "tours_usergroups"
    __table_args__ = (
        Index("ix_tours_usergroups_tour_group", "tour_id", "user_group_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tour_id = Column(Integer, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True)
    user_group_id = Column(
        Integer,
        ForeignKey("user_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )


class TourTranslation(TimestampMixin, Base):
    """Per-site override of a tour. Absence of a row means the site inherits canonical."""

    __tablename__ = "tours_i18n"
    __table_args__ = (
        UniqueConstraint("tour_id", "site_id", name="uq_tours_i18n_tour_site"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tour_id = Column(Integer, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True)
    site_id = Column(Integer, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    data = Column(Text, nullable=True)
    enabled = Column(Boolean, nullable=True, default=True)
