from sqlalchemy import Boolean, Column, Integer, String

from boarding.core.db import Base
from boarding.models.mixins import TimestampMixin


class Site(TimestampMixin, Base):
    __tablename__ = "sites"

    id = Column(Integer, primary_key=True, index=True)
    handle = Column(String(64), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    language = Column(String(12), nullable=False, default="en-US")
    # Exactly one site should be primary; it is the fallback for site resolution.
    primary = Column(Boolean, nullable=False, default=False)
