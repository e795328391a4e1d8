"""
Request-scoped cache bundle.

One ``RequestCaches`` is built per request (or per service call in tests)
and threaded through the services. Nothing here is process global.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from boarding.core.json_cache import JsonDecodeCache
from boarding.core.schema_probe import SchemaProbe
from boarding.crud.tours import TourRepository
from boarding.tours.bulk_loader import BulkTourLoader


class RequestCaches:
    def __init__(self, db: Session) -> None:
        self.schema_probe = SchemaProbe(db)
        self.json_cache = JsonDecodeCache()
        self.repository = TourRepository(db, self.schema_probe)
        self.bulk_loader = BulkTourLoader(self.repository)

    def clear(self) -> None:
        """Drop data that a write may have staled. Schema facts survive."""
        self.json_cache.clear()
        self.bulk_loader.clear_cache()

    def clear_all(self) -> None:
        self.clear()
        self.schema_probe.clear()
