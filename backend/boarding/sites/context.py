"""
Request-scoped site context.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from boarding.models.sites import Site


@dataclass
class SiteContext:
    """
    The site a request operates on, plus the facts every tour operation
    needs about the deployment: which site is primary and which sites exist.
    """

    site_id: int
    handle: str
    name: str
    primary_site_id: int
    site_ids: list[int] = field(default_factory=list)
    request_id: Optional[str] = None

    @property
    def is_primary(self) -> bool:
        return self.site_id == self.primary_site_id

    @property
    def is_multi_site(self) -> bool:
        return len(self.site_ids) > 1

    def home_site_for(self, tour: Optional[dict[str, Any]]) -> int:
        """A tour's home is the site it was created on; rows without one belong to the primary site."""
        if tour and tour.get("site_id") is not None:
            return int(tour["site_id"])
        return self.primary_site_id

    def is_home_for(self, tour: Optional[dict[str, Any]]) -> bool:
        return self.site_id == self.home_site_for(tour)

    def export_payload(self) -> dict[str, Any]:
        return {"id": self.site_id, "handle": self.handle, "name": self.name}


def build_site_context(
    site: Site,
    primary: Site,
    site_ids: list[int],
    request_id: Optional[str] = None,
) -> SiteContext:
    return SiteContext(
        site_id=site.id,
        handle=site.handle,
        name=site.name,
        primary_site_id=primary.id,
        site_ids=list(site_ids),
        request_id=request_id,
    )
