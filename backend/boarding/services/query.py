"""
Read-side façade: resolved tour views for the admin list, the editor and
end users. All relation data comes through the request's bulk loader.
"""

from __future__ import annotations

from typing import Any, Iterable

from sqlalchemy.orm import Session

from boarding.core.errors import TourNotFoundError
from boarding.sites.context import SiteContext
from boarding.tours.caches import RequestCaches
from boarding.tours.processor import (
    admin_processing_options,
    edit_processing_options,
    process_tour,
    process_tours_with_bulk_loading,
    user_processing_options,
)
from boarding.tours.translations import apply_translations


class TourQueryService:
    def __init__(self, db: Session, site: SiteContext, caches: RequestCaches | None = None) -> None:
        self.db = db
        self.site = site
        self.caches = caches or RequestCaches(db)

    @property
    def repository(self):
        return self.caches.repository

    def get_all_tours(self) -> list[dict[str, Any]]:
        """Admin listing: every tour with groups, completions and translations."""
        has_translatable = self.caches.schema_probe.has_translatable_column()
        tours = self.repository.find_all(include_translatable=has_translatable)
        return process_tours_with_bulk_loading(
            tours,
            self.caches.bulk_loader,
            admin_processing_options(has_translatable),
            json_cache=self.caches.json_cache,
        )

    def get_tour_by_id(self, tour_pk: int) -> dict[str, Any]:
        """Editor view: canonical content with per-site step translations attached."""
        tour = self.repository.find_by_id(tour_pk)
        if tour is None:
            raise TourNotFoundError.for_tour_id(tour_pk, {"operation": "get_tour"})
        loaders = self.caches.bulk_loader.create_loaders([tour_pk])
        return process_tour(
            tour,
            edit_processing_options(
                self.caches.schema_probe.has_translatable_column(),
                self.site.primary_site_id,
            ),
            loaders,
            self.caches.json_cache,
        )

    def get_tours_for_user(
        self,
        user_id: int,
        group_ids: Iterable[int],
        site: SiteContext | None = None,
    ) -> list[dict[str, Any]]:
        """End-user listing: visible, enabled tours for the site with translations applied."""
        site = site or self.site
        tours = self.repository.find_for_user(
            user_id,
            group_ids,
            site_id=site.site_id,
            primary_site_id=site.primary_site_id,
        )
        return process_tours_with_bulk_loading(
            tours,
            self.caches.bulk_loader,
            user_processing_options(site.site_id, site.primary_site_id),
            json_cache=self.caches.json_cache,
        )

    def get_tour_with_translations(self, tour_pk: int, site_id: int | None = None) -> dict[str, Any]:
        tour = self.repository.find_by_id(tour_pk)
        if tour is None:
            raise TourNotFoundError.for_tour_id(tour_pk, {"operation": "get_tour_with_translations"})
        target = site_id if site_id is not None else self.site.site_id
        loaders = self.caches.bulk_loader.create_loaders([tour_pk])
        options = user_processing_options(target, self.site.primary_site_id)
        return process_tour(tour, options, loaders, self.caches.json_cache)

    def get_tour_translations(self, tour_pk: int) -> dict[int, dict[str, Any]]:
        return self.caches.bulk_loader.get_translations(tour_pk)

    def has_translation(self, tour_pk: int, site_id: int) -> bool:
        return site_id in self.get_tour_translations(tour_pk)

    def is_tour_enabled_for_site(self, tour_pk: int, site_id: int | None = None) -> bool:
        tour = self.repository.find_by_id(tour_pk)
        if tour is None:
            return False
        target = site_id if site_id is not None else self.site.site_id
        return self.repository.is_enabled_for_site(tour_pk, target, self.site.home_site_for(tour))

    def apply_tour_translations(self, tour: dict[str, Any], site_id: int | None = None) -> dict[str, Any]:
        target = site_id if site_id is not None else self.site.site_id
        translations = tour.get("translations")
        if translations is None and tour.get("id") is not None:
            translations = self.get_tour_translations(tour["id"])
        return apply_translations(
            tour,
            target,
            self.site.home_site_for(tour),
            translations,
            self.caches.json_cache,
        )
