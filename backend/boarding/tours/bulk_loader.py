"""
Batch loading of tour relations.

Resolving a page of tours needs completions, group assignments and
translations for every tour. ``BulkTourLoader.bulk_load`` fetches each
requested relation with one query for the whole id set and memoizes the
result per (sorted ids, options). Instances are request scoped; call
``clear_cache()`` after any write that could stale them.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Iterable

from boarding.core.logging import get_structured_logger
from boarding.core.metrics import record_cache_hit, record_cache_miss
from boarding.crud.tours import TourRepository


logger = get_structured_logger("boarding.bulk_loader")

Loader = Callable[[int], Any]


@dataclass(frozen=True)
class BulkLoadOptions:
    load_completions: bool = True
    load_user_groups: bool = True
    load_translations: bool = True
    use_cache: bool = True


@dataclass
class BulkLoadResult:
    completions: dict[int, list[dict[str, Any]]] = field(default_factory=dict)
    user_groups: dict[int, list[int]] = field(default_factory=dict)
    translations: dict[int, dict[int, dict[str, Any]]] = field(default_factory=dict)


@dataclass
class TourLoaders:
    """Per-tour accessors handed to the processing pipeline. ``None`` means "not loaded"."""

    completions: Loader | None = None
    user_groups: Loader | None = None
    translations: Loader | None = None


class BulkTourLoader:
    cache_name = "bulk_loader"

    def __init__(self, repository: TourRepository) -> None:
        self.repository = repository
        self._cache: dict[str, BulkLoadResult] = {}

    @staticmethod
    def _normalize_ids(tour_ids: Iterable[Any]) -> list[int]:
        ids = []
        for value in tour_ids:
            if value is None or value == "":
                continue
            ids.append(int(value))
        return list(dict.fromkeys(ids))

    @staticmethod
    def _cache_key(tour_ids: list[int], options: BulkLoadOptions) -> str:
        payload = json.dumps({"tour_ids": sorted(tour_ids), "options": asdict(options)}, sort_keys=True)
        return hashlib.md5(payload.encode("utf-8")).hexdigest()

    def bulk_load(
        self,
        tour_ids: Iterable[Any],
        options: BulkLoadOptions | None = None,
    ) -> BulkLoadResult:
        options = options or BulkLoadOptions()
        ids = self._normalize_ids(tour_ids)
        if not ids:
            return BulkLoadResult()

        key = self._cache_key(ids, options)
        if options.use_cache and key in self._cache:
            record_cache_hit(self.cache_name)
            return self._cache[key]
        record_cache_miss(self.cache_name)

        result = BulkLoadResult()
        if options.load_completions:
            result.completions = self.repository.bulk_load_completions(ids)
        if options.load_user_groups:
            result.user_groups = self.repository.bulk_load_user_groups(ids)
        if options.load_translations:
            result.translations = self.repository.bulk_load_translations(ids)

        logger.debug(
            "bulk_loader.loaded",
            extra={"tour_count": len(ids), "options": asdict(options)},
        )
        if options.use_cache:
            self._cache[key] = result
        return result

    def create_loaders(
        self,
        tour_ids: Iterable[Any],
        options: BulkLoadOptions | None = None,
    ) -> TourLoaders:
        options = options or BulkLoadOptions()
        data = self.bulk_load(tour_ids, options)
        return TourLoaders(
            completions=(
                (lambda tour_pk: list(data.completions.get(tour_pk, [])))
                if options.load_completions
                else None
            ),
            user_groups=(
                (lambda tour_pk: list(data.user_groups.get(tour_pk, [])))
                if options.load_user_groups
                else None
            ),
            translations=(
                (lambda tour_pk: dict(data.translations.get(tour_pk, {})))
                if options.load_translations
                else None
            ),
        )

    def create_admin_loaders(self, tour_ids: Iterable[Any]) -> TourLoaders:
        # Admin listings show every relation, including group assignments.
        return self.create_loaders(tour_ids, BulkLoadOptions())

    def create_user_loaders(self, tour_ids: Iterable[Any]) -> TourLoaders:
        # Visibility is already filtered in SQL; groups are still attached for the player.
        return self.create_loaders(tour_ids, BulkLoadOptions())

    def _scan(self, relation: str, tour_pk: int):
        for result in self._cache.values():
            bucket = getattr(result, relation)
            if tour_pk in bucket:
                record_cache_hit(self.cache_name)
                return bucket[tour_pk]
        record_cache_miss(self.cache_name)
        return None

    def get_completions(self, tour_pk: int) -> list[dict[str, Any]]:
        cached = self._scan("completions", tour_pk)
        if cached is not None:
            return list(cached)
        return self.repository.get_completions(tour_pk)

    def get_user_groups(self, tour_pk: int) -> list[int]:
        cached = self._scan("user_groups", tour_pk)
        if cached is not None:
            return list(cached)
        return self.repository.get_user_groups(tour_pk)

    def get_translations(self, tour_pk: int) -> dict[int, dict[str, Any]]:
        cached = self._scan("translations", tour_pk)
        if cached is not None:
            return dict(cached)
        return self.repository.get_translations(tour_pk)

    def clear_cache(self) -> None:
        self._cache.clear()
