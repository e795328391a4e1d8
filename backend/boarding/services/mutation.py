"""
Write-side façade: save, delete, duplicate, completion and per-site
enablement. Each operation runs in one transaction, raises typed errors
from ``boarding.core.errors`` and clears the request caches afterwards.
"""

from __future__ import annotations

from typing import Any
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from boarding.core.db import transaction
from boarding.core.editions import Capability, can_create_tour, require_capability, tour_limit
from boarding.core.errors import (
    BoardingError,
    TourAccessError,
    TourNotFoundError,
    TourSaveError,
    TourValidationError,
)
from boarding.core.logging import get_structured_logger
from boarding.models.enums import ProgressPosition, PropagationMethod
from boarding.sites.context import SiteContext
from boarding.tours.caches import RequestCaches
from boarding.tours.translations import (
    StepTranslationSplit,
    clean_steps_from_translations,
    get_site_translation,
    process_step_translations,
    resolve_propagation_method,
)
from boarding.tours.user_groups import (
    batch_save_tour_user_groups,
    process_user_group_ids,
    save_tour_user_groups,
    validate_tour_user_groups,
)


logger = get_structured_logger("boarding.mutations")

COPY_SUFFIX = " (Copy)"


def validate_tour_data(data: dict[str, Any]) -> list[str]:
    """Collect every field-level problem; an empty list means the tour may be saved."""
    errors: list[str] = []
    if not data.get("name"):
        errors.append("Tour name is required")
    steps = data.get("steps")
    if not isinstance(steps, list) or not steps:
        errors.append("Tour must have at least one step")
        return errors
    for index, step in enumerate(steps, start=1):
        step = step if isinstance(step, dict) else {}
        if not step.get("title"):
            errors.append(f"Step {index} title is required")
        if not step.get("text"):
            errors.append(f"Step {index} content is required")
    return errors


def _site_enabled_flags(raw: Any) -> dict[int, bool]:
    flags: dict[int, bool] = {}
    if not isinstance(raw, dict):
        return flags
    for key, value in raw.items():
        try:
            flags[int(key)] = bool(value) and value not in ("0", "false", "False")
        except (TypeError, ValueError):
            continue
    return flags


class TourMutationService:
    def __init__(self, db: Session, site: SiteContext, caches: RequestCaches | None = None) -> None:
        self.db = db
        self.site = site
        self.caches = caches or RequestCaches(db)

    @property
    def repository(self):
        return self.caches.repository

    def _find_or_raise(self, tour_pk: int, operation: str) -> dict[str, Any]:
        tour = self.repository.find_by_id(tour_pk)
        if tour is None:
            raise TourNotFoundError.for_operation(tour_pk, operation)
        return tour

    # -- save ---------------------------------------------------------------

    def save_tour(self, data: dict[str, Any]) -> int:
        """
        Create or update a tour from editor input and return its id.

        Editing on the tour's home site (or a tour that is not translatable)
        writes the posted content to the canonical record. Editing a
        translatable tour on another site leaves canonical content as it was
        and stores the posted content as that site's translation.
        """
        context = {
            "operation": "save_tour",
            "tour_id": data.get("id") or "new",
            "site_id": self.site.site_id,
        }
        errors = validate_tour_data(data)
        if errors:
            raise TourValidationError(errors, context=context)

        try:
            tour_pk = self._save_tour(data)
        except BoardingError as exc:
            exc.with_context(context)
            raise
        except SQLAlchemyError as exc:
            raise TourSaveError.database_failed("save_tour", context) from exc
        finally:
            self.caches.clear()

        logger.info("tour.saved", extra={"tour_id": tour_pk, "site_id": self.site.site_id})
        return tour_pk

    def _save_tour(self, data: dict[str, Any]) -> int:
        existing = None
        if data.get("id"):
            existing = self._find_or_raise(int(data["id"]), "save")
        is_new = existing is None

        translatable = bool(data.get("translatable", False))
        if translatable:
            require_capability(Capability.TRANSLATIONS)
        if process_user_group_ids(data.get("user_group_ids")):
            require_capability(Capability.USER_GROUPS)
        if is_new and not can_create_tour(self.repository.count_tours()):
            limit = tour_limit()
            raise TourAccessError(
                f"Tour limit of {limit} reached for this edition",
                user_message=f"This edition allows up to {limit} tours. Upgrade to create more.",
                context={"tour_limit": limit},
            )

        # A new tour belongs to the site it is created on.
        home_site_id = self.site.home_site_for(existing) if existing else self.site.site_id
        editing_home = self.site.site_id == home_site_id
        translating = translatable and not (editing_home or is_new)

        if translating:
            # Canonical settings belong to the home site.
            progress_position = existing.get("progress_position") or ProgressPosition.BOTTOM.value
            propagation = existing.get("propagation_method") or resolve_propagation_method(existing)
            autoplay = bool(existing.get("autoplay"))
        else:
            progress_position = data.get("progress_position") or ProgressPosition.BOTTOM.value
            propagation = data.get("propagation_method") or resolve_propagation_method(
                {"translatable": translatable}
            )
            autoplay = bool(data.get("autoplay", False))
        if isinstance(progress_position, ProgressPosition):
            progress_position = progress_position.value
        if isinstance(propagation, PropagationMethod):
            propagation = propagation.value

        record: dict[str, Any] = {
            "site_id": home_site_id,
            "translatable": translatable,
            "propagation_method": propagation,
            "progress_position": progress_position,
            "autoplay": autoplay,
        }
        if existing:
            record["id"] = existing["id"]
            record["tour_id"] = data.get("tour_id") or existing["tour_id"]
        elif data.get("tour_id"):
            record["tour_id"] = data["tour_id"]

        if editing_home or is_new:
            record["enabled"] = bool(data.get("enabled", True))
        else:
            record["enabled"] = bool(existing["enabled"])

        split = process_step_translations(data.get("steps") or [])
        if translating:
            record["name"] = existing.get("name") or ""
            record["description"] = existing.get("description") or ""
            record["data"] = self.caches.json_cache.decode_tour_data(existing)
            record["data"]["steps"] = clean_steps_from_translations(record["data"].get("steps") or [])
            record["data"].setdefault("progressPosition", progress_position)
        else:
            record["name"] = data.get("name") or ""
            record["description"] = data.get("description") or ""
            record["data"] = {"steps": split.canonical_steps, "progressPosition": progress_position}

        with transaction(self.db):
            tour_pk = self.repository.save(record)
            if tour_pk is None:
                raise TourSaveError.database_failed("tour_save", {"tour_ref": record.get("tour_id")})

            site_flags = _site_enabled_flags(data.get("site_enabled"))
            if translatable or (site_flags and self.site.is_multi_site):
                if not self._save_translations(tour_pk, data, record, home_site_id, site_flags, split):
                    raise TourSaveError.database_failed(
                        "translation_save",
                        {"tour_id": tour_pk, "translatable": translatable},
                    )

            if data.get("user_group_ids") is not None:
                if not save_tour_user_groups(self.repository, tour_pk, data["user_group_ids"]):
                    raise TourSaveError.database_failed("user_groups_save", {"tour_id": tour_pk})
        return tour_pk

    def _save_translations(
        self,
        tour_pk: int,
        data: dict[str, Any],
        record: dict[str, Any],
        home_site_id: int,
        site_flags: dict[int, bool],
        split: StepTranslationSplit | None = None,
    ) -> bool:
        if not self.caches.schema_probe.has_translations_table():
            logger.error("tour.translations_table_missing", extra={"tour_id": tour_pk})
            return False
        existing = self.repository.get_translations(tour_pk)
        for site_id in self.site.site_ids:
            if site_id == home_site_id:
                continue
            payload = self.build_site_translation_data(site_id, data, record, existing, site_flags, split)
            if payload is None:
                continue
            if not self.repository.save_translation(tour_pk, site_id, payload):
                return False
        return True

    def build_site_translation_data(
        self,
        site_id: int,
        data: dict[str, Any],
        record: dict[str, Any],
        existing: dict[int, dict[str, Any]],
        site_flags: dict[int, bool],
        split: StepTranslationSplit | None = None,
    ) -> dict[str, Any] | None:
        """
        Decide what, if anything, to store for one non-home site.

        The site being edited gets the posted content, as full steps: its
        embedded step translations laid over the posted step structure, or the
        posted steps themselves when nothing is embedded for it. Other sites
        keep their stored translation, picking up a posted enabled flag if
        there is one. A site with no stored translation and nothing posted
        gets no row.
        """
        translatable = bool(record.get("translatable"))
        has_flag = site_id in site_flags
        stored = get_site_translation(existing, site_id)

        if site_id == self.site.site_id:
            enabled = site_flags[site_id] if has_flag else bool(data.get("enabled", True))
            if translatable:
                if split is None:
                    split = process_step_translations(data.get("steps") or [])
                return {
                    "name": data.get("name") or "",
                    "description": data.get("description") or "",
                    "data": {"steps": split.site_steps.get(site_id) or split.canonical_steps},
                    "enabled": enabled,
                }
            if has_flag:
                return {
                    "name": record.get("name") or "",
                    "description": record.get("description") or "",
                    "data": {"steps": []},
                    "enabled": enabled,
                }
            return None

        if stored:
            steps = []
            if translatable:
                steps = self.caches.json_cache.decode_translation_data(stored).get("steps") or []
            return {
                "name": stored.get("name") or "",
                "description": stored.get("description") or "",
                "data": {"steps": steps},
                "enabled": site_flags[site_id] if has_flag else stored.get("enabled", True) is not False,
            }
        if has_flag:
            return {
                "name": record.get("name") or "",
                "description": record.get("description") or "",
                "data": {"steps": []},
                "enabled": site_flags[site_id],
            }
        return None

    # -- delete / duplicate ---------------------------------------------------

    def delete_tour(self, tour_pk: int) -> bool:
        try:
            self._find_or_raise(tour_pk, "delete")
            if not self.repository.delete(tour_pk):
                raise TourSaveError.database_failed("tour_delete", {"tour_id": tour_pk})
        finally:
            self.caches.clear()
        logger.info("tour.deleted", extra={"tour_id": tour_pk})
        return True

    def duplicate_tour(self, tour_pk: int) -> int:
        """
        Copy a tour with its group assignments and, for translatable tours,
        its translations. Returns the new tour id.
        """
        original = self._find_or_raise(tour_pk, "duplicate")
        json_data = self.caches.json_cache.decode_tour_data(original)
        if original.get("progress_position") and "progressPosition" not in json_data:
            json_data["progressPosition"] = original["progress_position"]

        new_record = {
            "tour_id": f"tour_{uuid4()}",
            "name": f"{original.get('name') or ''}{COPY_SUFFIX}",
            "description": original.get("description"),
            "data": json_data,
            "enabled": bool(original.get("enabled", True)),
            "translatable": bool(original.get("translatable", False)),
            "site_id": self.site.home_site_for(original),
        }
        for optional in ("propagation_method", "progress_position", "autoplay"):
            if original.get(optional) is not None:
                new_record[optional] = original[optional]

        new_pk = None
        try:
            with transaction(self.db):
                new_pk = self.repository.save(new_record)
                if new_pk is None:
                    raise TourSaveError.database_failed("duplicate_save", {"source_tour_id": tour_pk})

                groups = self.repository.get_user_groups(tour_pk)
                if groups and not save_tour_user_groups(self.repository, new_pk, groups):
                    raise TourSaveError.database_failed("duplicate_user_groups", {"tour_id": new_pk})

                if original.get("translatable"):
                    for site_id, translation in self.repository.get_translations(tour_pk).items():
                        copied = {
                            "name": f"{translation['name']}{COPY_SUFFIX}" if translation.get("name") else "",
                            "description": translation.get("description") or "",
                            "data": translation.get("data") or "{}",
                            "enabled": translation.get("enabled", True),
                        }
                        if not self.repository.save_translation(new_pk, site_id, copied):
                            raise TourSaveError.database_failed(
                                "duplicate_translations",
                                {"tour_id": new_pk, "site_id": site_id},
                            )
        except (BoardingError, SQLAlchemyError) as exc:
            if new_pk is not None:
                self._cleanup_orphan(new_pk)
            if isinstance(exc, BoardingError):
                raise exc.add_context("source_tour_id", tour_pk)
            raise TourSaveError.database_failed("duplicate_tour", {"source_tour_id": tour_pk}) from exc
        finally:
            self.caches.clear()

        logger.info("tour.duplicated", extra={"tour_id": new_pk, "source_tour_id": tour_pk})
        return new_pk

    def _cleanup_orphan(self, tour_pk: int) -> None:
        # The transaction is already rolled back; this only catches rows that slipped through.
        if self.repository.find_by_id(tour_pk) is None:
            return
        if self.repository.delete(tour_pk):
            logger.info("tour.duplicate_cleanup", extra={"tour_id": tour_pk})
        else:
            logger.error("tour.duplicate_cleanup_failed", extra={"tour_id": tour_pk})

    # -- completion / enablement ---------------------------------------------

    def _resolve_tour(self, tour_ref: Any) -> dict[str, Any] | None:
        ref = str(tour_ref).strip()
        if ref.isdigit():
            tour = self.repository.find_by_id(int(ref))
            if tour is not None:
                return tour
        return self.repository.find_by_natural_key(ref)

    def mark_tour_completed(self, tour_ref: Any, user_id: int | None) -> bool:
        """Record that a user finished a tour. ``tour_ref`` is the numeric id or the tourId."""
        if user_id is None:
            raise TourAccessError.missing_permission(
                "authenticated_user", {"operation": "mark_completed"}
            )
        tour = self._resolve_tour(tour_ref)
        if tour is None:
            raise TourNotFoundError.for_operation(tour_ref, "mark_completed")
        try:
            if not self.repository.mark_completed(int(tour["id"]), int(user_id)):
                raise TourSaveError.database_failed(
                    "mark_completed",
                    {"tour_id": tour["id"], "user_id": user_id},
                )
        finally:
            self.caches.clear()
        return True

    def set_tour_enabled_for_site(self, tour_pk: int, site_id: int, enabled: bool) -> bool:
        tour = self._find_or_raise(tour_pk, "set_enabled")
        try:
            saved = self.repository.set_enabled_for_site(
                tour_pk,
                site_id,
                bool(enabled),
                self.site.home_site_for(tour),
            )
            if not saved:
                raise TourSaveError.database_failed(
                    "set_enabled_for_site",
                    {"tour_id": tour_pk, "site_id": site_id},
                )
        finally:
            self.caches.clear()
        return True

    # -- user groups -----------------------------------------------------------

    def save_tour_user_groups(self, tour_pk: int, raw_group_ids: Any) -> bool:
        try:
            return save_tour_user_groups(self.repository, tour_pk, raw_group_ids)
        finally:
            self.caches.clear()

    def batch_save_tour_user_groups(self, assignments: dict[Any, Any]) -> bool:
        try:
            return batch_save_tour_user_groups(self.repository, assignments)
        finally:
            self.caches.clear()

    def validate_tour_user_groups(self, tour_pk: int, expected: Any) -> bool:
        return validate_tour_user_groups(self.repository, tour_pk, expected)
