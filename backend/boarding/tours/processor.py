"""
The tour processing pipeline.

Raw tour rows become resolved views by passing through one ordered set of
steps, each switched on or off by ``ProcessingOptions``:

    normalize flags -> user groups -> completions -> drop internal fields
    -> lift JSON data -> extract steps -> load translations
    -> site overlay -> step translations (editor) -> progress -> ensure steps

The admin listing, the editor and the end-user listing all use this one
function with different presets, so they cannot drift apart.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from boarding.core.json_cache import JsonDecodeCache
from boarding.models.enums import PropagationMethod, ProgressPosition
from boarding.tours.bulk_loader import BulkLoadOptions, BulkTourLoader, TourLoaders
from boarding.tours.translations import (
    apply_translations,
    attach_step_translations,
    fix_inline_step_translations,
    resolve_propagation_method,
    should_load_translations,
)


_INTERNAL_FIELDS = ("sections", "user_group_ids")
DEFAULT_PROGRESS_POSITION = ProgressPosition.BOTTOM.value


@dataclass(frozen=True)
class ProcessingOptions:
    # Attach ``user_groups`` (inline ``user_group_ids`` or the loader).
    load_user_groups: bool = True
    # Attach ``completed_by`` from the loader.
    load_completions: bool = True
    # Attach ``translations`` for tours propagated to all sites.
    load_translations: bool = True
    # Lift keys of the ``data`` JSON onto the tour without overwriting columns.
    process_json_data: bool = True
    extract_steps: bool = True
    # Overlay the translation for ``site_id``; needs ``site_id``.
    apply_translations: bool = False
    # Editor view: annotate every step with its per-site translations.
    attach_step_translations: bool = False
    # Add current_step / completed / completion_count for end users.
    process_progress: bool = False
    ensure_steps_array: bool = True
    site_id: int | None = None
    # Fallback home site for rows without ``site_id``.
    home_site_id: int | None = None
    has_translatable_column: bool = True


def admin_processing_options(has_translatable_column: bool = True) -> ProcessingOptions:
    return ProcessingOptions(
        extract_steps=False,
        ensure_steps_array=False,
        has_translatable_column=has_translatable_column,
    )


def edit_processing_options(
    has_translatable_column: bool = True,
    home_site_id: int | None = None,
) -> ProcessingOptions:
    return ProcessingOptions(
        attach_step_translations=True,
        has_translatable_column=has_translatable_column,
        home_site_id=home_site_id,
    )


def user_processing_options(site_id: int, home_site_id: int | None = None) -> ProcessingOptions:
    return ProcessingOptions(
        process_json_data=False,
        apply_translations=True,
        process_progress=True,
        site_id=site_id,
        home_site_id=home_site_id,
    )


def _split_group_ids(value: str) -> list[int]:
    result = []
    for part in value.split(","):
        part = part.strip()
        if part.isdigit():
            result.append(int(part))
    return result


def _home_site(tour: dict[str, Any], options: ProcessingOptions) -> int | None:
    home = tour.get("site_id")
    return home if home is not None else options.home_site_id


def process_tour(
    tour: dict[str, Any],
    options: ProcessingOptions | None = None,
    loaders: TourLoaders | None = None,
    json_cache: JsonDecodeCache | None = None,
) -> dict[str, Any]:
    options = options or ProcessingOptions()
    loaders = loaders or TourLoaders()
    cache = json_cache if json_cache is not None else JsonDecodeCache()
    result = dict(tour)

    if result.get("id") is None:
        return result
    tour_pk = result["id"]

    if not options.has_translatable_column:
        result["translatable"] = False
    elif "translatable" in result:
        result["translatable"] = bool(result["translatable"])
    if "enabled" in result:
        result["enabled"] = bool(result["enabled"])
    if result.get("autoplay") is not None:
        result["autoplay"] = bool(result["autoplay"])
    result["propagation_method"] = resolve_propagation_method(result)

    if options.load_user_groups:
        inline = result.get("user_group_ids")
        if isinstance(inline, str):
            result["user_groups"] = _split_group_ids(inline)
        elif "user_groups" not in result and loaders.user_groups is not None:
            result["user_groups"] = loaders.user_groups(tour_pk)
        elif "user_groups" not in result:
            result["user_groups"] = []

    if options.load_completions:
        if "completed_by" not in result and loaders.completions is not None:
            result["completed_by"] = loaders.completions(tour_pk)
        elif "completed_by" not in result:
            result["completed_by"] = []

    for name in _INTERNAL_FIELDS:
        result.pop(name, None)

    if options.process_json_data:
        cache.merge_tour_data(result)
        embedded_position = result.pop("progressPosition", None)
        if not result.get("progress_position"):
            result["progress_position"] = embedded_position or DEFAULT_PROGRESS_POSITION

    if options.extract_steps and "steps" not in result:
        result["steps"] = cache.decode_tour_steps(result)

    if options.load_translations and "translations" not in result and loaders.translations is not None:
        if should_load_translations(result):
            result["translations"] = loaders.translations(tour_pk)

    if options.apply_translations and options.site_id is not None:
        if result["propagation_method"] == PropagationMethod.NONE.value:
            result = fix_inline_step_translations(result, options.site_id)
        else:
            result = apply_translations(
                result,
                options.site_id,
                _home_site(result, options),
                json_cache=cache,
            )
        # End users only ever see their own site's content.
        result.pop("translations", None)

    if options.attach_step_translations and result.get("translations"):
        result = attach_step_translations(result, result["translations"], cache)

    if options.process_progress:
        progress = result.pop("progress", None) or {}
        result["current_step"] = progress.get("current_step", 0)
        result["completed"] = bool(progress.get("completed", result.get("completed", False)))
        if isinstance(result.get("completed_by"), list):
            result["completion_count"] = len(result["completed_by"])

    if options.ensure_steps_array and "steps" not in result:
        result["steps"] = []

    return result


def process_tours(
    tours: Iterable[dict[str, Any]],
    options: ProcessingOptions | None = None,
    loaders: TourLoaders | None = None,
    json_cache: JsonDecodeCache | None = None,
) -> list[dict[str, Any]]:
    return [process_tour(tour, options, loaders, json_cache) for tour in tours]


def process_tours_with_bulk_loading(
    tours: list[dict[str, Any]],
    bulk_loader: BulkTourLoader,
    options: ProcessingOptions | None = None,
    bulk_options: BulkLoadOptions | None = None,
    json_cache: JsonDecodeCache | None = None,
) -> list[dict[str, Any]]:
    """Run every tour through the pipeline with relations fetched in one query per type."""
    if not tours:
        return []
    options = options or ProcessingOptions()
    tour_ids = [tour["id"] for tour in tours if tour.get("id")]
    if not tour_ids:
        return process_tours(tours, options, None, json_cache)

    if bulk_options is None:
        bulk_options = BulkLoadOptions(
            load_completions=options.load_completions,
            load_user_groups=options.load_user_groups,
            load_translations=options.load_translations,
        )
    if json_cache is not None:
        json_cache.pre_warm(tours)
    loaders = bulk_loader.create_loaders(tour_ids, bulk_options)
    return process_tours(tours, options, loaders, json_cache)
