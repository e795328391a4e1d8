"""
Per-site translation handling.

Two directions are covered here:

* Reading: ``apply_translations`` overlays a site's translation onto the
  canonical tour for end users, ``attach_step_translations`` annotates each
  canonical step with its per-site counterparts for the editor.
* Writing: ``process_step_translations`` splits editor-posted steps into
  canonical content and per-site step lists.

Translated steps are matched to canonical steps by array position. Steps
carry no stable identifier, so reordering canonical steps misaligns every
stored translation until it is re-saved.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Iterable

from boarding.core.json_cache import JsonDecodeCache
from boarding.models.enums import PropagationMethod, StepType


DEFAULT_NAVIGATION_BUTTON_TEXT = "Continue"


def _cache(json_cache: JsonDecodeCache | None) -> JsonDecodeCache:
    return json_cache if json_cache is not None else JsonDecodeCache()


def resolve_propagation_method(tour: dict[str, Any]) -> str:
    """
    Propagation mode of a tour row. Rows from installs without the column
    (or with it unset) derive it from ``translatable``.
    """
    value = tour.get("propagation_method")
    if isinstance(value, PropagationMethod):
        return value.value
    if value in (PropagationMethod.NONE.value, PropagationMethod.ALL.value):
        return value
    return PropagationMethod.ALL.value if tour.get("translatable") else PropagationMethod.NONE.value


def should_load_translations(tour: dict[str, Any]) -> bool:
    return resolve_propagation_method(tour) == PropagationMethod.ALL.value


def get_site_translation(translations: dict | None, site_id: int | str) -> dict[str, Any]:
    """Look up a site's entry whether the mapping is keyed by int or by str."""
    if not translations:
        return {}
    for key in (site_id, str(site_id)):
        if key in translations:
            return translations[key] or {}
    try:
        numeric = int(site_id)
    except (TypeError, ValueError):
        return {}
    return translations.get(numeric) or {}


def clean_steps_from_translations(steps: Iterable[dict]) -> list[dict]:
    cleaned = []
    for step in steps or []:
        item = dict(step)
        item.pop("translations", None)
        cleaned.append(item)
    return cleaned


def apply_translations(
    tour: dict[str, Any],
    site_id: int,
    home_site_id: int | None,
    translations: dict | None = None,
    json_cache: JsonDecodeCache | None = None,
) -> dict[str, Any]:
    """
    Overlay the translation for ``site_id`` onto a copy of ``tour``.

    Only tours propagated to all sites are overlaid, and never on their home
    site. Name and description are taken from the translation when it has
    a non-empty value; steps are replaced as a whole when the translation
    carries a non-empty step list.
    """
    if not tour:
        return tour
    result = dict(tour)
    if resolve_propagation_method(result) != PropagationMethod.ALL.value:
        return result
    if home_site_id is not None and site_id == home_site_id:
        return result

    source = translations if translations is not None else result.get("translations")
    translation = get_site_translation(source, site_id)
    if not translation:
        return result

    if translation.get("name"):
        result["name"] = translation["name"]
    if translation.get("description"):
        result["description"] = translation["description"]
    steps = _cache(json_cache).decode_translation_data(translation).get("steps")
    if isinstance(steps, list) and steps:
        result["steps"] = steps
    return result


def fix_inline_step_translations(tour: dict[str, Any], site_id: int) -> dict[str, Any]:
    """
    Legacy single-site tours sometimes stored step text only inside the
    step's ``translations`` map. Fill empty title/text/button text from the
    current site's entry, else from the first entry that has content.
    """
    steps = tour.get("steps")
    if not isinstance(steps, list):
        return tour

    fixed = []
    for raw in steps:
        step = dict(raw) if isinstance(raw, dict) else raw
        inline = step.get("translations") if isinstance(step, dict) else None
        if not isinstance(inline, dict) or not inline:
            fixed.append(step)
            continue

        is_navigation = step.get("type", StepType.DEFAULT.value) == StepType.NAVIGATION.value
        title_empty = not step.get("title")
        text_empty = not step.get("text")
        button_empty = is_navigation and not step.get("navigationButtonText")

        if title_empty or text_empty or button_empty:
            current = get_site_translation(inline, site_id)
            if current:
                if title_empty and current.get("title"):
                    step["title"] = current["title"]
                if text_empty and current.get("text"):
                    step["text"] = current["text"]
                if button_empty and current.get("navigationButtonText"):
                    step["navigationButtonText"] = current["navigationButtonText"]

            if not step.get("title") and not step.get("text"):
                for candidate in inline.values():
                    if isinstance(candidate, dict) and (candidate.get("title") or candidate.get("text")):
                        step["title"] = candidate.get("title", "")
                        step["text"] = candidate.get("text", "")
                        if is_navigation and candidate.get("navigationButtonText"):
                            step["navigationButtonText"] = candidate["navigationButtonText"]
                        break
        fixed.append(step)

    tour["steps"] = fixed
    return tour


def attach_step_translations(
    tour: dict[str, Any],
    translations_by_site: dict | None,
    json_cache: JsonDecodeCache | None = None,
) -> dict[str, Any]:
    """Annotate each canonical step ``i`` with ``{site_id: translated step i}`` for the editor."""
    steps = tour.get("steps")
    if not steps or not translations_by_site:
        return tour

    cache = _cache(json_cache)
    decoded = {
        site_id: cache.decode_translation_data(translation).get("steps") or []
        for site_id, translation in translations_by_site.items()
    }
    annotated = []
    for index, raw in enumerate(steps):
        step = dict(raw)
        step["translations"] = {
            site_id: site_steps[index]
            for site_id, site_steps in decoded.items()
            if isinstance(site_steps, list) and index < len(site_steps)
        }
        annotated.append(step)
    tour["steps"] = annotated
    return tour


def normalize_step(step: dict[str, Any]) -> dict[str, Any]:
    """Canonical step shape: title, text, type, plus attachTo and navigation fields when relevant."""
    step_type = step.get("type") or StepType.DEFAULT.value
    normalized: dict[str, Any] = {
        "title": step.get("title") or "",
        "text": step.get("text") or "",
        "type": step_type,
    }
    if step.get("attachTo") is not None:
        normalized["attachTo"] = step["attachTo"]
    if step_type == StepType.NAVIGATION.value:
        normalized["navigationUrl"] = step.get("navigationUrl") or ""
        normalized["navigationButtonText"] = (
            step.get("navigationButtonText") or DEFAULT_NAVIGATION_BUTTON_TEXT
        )
    return normalized


@dataclass
class StepTranslationSplit:
    canonical_steps: list[dict[str, Any]] = field(default_factory=list)
    site_steps: dict[int, list[dict[str, Any]]] = field(default_factory=dict)


def process_step_translations(posted_steps: Iterable[dict]) -> StepTranslationSplit:
    """
    Split editor-posted steps into canonical steps and per-site step lists.

    Each posted step may carry ``translations: {site_id: {title, text,
    navigationButtonText}}``. A site's list has one entry per canonical step;
    positions the site did not translate fall back to the canonical step.
    """
    steps = [step for step in (posted_steps or []) if isinstance(step, dict)]
    canonical = [normalize_step(step) for step in steps]

    site_ids: list[int] = []
    for step in steps:
        for key in (step.get("translations") or {}):
            try:
                site_id = int(key)
            except (TypeError, ValueError):
                continue
            if site_id not in site_ids:
                site_ids.append(site_id)

    split = StepTranslationSplit(canonical_steps=canonical)
    for site_id in site_ids:
        site_list = []
        for step, base in zip(steps, canonical):
            translated = get_site_translation(step.get("translations"), site_id)
            item = copy.deepcopy(base)
            if translated:
                item["title"] = translated.get("title") or ""
                item["text"] = translated.get("text") or ""
                if base["type"] == StepType.NAVIGATION.value and translated.get("navigationButtonText"):
                    item["navigationButtonText"] = translated["navigationButtonText"]
            site_list.append(item)
        split.site_steps[site_id] = site_list
    return split


def merge_translation_data(
    existing: dict[str, Any],
    new_data: dict[str, Any],
    preserve_steps: bool = True,
) -> dict[str, Any]:
    merged = dict(existing)
    if "name" in new_data and new_data["name"] is not None:
        merged["name"] = new_data["name"]
    if "description" in new_data and new_data["description"] is not None:
        merged["description"] = new_data["description"]
    if "steps" in new_data and not preserve_steps:
        merged["steps"] = new_data["steps"]
    elif preserve_steps and "steps" in existing:
        merged["steps"] = clean_steps_from_translations(existing["steps"])
    return merged


def validate_translation_data(
    translation_data: dict[str, Any],
    original_steps: list | None = None,
) -> dict[str, Any]:
    errors: list[str] = []
    if "name" not in translation_data:
        errors.append("Translation name is required")
    if "description" not in translation_data:
        errors.append("Translation description is required")

    steps = translation_data.get("steps")
    if isinstance(steps, list):
        for index, step in enumerate(steps):
            step = step if isinstance(step, dict) else {}
            if not str(step.get("title") or "").strip():
                errors.append(f"Step {index} title is required")
            if not str(step.get("text") or "").strip():
                errors.append(f"Step {index} text is required")
        if original_steps and len(steps) != len(original_steps):
            errors.append("Translation step count must match original tour steps")

    return {"valid": not errors, "errors": errors}


def is_translation_complete(
    translation: dict[str, Any],
    tour: dict[str, Any],
    json_cache: JsonDecodeCache | None = None,
) -> bool:
    if not translation.get("name") or not translation.get("description"):
        return False
    original_steps = tour.get("steps") or []
    if not original_steps:
        return True
    steps = _cache(json_cache).decode_translation_data(translation).get("steps") or []
    if len(steps) != len(original_steps):
        return False
    return all(isinstance(s, dict) and s.get("title") and s.get("text") for s in steps)


def translation_completion_status(
    tour: dict[str, Any],
    site_ids: Iterable[int],
    home_site_id: int | None,
    json_cache: JsonDecodeCache | None = None,
) -> dict[int, dict[str, Any]]:
    """Per non-home site: whether a translation exists, is complete, and is enabled."""
    translations = tour.get("translations") or {}
    status: dict[int, dict[str, Any]] = {}
    for site_id in site_ids:
        if site_id == home_site_id:
            continue
        translation = get_site_translation(translations, site_id)
        if translation:
            status[site_id] = {
                "has_translation": True,
                "is_complete": is_translation_complete(translation, tour, json_cache),
                "enabled": translation.get("enabled", True) is not False,
            }
        else:
            status[site_id] = {"has_translation": False, "is_complete": False, "enabled": False}
    return status
