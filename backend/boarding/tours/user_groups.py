"""
User-group assignment for tours.

Group ids arrive from forms, CSV cells and JSON imports in every shape
imaginable. ``process_user_group_ids`` is total: any input becomes a set of
positive ints, so nothing unvalidated reaches the storage layer.
"""

from __future__ import annotations

import math
from typing import Any, Iterator

from boarding.core.logging import get_structured_logger
from boarding.crud.tours import TourRepository


logger = get_structured_logger("boarding.user_groups")


def _flatten(value: Any) -> Iterator[Any]:
    if isinstance(value, dict):
        value = list(value.values())
    if isinstance(value, (list, tuple, set, frozenset)):
        for item in value:
            yield from _flatten(item)
        return
    yield value


def normalize_user_group_id(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        parsed = int(value)
        return parsed if parsed > 0 else None
    if isinstance(value, bytes):
        value = value.decode("utf-8", "ignore")
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = int(text)
        except ValueError:
            try:
                number = float(text)
            except ValueError:
                return None
            if not math.isfinite(number):
                return None
            parsed = int(number)
        return parsed if parsed > 0 else None
    return None


def process_user_group_ids(raw: Any) -> set[int]:
    """Flatten arbitrarily nested input and keep the positive integer ids it contains."""
    if raw is None:
        return set()
    result = set()
    for item in _flatten(raw):
        group_id = normalize_user_group_id(item)
        if group_id is not None:
            result.add(group_id)
    return result


def save_tour_user_groups(repository: TourRepository, tour_pk: int, raw_group_ids: Any) -> bool:
    """Replace the tour's group rows with the normalized set (empty set opens the tour to everyone)."""
    group_ids = process_user_group_ids(raw_group_ids)
    saved = repository.replace_user_groups({int(tour_pk): group_ids})
    if not saved:
        logger.error(
            "user_groups.save_failed",
            extra={"tour_id": tour_pk, "group_ids": sorted(group_ids)},
        )
    return saved


def batch_save_tour_user_groups(repository: TourRepository, assignments: dict[Any, Any]) -> bool:
    """Replace group rows for many tours in one transaction; nothing is written on failure."""
    if not assignments:
        return True
    normalized = {}
    for tour_pk, raw in assignments.items():
        try:
            key = int(tour_pk)
        except (TypeError, ValueError):
            logger.warning("user_groups.invalid_tour_id", extra={"tour_id": repr(tour_pk)})
            continue
        normalized[key] = process_user_group_ids(raw)
    if not normalized:
        return False
    saved = repository.replace_user_groups(normalized)
    if not saved:
        logger.error("user_groups.batch_save_failed", extra={"tour_ids": sorted(normalized)})
    return saved


def validate_tour_user_groups(repository: TourRepository, tour_pk: int, expected: Any) -> bool:
    actual = set(repository.get_user_groups(tour_pk))
    return actual == process_user_group_ids(expected)
