"""
Memoized JSON decoding for tour and translation ``data`` blobs.

Listing pages decode the same blobs several times (steps, progress
position, autoplay...). The cache keys decoded values by a digest of the
raw text and hands back copies, so callers may mutate what they receive.
"""

from __future__ import annotations

import copy
import hashlib
import json
from typing import Any, Iterable

from boarding.core.logging import get_structured_logger
from boarding.core.metrics import record_cache_hit, record_cache_miss


logger = get_structured_logger("boarding.json_cache")


class JsonDecodeCache:
    name = "json_decode"

    def __init__(self) -> None:
        self._cache: dict[str, Any] = {}
        self._hits = 0
        self._misses = 0
        self._errors = 0

    @staticmethod
    def _key(text: str) -> str:
        return hashlib.md5(text.encode("utf-8")).hexdigest()

    def decode(self, text: Any, context: str = "unknown") -> Any:
        if text is None or text == "":
            return {}
        if isinstance(text, (dict, list)):
            return copy.deepcopy(text)
        raw = text.decode("utf-8") if isinstance(text, bytes) else str(text)
        key = self._key(raw)
        if key in self._cache:
            self._hits += 1
            record_cache_hit(self.name)
            return copy.deepcopy(self._cache[key])

        self._misses += 1
        record_cache_miss(self.name)
        try:
            value = json.loads(raw)
        except ValueError as exc:
            self._errors += 1
            logger.error(
                "json_cache.decode_failed",
                extra={"context": context, "error": str(exc), "preview": raw[:100]},
            )
            value = {}
        self._cache[key] = value
        return copy.deepcopy(value)

    def decode_tour_data(self, tour: dict) -> dict:
        value = self.decode(tour.get("data"), f"tour_{tour.get('id', 'unknown')}")
        return value if isinstance(value, dict) else {}

    def decode_translation_data(self, translation: dict) -> dict:
        value = self.decode(
            translation.get("data"),
            f"translation_{translation.get('tour_id', 'unknown')}_{translation.get('site_id', 'unknown')}",
        )
        return value if isinstance(value, dict) else {}

    def decode_tour_steps(self, tour: dict) -> list:
        steps = self.decode_tour_data(tour).get("steps")
        return steps if isinstance(steps, list) else []

    def get_tour_field(self, tour: dict, field: str, default: Any = None) -> Any:
        return self.decode_tour_data(tour).get(field, default)

    def merge_tour_data(self, tour: dict) -> dict:
        """Lift decoded ``data`` keys onto the tour without overwriting columns."""
        for key, value in self.decode_tour_data(tour).items():
            if key not in tour:
                tour[key] = value
        return tour

    def pre_warm(self, tours: Iterable[dict]) -> None:
        for tour in tours:
            data = tour.get("data")
            if isinstance(data, str) and data:
                self.decode(data, f"prewarm_{tour.get('id', 'unknown')}")

    def clear(self) -> None:
        self._cache.clear()
        self._hits = 0
        self._misses = 0
        self._errors = 0

    def stats(self) -> dict[str, Any]:
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "errors": self._errors,
            "hit_rate": round(self._hits / total * 100, 2) if total else 0.0,
            "size": len(self._cache),
        }
