from __future__ import annotations

from enum import Enum
from typing import Any

from boarding.core.config import settings
from boarding.core.errors import TourAccessError


class Edition(str, Enum):
    LITE = "lite"
    STANDARD = "standard"
    PRO = "pro"

    @property
    def rank(self) -> int:
        return _EDITION_ORDER.index(self)


_EDITION_ORDER = [Edition.LITE, Edition.STANDARD, Edition.PRO]


class Capability(str, Enum):
    TRANSLATIONS = "translations"
    USER_GROUPS = "user_groups"
    IMPORT_EXPORT = "import_export"
    UNLIMITED_TOURS = "unlimited_tours"


# Minimum edition that unlocks each capability.
_CAPABILITY_MIN_EDITION = {
    Capability.TRANSLATIONS: Edition.STANDARD,
    Capability.USER_GROUPS: Edition.STANDARD,
    Capability.IMPORT_EXPORT: Edition.PRO,
    Capability.UNLIMITED_TOURS: Edition.STANDARD,
}


def current_edition(value: str | Edition | None = None) -> Edition:
    raw = value if value is not None else settings.BOARDING_EDITION
    if isinstance(raw, Edition):
        return raw
    try:
        return Edition(str(raw).strip().lower())
    except ValueError:
        return Edition.LITE


def has_capability(capability: Capability | str, edition: str | Edition | None = None) -> bool:
    cap = Capability(capability)
    return current_edition(edition).rank >= _CAPABILITY_MIN_EDITION[cap].rank


def require_capability(capability: Capability | str, edition: str | Edition | None = None) -> None:
    """Raise TourAccessError unless the active edition unlocks the capability."""
    cap = Capability(capability)
    active = current_edition(edition)
    if not has_capability(cap, active):
        raise TourAccessError.missing_permission(
            cap.value,
            {"edition": active.value, "required_edition": _CAPABILITY_MIN_EDITION[cap].value},
        )


def tour_limit(edition: str | Edition | None = None) -> int | None:
    if has_capability(Capability.UNLIMITED_TOURS, edition):
        return None
    return settings.LITE_TOUR_LIMIT


def can_create_tour(current_count: int, edition: str | Edition | None = None) -> bool:
    limit = tour_limit(edition)
    return limit is None or current_count < limit


def edition_info(edition: str | Edition | None = None) -> dict[str, Any]:
    active = current_edition(edition)
    limit = tour_limit(active)
    return {
        "edition": active.value,
        "is_pro": active == Edition.PRO,
        "tour_limit": limit,
        "has_limits": limit is not None,
        "capabilities": sorted(c.value for c in Capability if has_capability(c, active)),
    }
