from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable

from boarding.core.config import settings
from boarding.core.editions import Capability, require_capability
from boarding.models.enums import ProgressPosition
from boarding.sites.context import SiteContext
from boarding.tours.translations import clean_steps_from_translations


FILENAME_DATE_FORMAT = "%Y-%m-%d-%H-%M-%S"


def _iso(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    return value


def export_completion(entry: dict[str, Any]) -> dict[str, Any]:
    return {
        "username": entry.get("username"),
        "firstName": entry.get("first_name"),
        "lastName": entry.get("last_name"),
        "completedAt": _iso(entry.get("completed_at")),
    }


def export_tour(tour: dict[str, Any]) -> dict[str, Any]:
    """One envelope entry. Ids, uids and timestamps stay behind."""
    group_ids = tour.get("user_groups")
    if group_ids is None:
        group_ids = tour.get("user_group_ids") or []
    return {
        "name": tour.get("name") or "",
        "tourId": tour.get("tour_id"),
        "description": tour.get("description") or "",
        "enabled": bool(tour.get("enabled", True)),
        "translatable": bool(tour.get("translatable", False)),
        "userGroupIds": list(group_ids),
        "steps": clean_steps_from_translations(tour.get("steps") or []),
        "progressPosition": tour.get("progress_position") or ProgressPosition.BOTTOM.value,
        "completedBy": [export_completion(c) for c in tour.get("completed_by") or []],
    }


class ExportService:
    def __init__(self, site: SiteContext) -> None:
        self.site = site

    def export_tours(self, tours: Iterable[dict[str, Any]], site: SiteContext | None = None) -> dict[str, Any]:
        require_capability(Capability.IMPORT_EXPORT)
        site = site or self.site
        return {
            "boardingExport": {
                "version": settings.EXPORT_FORMAT_VERSION,
                "exportDate": datetime.now(timezone.utc).isoformat(),
                "site": site.export_payload(),
                "tours": [export_tour(tour) for tour in tours],
            }
        }

    @staticmethod
    def generate_tour_filename(tour: dict[str, Any], now: datetime | None = None) -> str:
        stamp = (now or datetime.now(timezone.utc)).strftime(FILENAME_DATE_FORMAT)
        return f"{tour.get('name') or 'tour'}-{tour.get('tour_id')}-{stamp}.json"

    @staticmethod
    def generate_all_tours_filename(now: datetime | None = None) -> str:
        stamp = (now or datetime.now(timezone.utc)).strftime(FILENAME_DATE_FORMAT)
        return f"all-tours-{stamp}.json"
