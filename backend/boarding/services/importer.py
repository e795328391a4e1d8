"""
Tour import from the export envelope or from CSV.

CSV rows are mapped onto envelope keys first (``normalize_tabular_row``) so
both formats go through the same validation and the same mutation path.
Tours whose ``tourId`` already exists are updated in place.
"""

from __future__ import annotations

import csv
import io
import json
import re
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from boarding.core.config import settings
from boarding.core.editions import Capability, require_capability
from boarding.core.errors import BoardingError, TourValidationError
from boarding.core.logging import get_structured_logger
from boarding.core.time import utcnow
from boarding.crud.users import get_user_by_username
from boarding.models.enums import ProgressPosition, enum_values
from boarding.services.mutation import TourMutationService
from boarding.sites.context import SiteContext
from boarding.tours.caches import RequestCaches


logger = get_structured_logger("boarding.import")

ENVELOPE_KEY = "boardingExport"
VALID_PROGRESS_POSITIONS = enum_values(ProgressPosition)

# Compacted column name -> envelope key.
FIELD_ALIASES = {
    "name": "name",
    "title": "name",
    "tourid": "tourId",
    "description": "description",
    "enabled": "enabled",
    "translatable": "translatable",
    "usergroupids": "userGroupIds",
    "usergroups": "userGroupIds",
    "steps": "steps",
    "progressposition": "progressPosition",
    "completedby": "completedBy",
}
SYSTEM_FIELDS = {"id", "uid", "slug", "datecreated", "dateupdated"}

_BOOL_LIKE = {
    True: True,
    False: False,
    1: True,
    0: False,
    "1": True,
    "0": False,
    "true": True,
    "false": False,
}

TOUR_DEFAULTS = {
    "description": "",
    "enabled": True,
    "translatable": False,
    "userGroupIds": [],
    "steps": [],
    "progressPosition": ProgressPosition.BOTTOM.value,
    "completedBy": [],
}


def _compact(name: Any) -> str:
    return re.sub(r"[^a-z0-9]", "", str(name or "").lower())


def normalize_field_name(name: Any) -> str | None:
    """Envelope key for a column name, or None for system and unknown columns."""
    compact = _compact(name)
    if not compact or compact in SYSTEM_FIELDS:
        return None
    return FIELD_ALIASES.get(compact)


def _bool_like(value: Any) -> bool | None:
    key = value.strip().lower() if isinstance(value, str) else value
    try:
        return _BOOL_LIKE.get(key)
    except TypeError:
        return None


def _decode_json_cell(value: Any, default: Any) -> Any:
    if not isinstance(value, str):
        return value
    text = value.strip()
    if not text:
        return default
    try:
        return json.loads(text)
    except ValueError:
        return value


def normalize_tabular_row(row: dict[str, Any]) -> dict[str, Any]:
    tour: dict[str, Any] = {}
    for column, value in row.items():
        key = normalize_field_name(column)
        if key is None:
            continue
        if key in ("steps", "completedBy"):
            value = _decode_json_cell(value, [])
        elif key in ("enabled", "translatable"):
            parsed = _bool_like(value)
            value = parsed if parsed is not None else value
        elif isinstance(value, str):
            value = value.strip()
        tour[key] = value
    return tour


def parse_csv(text: str) -> list[dict[str, Any]]:
    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
    tours = []
    for row in reader:
        if not any((value or "").strip() for value in row.values() if isinstance(value, str)):
            continue
        tours.append(normalize_tabular_row(row))
    return tours


def wrap_tours(tours: list[dict[str, Any]]) -> dict[str, Any]:
    return {ENVELOPE_KEY: {"tours": tours}}


def _group_ids(value: Any) -> Any:
    if isinstance(value, str):
        return [part for part in value.split(",") if part.strip()]
    return value


def _parse_completed_at(value: Any) -> datetime:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return utcnow()
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
    return utcnow()


class ImportService:
    def __init__(self, db: Session, site: SiteContext, caches: RequestCaches | None = None) -> None:
        self.db = db
        self.site = site
        self.caches = caches or RequestCaches(db)
        self.mutations = TourMutationService(db, site, self.caches)

    @staticmethod
    def validate_upload(filename: str | None, size: int) -> None:
        extension = (filename or "").rsplit(".", 1)[-1].lower() if "." in (filename or "") else ""
        errors = []
        if extension not in settings.IMPORT_ALLOWED_EXTENSIONS:
            allowed = ", ".join(settings.IMPORT_ALLOWED_EXTENSIONS)
            errors.append(f"Invalid file type. Allowed types: {allowed}")
        if size > settings.IMPORT_MAX_FILE_SIZE_MB * 1024 * 1024:
            errors.append(f"File too large. Maximum size is {settings.IMPORT_MAX_FILE_SIZE_MB}MB.")
        if errors:
            raise TourValidationError(errors, context={"filename": filename, "size": size})

    def validate_import_data(self, data: Any) -> list[str]:
        if not isinstance(data, dict) or ENVELOPE_KEY not in data:
            return ["Invalid export file format. This doesn't appear to be a valid Boarding export."]
        export = data[ENVELOPE_KEY]
        if not isinstance(export, dict) or "tours" not in export:
            return ["Export file is missing tours data"]
        tours = export["tours"]
        if not isinstance(tours, list):
            return ["Tours data must be an array"]
        if not tours:
            return ["No tours found in the export file"]

        errors = []
        if len(tours) > settings.IMPORT_MAX_TOURS:
            errors.append(
                f"Import contains too many tours. Maximum allowed is {settings.IMPORT_MAX_TOURS}."
            )
        for index, tour in enumerate(tours, start=1):
            errors.extend(self._validate_tour_structure(tour, index))
        return errors

    @staticmethod
    def _validate_tour_structure(tour: Any, number: int) -> list[str]:
        if not isinstance(tour, dict):
            return [f"Tour #{number}: Invalid tour data structure"]
        errors = []
        if not tour.get("name") or not isinstance(tour["name"], str):
            errors.append(f"Tour #{number}: Missing or invalid name field")
        if not tour.get("tourId") or not isinstance(tour["tourId"], str):
            errors.append(f"Tour #{number}: Missing or invalid tourId field")
        if "steps" in tour:
            if not isinstance(tour["steps"], list):
                errors.append(f"Tour #{number}: Steps must be an array")
            elif len(tour["steps"]) > settings.IMPORT_MAX_STEPS_PER_TOUR:
                errors.append(
                    f"Tour #{number}: Too many steps. "
                    f"Maximum allowed is {settings.IMPORT_MAX_STEPS_PER_TOUR}."
                )
        position = tour.get("progressPosition")
        if position is not None and position not in VALID_PROGRESS_POSITIONS:
            errors.append(f'Tour #{number}: Invalid progressPosition value "{position}"')
        for flag in ("enabled", "translatable"):
            if flag in tour and _bool_like(tour[flag]) is None:
                errors.append(f"Tour #{number}: Invalid {flag} value")
        return errors

    def import_data(self, data: Any) -> dict[str, Any]:
        require_capability(Capability.IMPORT_EXPORT)
        errors = self.validate_import_data(data)
        if errors:
            raise TourValidationError(errors, context={"operation": "import"})
        return self.process_tours_import(data[ENVELOPE_KEY]["tours"])

    def process_tours_import(self, tours: list[dict[str, Any]]) -> dict[str, Any]:
        require_capability(Capability.IMPORT_EXPORT)
        results: dict[str, Any] = {"imported": 0, "updated": 0, "skipped": 0, "errors": []}

        for number, raw in enumerate(tours, start=1):
            if not isinstance(raw, dict) or not raw.get("name") or not raw.get("tourId"):
                results["errors"].append(f"Tour #{number}: Missing required name or tourId")
                results["skipped"] += 1
                continue

            tour = {**TOUR_DEFAULTS, **raw}
            position = tour.get("progressPosition")
            if position not in VALID_PROGRESS_POSITIONS:
                position = ProgressPosition.BOTTOM.value

            existing = self.caches.repository.find_by_natural_key(tour["tourId"])
            payload = {
                "name": tour["name"],
                "tour_id": tour["tourId"],
                "description": tour.get("description") or "",
                "enabled": bool(_bool_like(tour.get("enabled"))),
                "translatable": bool(_bool_like(tour.get("translatable"))),
                "user_group_ids": _group_ids(tour.get("userGroupIds")),
                "steps": tour.get("steps") or [],
                "progress_position": position,
            }
            if existing:
                payload["id"] = existing["id"]

            try:
                tour_pk = self.mutations.save_tour(payload)
            except (BoardingError, SQLAlchemyError) as exc:
                message = exc.user_message if isinstance(exc, BoardingError) else str(exc)
                results["errors"].append(f'Tour #{number}: Failed to save "{tour["name"]}": {message}')
                results["skipped"] += 1
                logger.warning(
                    "import.tour_failed",
                    extra={"tour_ref": tour["tourId"], "index": number},
                )
                continue

            if existing:
                results["updated"] += 1
            else:
                results["imported"] += 1

            if tour.get("completedBy"):
                self._import_completions(tour_pk, tour["completedBy"], results, number)

        logger.info(
            "import.completed",
            extra={k: results[k] for k in ("imported", "updated", "skipped")},
        )
        return results

    def _import_completions(
        self,
        tour_pk: int,
        completions: Any,
        results: dict[str, Any],
        number: int,
    ) -> None:
        if not isinstance(completions, list):
            results["errors"].append(f"Tour #{number}: Completions must be an array")
            return
        imported = 0
        failed = 0
        for entry in completions:
            username = entry.get("username") if isinstance(entry, dict) else None
            user = get_user_by_username(self.db, username) if username else None
            if user is None:
                failed += 1
                continue
            completed_at = _parse_completed_at(entry.get("completedAt"))
            if self.caches.repository.mark_completed(tour_pk, user.id, completed_at):
                imported += 1
            else:
                failed += 1
        if failed:
            results["errors"].append(
                f"Tour #{number}: {failed} completion(s) could not be imported, "
                f"{imported} imported successfully"
            )

    @staticmethod
    def build_import_message(results: dict[str, Any]) -> str:
        message = (
            f"Import completed: {results['imported']} imported, "
            f"{results['updated']} updated, {results['skipped']} skipped"
        )
        if results["errors"]:
            message += f". Errors: {len(results['errors'])}"
        return message
