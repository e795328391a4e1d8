"""
Data access for tours and their three dependent relations (completions,
user-group assignments, per-site translations).

Every method is fail soft: storage faults are logged with the traceback and
turned into ``None`` / ``[]`` / ``{}`` / ``False`` so the service layer can
treat "not found" and "not written" as ordinary control flow.

The ``tours`` table may predate the ``autoplay`` and ``propagation_method``
columns, so statements against it are built from the columns the schema
probe reports instead of from the mapped model.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Iterable
from uuid import uuid4

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from boarding.core.db import transaction
from boarding.core.logging import get_structured_logger
from boarding.core.metrics import record_bulk_load_query
from boarding.core.schema_probe import TOURS_TABLE, SchemaProbe
from boarding.core.time import utcnow
from boarding.models.tours import TourCompletion, TourTranslation, TourUserGroup
from boarding.models.users import User


logger = get_structured_logger("boarding.repository")

_TOUR_COLUMN_TYPES: dict[str, Any] = {
    "id": sa.Integer,
    "site_id": sa.Integer,
    "tour_id": sa.String,
    "name": sa.String,
    "description": sa.Text,
    "data": sa.Text,
    "enabled": sa.Boolean,
    "translatable": sa.Boolean,
    "propagation_method": sa.String,
    "progress_position": sa.String,
    "autoplay": sa.Boolean,
    "created_at": sa.DateTime,
    "updated_at": sa.DateTime,
    "uid": sa.String,
}

# Columns a caller may write through save(); id/uid/timestamps are managed here.
_WRITABLE_COLUMNS = (
    "site_id",
    "tour_id",
    "name",
    "description",
    "data",
    "enabled",
    "translatable",
    "propagation_method",
    "progress_position",
    "autoplay",
)

completions_table = TourCompletion.__table__
user_groups_table = TourUserGroup.__table__
translations_table = TourTranslation.__table__
users_table = User.__table__


def _encode_data(value: Any) -> str:
    if value is None:
        return "{}"
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _translation_row(row) -> dict[str, Any]:
    item = dict(row._mapping)
    if item.get("enabled") is None:
        item["enabled"] = True
    else:
        item["enabled"] = bool(item["enabled"])
    return item


class TourRepository:
    def __init__(self, db: Session, probe: SchemaProbe | None = None) -> None:
        self.db = db
        self.probe = probe or SchemaProbe(db)

    # -- statement helpers -------------------------------------------------

    def _tours(self, *, include_translatable: bool = True) -> sa.TableClause:
        available = self.probe.available_columns(TOURS_TABLE)
        columns = []
        for name, type_ in _TOUR_COLUMN_TYPES.items():
            if name not in available:
                continue
            if name == "translatable" and not include_translatable:
                continue
            columns.append(sa.column(name, type_))
        return sa.table(TOURS_TABLE, *columns)

    def _base_select(self, tours: sa.TableClause) -> sa.Select:
        return sa.select(*tours.c)

    @staticmethod
    def _order(stmt: sa.Select, tours: sa.TableClause) -> sa.Select:
        return stmt.order_by(tours.c.created_at.desc(), tours.c.id.desc())

    def _site_enabled_clause(
        self,
        stmt: sa.Select,
        tours: sa.TableClause,
        site_id: int,
        primary_site_id: int | None,
    ) -> sa.Select:
        home = tours.c.site_id
        if primary_site_id is not None:
            home = sa.func.coalesce(tours.c.site_id, primary_site_id)
        if not self.probe.has_translations_table():
            return stmt.where(tours.c.enabled.is_(True))

        i18n = translations_table.alias("ti18n")
        stmt = stmt.outerjoin(
            i18n,
            sa.and_(i18n.c.tour_id == tours.c.id, i18n.c.site_id == site_id),
        )
        on_home = sa.and_(home == site_id, tours.c.enabled.is_(True))
        elsewhere = sa.and_(
            sa.or_(home.is_(None), home != site_id),
            sa.or_(
                sa.and_(i18n.c.id.isnot(None), sa.func.coalesce(i18n.c.enabled, True).is_(True)),
                sa.and_(i18n.c.id.is_(None), tours.c.enabled.is_(True)),
            ),
        )
        return stmt.where(sa.or_(on_home, elsewhere))

    # -- tour reads --------------------------------------------------------

    def find_by_id(self, tour_pk: int) -> dict[str, Any] | None:
        try:
            tours = self._tours()
            row = self.db.execute(self._base_select(tours).where(tours.c.id == tour_pk)).first()
            return dict(row._mapping) if row else None
        except SQLAlchemyError:
            logger.exception("repository.find_by_id_failed", extra={"tour_id": tour_pk})
            return None

    def find_by_natural_key(self, tour_id: str) -> dict[str, Any] | None:
        try:
            tours = self._tours()
            row = self.db.execute(self._base_select(tours).where(tours.c.tour_id == tour_id)).first()
            return dict(row._mapping) if row else None
        except SQLAlchemyError:
            logger.exception("repository.find_by_natural_key_failed", extra={"tour_ref": tour_id})
            return None

    def find_all(
        self,
        *,
        include_translatable: bool = True,
        enabled_only: bool = False,
        site_id: int | None = None,
        primary_site_id: int | None = None,
    ) -> list[dict[str, Any]]:
        try:
            tours = self._tours(include_translatable=include_translatable)
            stmt = self._base_select(tours)
            if enabled_only:
                if site_id is not None:
                    stmt = self._site_enabled_clause(stmt, tours, site_id, primary_site_id)
                else:
                    stmt = stmt.where(tours.c.enabled.is_(True))
            rows = self.db.execute(self._order(stmt, tours)).all()
            return [dict(row._mapping) for row in rows]
        except SQLAlchemyError:
            logger.exception("repository.find_all_failed")
            return []

    def find_for_user(
        self,
        user_id: int,
        group_ids: Iterable[int],
        *,
        site_id: int | None = None,
        primary_site_id: int | None = None,
        include_translatable: bool = True,
    ) -> list[dict[str, Any]]:
        """
        Tours visible to a user: open tours (no group rows) plus tours sharing
        at least one group with the user, enabled for ``site_id``. Each row
        carries a ``completed`` flag for the user.
        """
        groups = sorted({int(g) for g in group_ids})
        try:
            tours = self._tours(include_translatable=include_translatable)

            tug = user_groups_table.alias("tug")
            unrestricted = ~sa.select(tug.c.id).where(tug.c.tour_id == tours.c.id).exists()
            if groups:
                member = sa.select(tug.c.id).where(
                    tug.c.tour_id == tours.c.id,
                    tug.c.user_group_id.in_(groups),
                ).exists()
                visibility = sa.or_(member, unrestricted)
            else:
                visibility = unrestricted

            tc = completions_table.alias("tc")
            completed = sa.case((tc.c.id.isnot(None), True), else_=False).label("completed")
            stmt = (
                sa.select(*tours.c, completed)
                .select_from(tours)
                .outerjoin(tc, sa.and_(tc.c.tour_id == tours.c.id, tc.c.user_id == user_id))
                .where(visibility)
            )
            if site_id is not None:
                stmt = self._site_enabled_clause(stmt, tours, site_id, primary_site_id)
            else:
                stmt = stmt.where(tours.c.enabled.is_(True))

            rows = self.db.execute(self._order(stmt, tours)).all()
            result = []
            for row in rows:
                item = dict(row._mapping)
                item["completed"] = bool(item["completed"])
                result.append(item)
            return result
        except SQLAlchemyError:
            logger.exception(
                "repository.find_for_user_failed",
                extra={"user_id": user_id, "site_id": site_id},
            )
            return []

    def count_tours(self) -> int:
        try:
            tours = self._tours()
            return int(self.db.execute(sa.select(sa.func.count()).select_from(tours)).scalar() or 0)
        except SQLAlchemyError:
            logger.exception("repository.count_tours_failed")
            return 0

    # -- tour writes -------------------------------------------------------

    def save(self, record: dict[str, Any]) -> int | None:
        """Insert (no ``id``) or update a tour. Returns the tour id, or None on failure."""
        data = dict(record)
        tour_pk = data.pop("id", None)
        try:
            with transaction(self.db):
                if tour_pk:
                    if not self._update_tour(int(tour_pk), data):
                        logger.error("repository.update_matched_nothing", extra={"tour_id": tour_pk})
                        return None
                    return int(tour_pk)
                return self._create_tour(data)
        except SQLAlchemyError:
            logger.exception("repository.save_failed", extra={"tour_id": tour_pk})
            return None

    def _writable(self, data: dict[str, Any]) -> dict[str, Any]:
        available = self.probe.available_columns(TOURS_TABLE)
        values = {}
        for key in _WRITABLE_COLUMNS:
            if key in data and key in available:
                value = data[key]
                if key == "data":
                    value = _encode_data(value)
                elif isinstance(value, Enum):
                    value = value.value
                values[key] = value
        return values

    def _create_tour(self, data: dict[str, Any]) -> int:
        now = utcnow()
        values = self._writable(data)
        values.setdefault("tour_id", f"tour_{uuid4()}")
        values.setdefault("name", "")
        values.setdefault("description", "")
        values.setdefault("data", "{}")
        values.setdefault("enabled", True)
        values.update({"created_at": now, "updated_at": now, "uid": str(uuid4())})
        if "translatable" in self.probe.available_columns(TOURS_TABLE):
            values.setdefault("translatable", False)

        tours = sa.table(TOURS_TABLE, *[sa.column(k, _TOUR_COLUMN_TYPES[k]) for k in values])
        self.db.execute(sa.insert(tours).values(**values))
        return self._id_for_uid(values["uid"])

    def _id_for_uid(self, uid: str) -> int:
        tours = sa.table(TOURS_TABLE, sa.column("id", sa.Integer), sa.column("uid", sa.String))
        return int(self.db.execute(sa.select(tours.c.id).where(tours.c.uid == uid)).scalar_one())

    def _update_tour(self, tour_pk: int, data: dict[str, Any]) -> bool:
        values = self._writable(data)
        values["updated_at"] = utcnow()
        tours = sa.table(
            TOURS_TABLE,
            sa.column("id", sa.Integer),
            *[sa.column(k, _TOUR_COLUMN_TYPES[k]) for k in values],
        )
        result = self.db.execute(sa.update(tours).where(tours.c.id == tour_pk).values(**values))
        return result.rowcount > 0

    def delete(self, tour_pk: int) -> bool:
        """Delete a tour with its completions, group rows and translations in one transaction."""
        try:
            with transaction(self.db):
                self.db.execute(sa.delete(completions_table).where(completions_table.c.tour_id == tour_pk))
                self.db.execute(sa.delete(user_groups_table).where(user_groups_table.c.tour_id == tour_pk))
                if self.probe.has_translations_table():
                    self.db.execute(
                        sa.delete(translations_table).where(translations_table.c.tour_id == tour_pk)
                    )
                tours = sa.table(TOURS_TABLE, sa.column("id", sa.Integer))
                result = self.db.execute(sa.delete(tours).where(tours.c.id == tour_pk))
                return result.rowcount > 0
        except SQLAlchemyError:
            logger.exception("repository.delete_failed", extra={"tour_id": tour_pk})
            return False

    # -- completions -------------------------------------------------------

    def _completions_select(self) -> sa.Select:
        return (
            sa.select(
                completions_table.c.tour_id,
                users_table.c.id,
                users_table.c.first_name,
                users_table.c.last_name,
                users_table.c.username,
                completions_table.c.created_at.label("completed_at"),
            )
            .select_from(completions_table)
            .join(users_table, users_table.c.id == completions_table.c.user_id)
            .order_by(completions_table.c.created_at.asc(), completions_table.c.id.asc())
        )

    def get_completions(self, tour_pk: int) -> list[dict[str, Any]]:
        try:
            rows = self.db.execute(
                self._completions_select().where(completions_table.c.tour_id == tour_pk)
            ).all()
        except SQLAlchemyError:
            logger.exception("repository.get_completions_failed", extra={"tour_id": tour_pk})
            return []
        result = []
        for row in rows:
            item = dict(row._mapping)
            item.pop("tour_id")
            result.append(item)
        return result

    def bulk_load_completions(self, tour_pks: Iterable[int]) -> dict[int, list[dict[str, Any]]]:
        ids = list(dict.fromkeys(int(pk) for pk in tour_pks))
        grouped: dict[int, list[dict[str, Any]]] = {pk: [] for pk in ids}
        if not ids:
            return grouped
        try:
            record_bulk_load_query("completions")
            rows = self.db.execute(
                self._completions_select().where(completions_table.c.tour_id.in_(ids))
            ).all()
        except SQLAlchemyError:
            logger.exception("repository.bulk_load_completions_failed", extra={"tour_count": len(ids)})
            return grouped
        for row in rows:
            item = dict(row._mapping)
            grouped.setdefault(item.pop("tour_id"), []).append(item)
        return grouped

    def has_completed(self, tour_pk: int, user_id: int) -> bool:
        try:
            stmt = sa.select(completions_table.c.id).where(
                completions_table.c.tour_id == tour_pk,
                completions_table.c.user_id == user_id,
            )
            return self.db.execute(stmt).first() is not None
        except SQLAlchemyError:
            logger.exception(
                "repository.has_completed_failed",
                extra={"tour_id": tour_pk, "user_id": user_id},
            )
            return False

    def mark_completed(self, tour_pk: int, user_id: int, completed_at=None) -> bool:
        """Record a completion once per (tour, user); repeat calls are no-ops."""
        try:
            with transaction(self.db):
                exists = self.db.execute(
                    sa.select(completions_table.c.id).where(
                        completions_table.c.tour_id == tour_pk,
                        completions_table.c.user_id == user_id,
                    )
                ).first()
                if exists is None:
                    stamp = completed_at or utcnow()
                    self.db.execute(
                        sa.insert(completions_table).values(
                            tour_id=tour_pk,
                            user_id=user_id,
                            created_at=stamp,
                            updated_at=stamp,
                        )
                    )
            return True
        except SQLAlchemyError:
            logger.exception(
                "repository.mark_completed_failed",
                extra={"tour_id": tour_pk, "user_id": user_id},
            )
            return False

    # -- user groups -------------------------------------------------------

    def get_user_groups(self, tour_pk: int) -> list[int]:
        try:
            rows = self.db.execute(
                sa.select(user_groups_table.c.user_group_id)
                .where(user_groups_table.c.tour_id == tour_pk)
                .order_by(user_groups_table.c.user_group_id.asc())
            ).all()
            return [row[0] for row in rows]
        except SQLAlchemyError:
            logger.exception("repository.get_user_groups_failed", extra={"tour_id": tour_pk})
            return []

    def bulk_load_user_groups(self, tour_pks: Iterable[int]) -> dict[int, list[int]]:
        ids = list(dict.fromkeys(int(pk) for pk in tour_pks))
        grouped: dict[int, list[int]] = {pk: [] for pk in ids}
        if not ids:
            return grouped
        try:
            record_bulk_load_query("user_groups")
            rows = self.db.execute(
                sa.select(user_groups_table.c.tour_id, user_groups_table.c.user_group_id)
                .where(user_groups_table.c.tour_id.in_(ids))
                .order_by(user_groups_table.c.tour_id.asc(), user_groups_table.c.user_group_id.asc())
            ).all()
        except SQLAlchemyError:
            logger.exception("repository.bulk_load_user_groups_failed", extra={"tour_count": len(ids)})
            return grouped
        for tour_pk, group_id in rows:
            grouped.setdefault(tour_pk, []).append(group_id)
        return grouped

    def replace_user_groups(self, assignments: dict[int, Iterable[int]]) -> bool:
        """Replace all group rows for the given tours with the given sets."""
        if not assignments:
            return True
        now = utcnow()
        rows = [
            {"tour_id": tour_pk, "user_group_id": group_id, "created_at": now, "updated_at": now}
            for tour_pk, group_ids in assignments.items()
            for group_id in sorted(group_ids)
        ]
        try:
            with transaction(self.db):
                self.db.execute(
                    sa.delete(user_groups_table).where(
                        user_groups_table.c.tour_id.in_(list(assignments.keys()))
                    )
                )
                if rows:
                    self.db.execute(sa.insert(user_groups_table), rows)
            return True
        except SQLAlchemyError:
            logger.exception(
                "repository.replace_user_groups_failed",
                extra={"tour_ids": sorted(assignments.keys())},
            )
            return False

    # -- translations ------------------------------------------------------

    def get_translations(self, tour_pk: int) -> dict[int, dict[str, Any]]:
        if not self.probe.has_translations_table():
            return {}
        try:
            rows = self.db.execute(
                sa.select(translations_table).where(translations_table.c.tour_id == tour_pk)
            ).all()
        except SQLAlchemyError:
            logger.exception("repository.get_translations_failed", extra={"tour_id": tour_pk})
            return {}
        result = {}
        for row in rows:
            item = _translation_row(row)
            result[item["site_id"]] = item
        return result

    def get_translation(self, tour_pk: int, site_id: int) -> dict[str, Any] | None:
        if not self.probe.has_translations_table():
            return None
        try:
            row = self.db.execute(
                sa.select(translations_table).where(
                    translations_table.c.tour_id == tour_pk,
                    translations_table.c.site_id == site_id,
                )
            ).first()
        except SQLAlchemyError:
            logger.exception(
                "repository.get_translation_failed",
                extra={"tour_id": tour_pk, "site_id": site_id},
            )
            return None
        return _translation_row(row) if row else None

    def bulk_load_translations(self, tour_pks: Iterable[int]) -> dict[int, dict[int, dict[str, Any]]]:
        ids = list(dict.fromkeys(int(pk) for pk in tour_pks))
        grouped: dict[int, dict[int, dict[str, Any]]] = {pk: {} for pk in ids}
        if not ids or not self.probe.has_translations_table():
            return grouped
        try:
            record_bulk_load_query("translations")
            rows = self.db.execute(
                sa.select(translations_table).where(translations_table.c.tour_id.in_(ids))
            ).all()
        except SQLAlchemyError:
            logger.exception("repository.bulk_load_translations_failed", extra={"tour_count": len(ids)})
            return grouped
        for row in rows:
            item = _translation_row(row)
            grouped.setdefault(item["tour_id"], {})[item["site_id"]] = item
        return grouped

    def save_translation(self, tour_pk: int, site_id: int, data: dict[str, Any]) -> bool:
        """Insert or update the translation row for (tour, site)."""
        if not self.probe.has_translations_table():
            logger.error("repository.translations_table_missing", extra={"tour_id": tour_pk})
            return False
        now = utcnow()
        values: dict[str, Any] = {"updated_at": now}
        for key in ("name", "description", "enabled"):
            if key in data:
                values[key] = data[key]
        if "data" in data:
            values["data"] = _encode_data(data["data"])
        try:
            with transaction(self.db):
                existing = self.db.execute(
                    sa.select(translations_table.c.id).where(
                        translations_table.c.tour_id == tour_pk,
                        translations_table.c.site_id == site_id,
                    )
                ).first()
                if existing:
                    self.db.execute(
                        sa.update(translations_table)
                        .where(translations_table.c.id == existing[0])
                        .values(**values)
                    )
                else:
                    values.setdefault("name", "")
                    values.setdefault("description", "")
                    values.setdefault("data", "{}")
                    values.setdefault("enabled", True)
                    self.db.execute(
                        sa.insert(translations_table).values(
                            tour_id=tour_pk,
                            site_id=site_id,
                            created_at=now,
                            **values,
                        )
                    )
            return True
        except SQLAlchemyError:
            logger.exception(
                "repository.save_translation_failed",
                extra={"tour_id": tour_pk, "site_id": site_id},
            )
            return False

    # -- per-site enablement ----------------------------------------------

    def is_enabled_for_site(self, tour_pk: int, site_id: int, home_site_id: int | None) -> bool:
        tour = self.find_by_id(tour_pk)
        if tour is None:
            return False
        if home_site_id is None or site_id == home_site_id:
            return bool(tour["enabled"])
        translation = self.get_translation(tour_pk, site_id)
        if translation is not None:
            return bool(translation["enabled"])
        return bool(tour["enabled"])

    def set_enabled_for_site(
        self,
        tour_pk: int,
        site_id: int,
        enabled: bool,
        home_site_id: int | None,
    ) -> bool:
        """
        On the home site this flips canonical ``enabled``. Elsewhere it updates
        the site's translation row, creating one seeded from canonical content
        when the site has none yet.
        """
        if home_site_id is None or site_id == home_site_id:
            return self.save({"id": tour_pk, "enabled": bool(enabled)}) is not None

        existing = self.get_translation(tour_pk, site_id)
        if existing is not None:
            return self.save_translation(tour_pk, site_id, {"enabled": bool(enabled)})

        tour = self.find_by_id(tour_pk)
        if tour is None:
            return False
        return self.save_translation(
            tour_pk,
            site_id,
            {
                "name": tour.get("name") or "",
                "description": tour.get("description") or "",
                "data": tour.get("data") or "{}",
                "enabled": bool(enabled),
            },
        )
