"""
Detection of optional schema pieces.

Installs upgraded in place may still lack the ``autoplay`` and
``propagation_method`` columns (or even the translations table) until the
matching migrations run. Reads consult the probe and simply omit what is
missing instead of failing. Results are memoized on the probe instance, so
build one per request and call ``clear()`` after migrations in tests.
"""

from __future__ import annotations

from sqlalchemy import inspect
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from boarding.core.logging import get_structured_logger
from boarding.core.metrics import record_cache_hit, record_cache_miss


logger = get_structured_logger("boarding.schema_probe")

TOURS_TABLE = "tours"
TRANSLATIONS_TABLE = "tours_i18n"


class SchemaProbe:
    def __init__(self, bind: Session | Engine | Connection) -> None:
        self._bind = bind
        self._tables: dict[str, bool] = {}
        self._columns: dict[str, set[str] | None] = {}

    def _inspector(self):
        bind = self._bind
        if isinstance(bind, Session):
            bind = bind.connection()
        return inspect(bind)

    def _table_columns(self, table: str) -> set[str] | None:
        if table in self._columns:
            record_cache_hit("schema_probe")
            return self._columns[table]
        record_cache_miss("schema_probe")
        try:
            inspector = self._inspector()
            if not inspector.has_table(table):
                columns = None
            else:
                columns = {col["name"] for col in inspector.get_columns(table)}
        except SQLAlchemyError:
            logger.exception("schema_probe.inspect_failed", extra={"table": table})
            columns = None
        self._columns[table] = columns
        self._tables[table] = columns is not None
        return columns

    def table_exists(self, table: str) -> bool:
        if table in self._tables:
            return self._tables[table]
        return self._table_columns(table) is not None

    def column_exists(self, table: str, column: str) -> bool:
        columns = self._table_columns(table)
        return bool(columns) and column in columns

    def available_columns(self, table: str = TOURS_TABLE) -> set[str]:
        return set(self._table_columns(table) or ())

    def has_translatable_column(self) -> bool:
        return self.column_exists(TOURS_TABLE, "translatable")

    def has_progress_position_column(self) -> bool:
        return self.column_exists(TOURS_TABLE, "progress_position")

    def has_autoplay_column(self) -> bool:
        return self.column_exists(TOURS_TABLE, "autoplay")

    def has_propagation_method_column(self) -> bool:
        return self.column_exists(TOURS_TABLE, "propagation_method")

    def has_translations_table(self) -> bool:
        return self.table_exists(TRANSLATIONS_TABLE)

    def clear(self) -> None:
        self._tables.clear()
        self._columns.clear()
