"""Drop-down filter data: hierarchy option lists and available years."""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import distinct, select, union

from .catalog import YEAR_COLUMN
from .datasource import DataSource
from .errors import MissingRequiredFilter, SchemaMismatch
from .hierarchy import GeoLevel, Hierarchy, HierarchyValidator, is_absent, parse_id, parse_integer, schema_table

logger = logging.getLogger(__name__)


def _year_value(raw: Any) -> Any:
    # REAL or NUMERIC year columns come back as 2023.0 or Decimal("2023").
    year = parse_integer(raw)
    if year is None and isinstance(raw, Decimal) and raw == raw.to_integral_value():
        year = int(raw)
    return year if year is not None else str(raw)


def _year_sort_key(value: Any) -> Tuple[int, Any]:
    # Non-integer years sort after every numeric year.
    return (1, value) if isinstance(value, int) else (0, value)


class FilterService:
    """Serves the option lists behind the dashboard's filter drop-downs."""

    def __init__(self, source: DataSource, validator: HierarchyValidator, kpi_source: Optional[DataSource] = None) -> None:
        self.source = source
        self.validator = validator
        self.kpi_source = kpi_source or source

    def list_options(self, hierarchy: Hierarchy, level: GeoLevel, parent_raw: Any = None) -> List[Dict[str, Any]]:
        """Return ``[{id, name}]`` for a level, restricted to a validated parent for non-root levels."""

        parent = hierarchy.parent_of(level)
        columns = [level.id_column, level.name_column]
        if parent:
            columns.append(level.parent_id_column)
        geo_table = schema_table(level.table, *columns, schema=self.source.schema)

        statement = select(
            geo_table.c[level.id_column].label("id"),
            geo_table.c[level.name_column].label("name"),
        ).order_by(geo_table.c[level.name_column])

        if parent:
            if is_absent(parent_raw):
                raise MissingRequiredFilter(parent.param)
            self.validator.validate_level(hierarchy, parent, parent_raw)
            parent_id = parse_id(parent_raw, parent.label)
            statement = statement.where(geo_table.c[level.parent_id_column] == parent_id)

        return self.source.fetch_all(statement, error_message=f"Failed to fetch {level.route}")

    def list_available_years(self, tables: Sequence[str]) -> List[str]:
        """Return the distinct years across ``tables`` as strings, newest first."""

        tables = list(tables)
        missing = []
        for table_name in tables:
            columns = self.kpi_source.column_names(table_name)
            if columns is None or YEAR_COLUMN not in columns:
                missing.append(table_name)

        if missing:
            logger.error("Year column missing from KPI tables %s (checked %s)", missing, tables)
            raise SchemaMismatch(
                f"Failed to fetch years: '{YEAR_COLUMN}' column not found in one or more KPI tables.",
                tables_checked=tables,
                missing=missing,
            )

        if not tables:
            return []

        selects = []
        for table_name in tables:
            kpi_table = schema_table(table_name, YEAR_COLUMN, schema=self.kpi_source.schema)
            selects.append(select(distinct(kpi_table.c[YEAR_COLUMN]).label("year")))
        statement = union(*selects) if len(selects) > 1 else selects[0]

        rows = self.kpi_source.fetch_all(statement, error_message="Failed to fetch years")
        years = {_year_value(row["year"]) for row in rows if row["year"] is not None}
        return [str(year) for year in sorted(years, key=_year_sort_key, reverse=True)]
