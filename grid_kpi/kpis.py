"""KPI query building: filter validation, bound SQL and result shaping."""
from __future__ import annotations

import calendar
import logging
from typing import Any, Dict, List, Mapping, Sequence

from sqlalchemy import Select, func, select

from .catalog import CATEGORY, RAW, SERIES, YEAR_COLUMN, KpiDefinition
from .datasource import DataSource
from .errors import InvalidYearFormat, MissingRequiredFilter
from .hierarchy import (
    CIRCLE_HIERARCHY,
    Hierarchy,
    HierarchyValidator,
    ValidatedLevel,
    is_absent,
    parse_integer,
    schema_table,
)

logger = logging.getLogger(__name__)

AGGREGATES = {"sum": func.sum, "avg": func.avg}


def parse_year(raw: Any) -> int:
    if is_absent(raw):
        raise MissingRequiredFilter("year")
    year = parse_integer(raw)
    if year is None:
        raise InvalidYearFormat(raw)
    return year


def period_label(period: Any, year: Any) -> str:
    """Concatenate a period value with its year, e.g. ``Apr 2023``."""

    month = parse_integer(period)
    if month is not None and 1 <= month <= 12:
        period = calendar.month_abbr[month]
    return f"{period} {year}"


def _number(value: Any) -> Any:
    # Numeric/Decimal columns come back as Decimal from PostgreSQL.
    if value is None or isinstance(value, (int, float)):
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        return value


class KpiQueryBuilder:
    """Builds and runs the filtered query for one KPI catalog entry."""

    def __init__(
        self,
        kpi_source: DataSource,
        validator: HierarchyValidator,
        anchor_levels: Sequence[str] = ("circle", "section"),
        hierarchy: Hierarchy = CIRCLE_HIERARCHY,
    ) -> None:
        self.kpi_source = kpi_source
        self.validator = validator
        self.hierarchy = hierarchy
        self.anchor_levels = [hierarchy.level(key) for key in anchor_levels]

    def build_and_run(self, kpi: KpiDefinition, filters: Mapping[str, Any]) -> List[Dict[str, Any]]:
        year = parse_year(filters.get("year"))

        if self.anchor_levels and all(is_absent(filters.get(level.key)) for level in self.anchor_levels):
            raise MissingRequiredFilter(*(level.param for level in self.anchor_levels))

        validated = self.validator.validate_chain(self.hierarchy, filters)
        statement = self.build(kpi, year, validated)

        logger.info(
            "Fetching %s for year=%s filters=%s",
            kpi.slug,
            year,
            {item.level.param: item.id for item in validated},
        )
        rows = self.kpi_source.fetch_all(statement, error_message=f"Failed to fetch {kpi.title} data")
        return self.shape(kpi, rows)

    def build(self, kpi: KpiDefinition, year: int, validated: Sequence[ValidatedLevel]) -> Select:
        filter_columns = [kpi.filter_columns[item.level.key] for item in validated]
        projected = self._projected_columns(kpi)
        columns = list(dict.fromkeys(projected + filter_columns + [YEAR_COLUMN]))
        kpi_table = schema_table(kpi.table, *columns, schema=self.kpi_source.schema)

        if kpi.shape == SERIES:
            aggregate = AGGREGATES[kpi.aggregate]
            period = kpi_table.c[kpi.period_column]
            year_col = kpi_table.c[YEAR_COLUMN]
            statement = (
                select(period, year_col, aggregate(kpi_table.c[kpi.measure]).label("value"))
                .group_by(period, year_col)
                .order_by(year_col, period)
            )
        elif kpi.shape == CATEGORY:
            aggregate = AGGREGATES[kpi.aggregate]
            category = kpi_table.c[kpi.period_column]
            statement = (
                select(category, aggregate(kpi_table.c[kpi.measure]).label("value"))
                .group_by(category)
                .order_by(category)
            )
        elif kpi.shape == RAW:
            statement = select(*(kpi_table.c[name] for name in kpi.output_columns))
            if kpi.order_by:
                statement = statement.order_by(*(kpi_table.c[name] for name in kpi.order_by))
        else:
            raise ValueError(f"Unknown KPI shape '{kpi.shape}' for {kpi.slug}")

        statement = statement.where(kpi_table.c[YEAR_COLUMN] == year)
        for item, column_name in zip(validated, filter_columns):
            statement = statement.where(kpi_table.c[column_name] == item.id)
        return statement

    def shape(self, kpi: KpiDefinition, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if kpi.shape == SERIES:
            return [
                {"label": period_label(row[kpi.period_column], row[YEAR_COLUMN]), "value": _number(row["value"])}
                for row in rows
            ]
        if kpi.shape == CATEGORY:
            return [{"label": str(row[kpi.period_column]), "value": _number(row["value"])} for row in rows]
        return rows

    @staticmethod
    def _projected_columns(kpi: KpiDefinition) -> List[str]:
        if kpi.shape == RAW:
            return list(kpi.output_columns)
        return [name for name in (kpi.period_column, kpi.measure) if name]
