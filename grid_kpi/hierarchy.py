"""Geographic hierarchy registry and ID validation against the primary store."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import column, select, table
from sqlalchemy.sql.expression import TableClause

from .datasource import DataSource
from .errors import HierarchyMismatch, InvalidIdFormat, NotFound

logger = logging.getLogger(__name__)

_INTEGER_RE = re.compile(r"-?[0-9]+")


@dataclass(frozen=True, slots=True)
class GeoLevel:
    """One level of a geographic hierarchy and where it lives in the schema."""

    key: str
    param: str
    route: str
    table: str
    id_column: str
    name_column: str
    label: str
    parent: Optional[str] = None
    parent_id_column: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Hierarchy:
    name: str
    levels: Tuple[GeoLevel, ...]

    def level(self, key: str) -> GeoLevel:
        for level in self.levels:
            if level.key == key:
                return level
        raise KeyError(key)

    def parent_of(self, level: GeoLevel) -> Optional[GeoLevel]:
        return self.level(level.parent) if level.parent else None


@dataclass(frozen=True, slots=True)
class ValidatedLevel:
    level: GeoLevel
    id: int
    name: str


# ---------------------------------------------------------------------------
# Hierarchies (circle -> division -> subdivision -> section, and the feeder variant)
# ---------------------------------------------------------------------------
CIRCLE_HIERARCHY = Hierarchy(
    name="circle",
    levels=(
        GeoLevel(
            key="circle",
            param="circleId",
            route="circles",
            table="circles",
            id_column="CircleID",
            name_column="CircleName",
            label="CircleID",
        ),
        GeoLevel(
            key="division",
            param="divisionId",
            route="divisions",
            table="divisions",
            id_column="DivisionID",
            name_column="DivisionName",
            label="DivisionID",
            parent="circle",
            parent_id_column="CircleID",
        ),
        GeoLevel(
            key="subdivision",
            param="subdivisionId",
            route="subdivisions",
            table="subdivisions",
            id_column="SubdivisionID",
            name_column="SubdivisionName",
            label="SubdivisionID",
            parent="division",
            parent_id_column="DivisionID",
        ),
        GeoLevel(
            key="section",
            param="sectionId",
            route="sections",
            table="sections",
            id_column="SectionID",
            name_column="SectionName",
            label="SectionID",
            parent="subdivision",
            parent_id_column="SubdivisionID",
        ),
    ),
)

FEEDER_HIERARCHY = Hierarchy(
    name="feeder",
    levels=(
        GeoLevel(
            key="district",
            param="districtId",
            route="districts",
            table="districts",
            id_column="id",
            name_column="name",
            label="DistrictID",
        ),
        GeoLevel(
            key="substation",
            param="substationId",
            route="substations",
            table="substations",
            id_column="id",
            name_column="name",
            label="SubstationID",
            parent="district",
            parent_id_column="district_id",
        ),
        GeoLevel(
            key="feeder",
            param="feederId",
            route="feeders",
            table="feeders",
            id_column="id",
            name_column="name",
            label="FeederID",
            parent="substation",
            parent_id_column="substation_id",
        ),
        GeoLevel(
            key="dtr",
            param="dtrId",
            route="dtrs",
            table="dtrs",
            id_column="id",
            name_column="name",
            label="DTRID",
            parent="feeder",
            parent_id_column="feeder_id",
        ),
    ),
)

HIERARCHIES: Dict[str, Hierarchy] = {
    CIRCLE_HIERARCHY.name: CIRCLE_HIERARCHY,
    FEEDER_HIERARCHY.name: FEEDER_HIERARCHY,
}

LEVELS_BY_ROUTE: Dict[str, Tuple[Hierarchy, GeoLevel]] = {
    level.route: (hierarchy, level) for hierarchy in HIERARCHIES.values() for level in hierarchy.levels
}


def is_absent(raw: Any) -> bool:
    return raw is None or (isinstance(raw, str) and raw == "")


def parse_integer(raw: Any) -> Optional[int]:
    """Return the integer value of ``raw`` or None if it is not integer-formatted."""

    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw) if raw.is_integer() else None
    if isinstance(raw, str) and _INTEGER_RE.fullmatch(raw):
        return int(raw)
    return None


def parse_id(raw: Any, label: str) -> Optional[int]:
    """Parse an identifier from a query-string value; absent values yield None."""

    if is_absent(raw):
        return None
    value = parse_integer(raw)
    if value is None:
        raise InvalidIdFormat(label, raw)
    return value


def schema_table(name: str, *columns: str, schema: Optional[str] = None) -> TableClause:
    return table(name, *(column(col) for col in columns), schema=schema)


class HierarchyValidator:
    """Confirms that hierarchy IDs exist and belong to their stated parent."""

    def __init__(self, source: DataSource) -> None:
        self.source = source

    def validate(
        self,
        raw_id: Any,
        table_name: str,
        id_column: str,
        name_column: str,
        parent_id: Any = None,
        parent_id_column: Optional[str] = None,
        *,
        label: Optional[str] = None,
        parent_label: Optional[str] = None,
    ) -> Optional[str]:
        label = label or id_column
        parent_label = parent_label or parent_id_column

        if is_absent(raw_id):
            return None

        parent_value: Optional[int] = None
        if parent_id_column and not is_absent(parent_id):
            parent_value = parse_id(parent_id, parent_label or parent_id_column)
        value = parse_id(raw_id, label)

        columns = [id_column, name_column] + ([parent_id_column] if parent_value is not None else [])
        geo_table = schema_table(table_name, *columns, schema=self.source.schema)
        statement = select(geo_table.c[name_column]).where(geo_table.c[id_column] == value)
        if parent_value is not None:
            statement = statement.where(geo_table.c[parent_id_column] == parent_value)

        rows = self.source.fetch_all(statement.limit(1))
        if not rows:
            if parent_value is not None:
                raise HierarchyMismatch(label, value, parent_label, parent_value)
            raise NotFound(label, value)

        return rows[0][name_column]

    def validate_level(
        self, hierarchy: Hierarchy, level: GeoLevel, raw_id: Any, parent_id: Any = None
    ) -> Optional[str]:
        parent = hierarchy.parent_of(level)
        return self.validate(
            raw_id,
            level.table,
            level.id_column,
            level.name_column,
            parent_id=parent_id if parent else None,
            parent_id_column=level.parent_id_column if parent else None,
            label=level.label,
            parent_label=parent.label if parent else None,
        )

    def validate_ancestry(
        self, hierarchy: Hierarchy, level: GeoLevel, raw_id: Any, ancestor: ValidatedLevel
    ) -> str:
        """Check that ``raw_id`` sits below a validated ancestor that is not its immediate parent."""

        value = parse_id(raw_id, level.label)
        schema = self.source.schema
        level_table = schema_table(
            level.table, level.id_column, level.name_column, level.parent_id_column, schema=schema
        )
        joined = level_table
        current, current_table = level, level_table
        while current.parent != ancestor.level.key:
            parent = hierarchy.parent_of(current)
            if parent is None:
                raise ValueError(f"{ancestor.level.key} is not an ancestor of {level.key} in {hierarchy.name}")
            parent_table = schema_table(parent.table, parent.id_column, parent.parent_id_column, schema=schema)
            joined = joined.join(
                parent_table, current_table.c[current.parent_id_column] == parent_table.c[parent.id_column]
            )
            current, current_table = parent, parent_table

        statement = (
            select(level_table.c[level.name_column])
            .select_from(joined)
            .where(level_table.c[level.id_column] == value)
            .where(current_table.c[current.parent_id_column] == ancestor.id)
        )
        rows = self.source.fetch_all(statement.limit(1))
        if not rows:
            raise HierarchyMismatch(level.label, value, ancestor.level.label, ancestor.id)
        return rows[0][level.name_column]

    def validate_chain(self, hierarchy: Hierarchy, filters: Mapping[str, Any]) -> List[ValidatedLevel]:
        """Validate every supplied level top-down against the nearest supplied level above it."""

        validated: List[ValidatedLevel] = []
        previous: Optional[ValidatedLevel] = None

        for level in hierarchy.levels:
            raw = filters.get(level.key)
            if is_absent(raw):
                continue

            if previous is None or previous.level.key == level.parent:
                parent_id = previous.id if previous else None
                name = self.validate_level(hierarchy, level, raw, parent_id=parent_id)
            else:
                name = self.validate_ancestry(hierarchy, level, raw, previous)
            current = ValidatedLevel(level=level, id=parse_id(raw, level.label), name=name)
            validated.append(current)
            previous = current

        logger.debug(
            "Validated %s filters: %s", hierarchy.name, {item.level.key: item.id for item in validated}
        )
        return validated
