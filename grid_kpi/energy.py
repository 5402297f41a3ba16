"""Consumer count and connected-load rollup over the feeder hierarchy."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.engine import Dialect
from sqlalchemy.sql.expression import TextClause

from .datasource import DataSource

logger = logging.getLogger(__name__)

# Aggregates consumers per DTR, then rolls them up to feeder and substation level.
ENERGY_ROLLUP_SQL = """
WITH dtr_load AS (
    SELECT dtr_id, COUNT(consumer_no) AS consumer_count, SUM(load_kw) AS total_load_kw
    FROM {consumers}
    GROUP BY dtr_id
),
feeder_load AS (
    SELECT f.id AS feeder_id,
           COALESCE(SUM(dl.consumer_count), 0) AS consumer_count,
           COALESCE(SUM(dl.total_load_kw), 0) AS total_load_kw
    FROM {feeders} f
    LEFT JOIN {dtrs} d ON d.feeder_id = f.id
    LEFT JOIN dtr_load dl ON dl.dtr_id = d.id
    GROUP BY f.id
),
substation_load AS (
    SELECT s.id AS substation_id,
           COALESCE(SUM(fl.consumer_count), 0) AS consumer_count,
           COALESCE(SUM(fl.total_load_kw), 0) AS total_load_kw
    FROM {substations} s
    LEFT JOIN {feeders} f ON f.substation_id = s.id
    LEFT JOIN feeder_load fl ON fl.feeder_id = f.id
    GROUP BY s.id
)
SELECT di.name AS district_name,
       s.name AS substation_name,
       f.name AS feeder_name,
       d.name AS dtr_name,
       COALESCE(dl.consumer_count, 0) AS dtr_consumer_count,
       COALESCE(dl.total_load_kw, 0) AS dtr_total_load_kw,
       COALESCE(fl.consumer_count, 0) AS feeder_consumer_count,
       COALESCE(fl.total_load_kw, 0) AS feeder_total_load_kw,
       COALESCE(sl.consumer_count, 0) AS substation_consumer_count,
       COALESCE(sl.total_load_kw, 0) AS substation_total_load_kw
FROM {dtrs} d
LEFT JOIN dtr_load dl ON dl.dtr_id = d.id
LEFT JOIN {feeders} f ON f.id = d.feeder_id
LEFT JOIN feeder_load fl ON fl.feeder_id = f.id
LEFT JOIN {substations} s ON s.id = f.substation_id
LEFT JOIN substation_load sl ON sl.substation_id = s.id
LEFT JOIN {districts} di ON di.id = s.district_id
ORDER BY district_name, substation_name, feeder_name, dtr_name
"""

ROLLUP_TABLES = ("consumers", "dtrs", "feeders", "substations", "districts")


def rollup_statement(dialect: Dialect, schema: Optional[str] = None) -> TextClause:
    preparer = dialect.identifier_preparer
    prefix = f"{preparer.quote_schema(schema)}." if schema else ""
    return text(ENERGY_ROLLUP_SQL.format(**{name: prefix + preparer.quote(name) for name in ROLLUP_TABLES}))


class EnergyService:
    def __init__(self, source: DataSource) -> None:
        self.source = source

    def energy_rollup(self) -> List[Dict[str, Any]]:
        statement = rollup_statement(self.source.engine.dialect, self.source.schema)
        rows = self.source.fetch_all(statement, error_message="Failed to fetch energy data")
        logger.info("Energy rollup returned %d DTR rows", len(rows))
        return rows
