"""KPI catalog: the fixed set of metric tables the dashboard may query."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .hierarchy import CIRCLE_HIERARCHY

YEAR_COLUMN = "Year"
MONTH_COLUMN = "Month"

SERIES = "series"
CATEGORY = "category"
RAW = "raw"

# KPI tables are keyed by the same ID columns as the circle hierarchy tables.
GEO_FILTER_COLUMNS: Dict[str, str] = {level.key: level.id_column for level in CIRCLE_HIERARCHY.levels}


@dataclass(frozen=True, slots=True)
class KpiDefinition:
    """Definition for a KPI table exposed under ``/api/kpi/<slug>``."""

    slug: str
    title: str
    table: str
    shape: str
    measure: Optional[str] = None
    period_column: Optional[str] = None
    aggregate: str = "sum"
    unit: Optional[str] = None
    output_columns: Tuple[str, ...] = ()
    order_by: Tuple[str, ...] = ()
    filter_columns: Dict[str, str] = field(default_factory=lambda: dict(GEO_FILTER_COLUMNS))


KPI_CATALOG: Dict[str, KpiDefinition] = {
    "billing-efficiency": KpiDefinition(
        slug="billing-efficiency",
        title="Billing efficiency",
        table="billing_efficiency",
        shape=SERIES,
        measure="BillingEfficiency",
        period_column=MONTH_COLUMN,
        aggregate="avg",
        unit="%",
    ),
    "collection-efficiency": KpiDefinition(
        slug="collection-efficiency",
        title="Collection efficiency",
        table="collection_efficiency",
        shape=SERIES,
        measure="CollectionEfficiency",
        period_column=MONTH_COLUMN,
        aggregate="avg",
        unit="%",
    ),
    "atc-losses": KpiDefinition(
        slug="atc-losses",
        title="AT&C losses",
        table="atc_losses",
        shape=SERIES,
        measure="ATCLossPercent",
        period_column=MONTH_COLUMN,
        aggregate="avg",
        unit="%",
    ),
    "outages": KpiDefinition(
        slug="outages",
        title="Outage hours",
        table="outages",
        shape=SERIES,
        measure="OutageHours",
        period_column=MONTH_COLUMN,
        unit="h",
    ),
    "revenue": KpiDefinition(
        slug="revenue",
        title="Revenue collected",
        table="revenue",
        shape=SERIES,
        measure="RevenueCollected",
        period_column=MONTH_COLUMN,
        unit="INR",
    ),
    "arrears": KpiDefinition(
        slug="arrears",
        title="Arrears by consumer category",
        table="arrears",
        shape=CATEGORY,
        measure="ArrearAmount",
        period_column="ConsumerCategory",
        unit="INR",
    ),
    "consumer-summary": KpiDefinition(
        slug="consumer-summary",
        title="Consumer summary",
        table="consumer_summary",
        shape=RAW,
        output_columns=(
            "SectionID",
            YEAR_COLUMN,
            "TotalConsumers",
            "MeteredConsumers",
            "UnmeteredConsumers",
        ),
        order_by=("SectionID",),
    ),
}


def kpi_tables() -> List[str]:
    """Return the distinct KPI table names in catalog order."""

    tables: List[str] = []
    for definition in KPI_CATALOG.values():
        if definition.table not in tables:
            tables.append(definition.table)
    return tables
