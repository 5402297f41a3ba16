"""Pydantic response models for the dashboard API."""
from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class GeoOption(BaseModel):
    id: int
    name: str


class KpiInfo(BaseModel):
    slug: str
    title: str
    shape: str
    unit: Optional[str] = None


class EnergyRow(BaseModel):
    district_name: Optional[str] = None
    substation_name: Optional[str] = None
    feeder_name: Optional[str] = None
    dtr_name: Optional[str] = None
    dtr_consumer_count: int = 0
    dtr_total_load_kw: float = 0.0
    feeder_consumer_count: int = 0
    feeder_total_load_kw: float = 0.0
    substation_consumer_count: int = 0
    substation_total_load_kw: float = 0.0


class Health(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str
    kpi_store: str = Field(alias="kpiStore")
    databases: Dict[str, str] = Field(default_factory=dict)
