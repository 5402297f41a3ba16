"""FastAPI application entrypoint."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .catalog import KPI_CATALOG, kpi_tables
from .config import Settings, get_settings
from .datasource import DataSource
from .energy import EnergyService
from .errors import DataAccessError
from .filters import FilterService
from .hierarchy import LEVELS_BY_ROUTE, HierarchyValidator
from .kpis import KpiQueryBuilder
from .model import EnergyRow, GeoOption, Health, KpiInfo

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        primary = DataSource.from_settings(settings, settings.database_url, name="primary")
        primary.open()
        kpi_source = primary
        if settings.kpi_database_url:
            kpi_source = DataSource.from_settings(settings, settings.kpi_database_url, name="kpi")
            kpi_source.open()

        app.state.primary_source = primary
        app.state.kpi_source = kpi_source
        try:
            yield
        finally:
            if kpi_source is not primary:
                kpi_source.close()
            primary.close()

    app = FastAPI(title="Grid KPI Dashboard API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_exception_handler(DataAccessError, _data_access_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    _register_routes(app)
    return app


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_primary_source(request: Request) -> DataSource:
    return request.app.state.primary_source


def get_kpi_source(request: Request) -> DataSource:
    return request.app.state.kpi_source


def get_validator(source: DataSource = Depends(get_primary_source)) -> HierarchyValidator:
    return HierarchyValidator(source)


def get_filter_service(
    source: DataSource = Depends(get_primary_source),
    kpi_source: DataSource = Depends(get_kpi_source),
    validator: HierarchyValidator = Depends(get_validator),
) -> FilterService:
    return FilterService(source, validator, kpi_source=kpi_source)


def get_kpi_builder(
    request: Request,
    kpi_source: DataSource = Depends(get_kpi_source),
    validator: HierarchyValidator = Depends(get_validator),
) -> KpiQueryBuilder:
    settings: Settings = request.app.state.settings
    return KpiQueryBuilder(kpi_source, validator, anchor_levels=settings.anchor_levels)


def get_energy_service(source: DataSource = Depends(get_primary_source)) -> EnergyService:
    return EnergyService(source)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

def _register_routes(app: FastAPI) -> None:
    @app.get("/health", response_model=Health)
    def health(request: Request) -> Health:
        primary: DataSource = request.app.state.primary_source
        kpi_source: DataSource = request.app.state.kpi_source
        sources = [primary] if kpi_source is primary else [primary, kpi_source]
        databases = {source.name: "up" if source.ping() else "down" for source in sources}
        return Health(
            status="ok" if all(state == "up" for state in databases.values()) else "degraded",
            kpi_store="shared" if kpi_source is primary else "separate",
            databases=databases,
        )

    @app.get("/api/filters/years", response_model=List[str])
    def list_years(service: FilterService = Depends(get_filter_service)) -> List[str]:
        return service.list_available_years(kpi_tables())

    @app.get("/api/filters/{level_route}", response_model=List[GeoOption])
    def list_filter_options(
        level_route: str,
        request: Request,
        service: FilterService = Depends(get_filter_service),
    ) -> JSONResponse:
        if level_route not in LEVELS_BY_ROUTE:
            raise HTTPException(status_code=404, detail=f"Unknown filter '{level_route}'.")
        hierarchy, level = LEVELS_BY_ROUTE[level_route]
        parent = hierarchy.parent_of(level)
        parent_raw = request.query_params.get(parent.param) if parent else None
        options = service.list_options(hierarchy, level, parent_raw)
        return JSONResponse(content=jsonable_encoder(options))

    @app.get("/api/kpi", response_model=List[KpiInfo])
    def list_kpis() -> List[KpiInfo]:
        return [
            KpiInfo(slug=kpi.slug, title=kpi.title, shape=kpi.shape, unit=kpi.unit)
            for kpi in KPI_CATALOG.values()
        ]

    @app.get("/api/kpi/{slug}")
    def get_kpi(
        slug: str,
        circle_id: Optional[str] = Query(None, alias="circleId"),
        division_id: Optional[str] = Query(None, alias="divisionId"),
        subdivision_id: Optional[str] = Query(None, alias="subdivisionId"),
        section_id: Optional[str] = Query(None, alias="sectionId"),
        year: Optional[str] = Query(None),
        builder: KpiQueryBuilder = Depends(get_kpi_builder),
    ) -> JSONResponse:
        kpi = KPI_CATALOG.get(slug)
        if kpi is None:
            raise HTTPException(status_code=404, detail=f"Unknown KPI '{slug}'.")

        filters = {
            "circle": circle_id,
            "division": division_id,
            "subdivision": subdivision_id,
            "section": section_id,
            "year": year,
        }
        rows = builder.build_and_run(kpi, filters)
        return JSONResponse(content=jsonable_encoder(rows))

    @app.get("/api/energy", response_model=List[EnergyRow])
    def get_energy(service: EnergyService = Depends(get_energy_service)) -> JSONResponse:
        return JSONResponse(content=jsonable_encoder(service.energy_rollup()))


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------

async def _data_access_error_handler(request: Request, exc: DataAccessError) -> JSONResponse:
    if exc.kind.is_client_error:
        logger.info("Rejected %s: %s", request.url.path, exc.message)
    else:
        logger.error("Failed %s: %s (%s)", request.url.path, exc.message, exc.details)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


app = create_app()


def run() -> None:
    """Serve the API with uvicorn on the configured host and port."""

    import uvicorn

    settings = get_settings()
    uvicorn.run("grid_kpi.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
