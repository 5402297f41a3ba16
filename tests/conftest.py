"""Shared fixtures: a seeded SQLite database standing in for the grid stores."""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text

from grid_kpi.config import Settings
from grid_kpi.datasource import DataSource
from grid_kpi.hierarchy import HierarchyValidator
from grid_kpi.main import create_app

GEO_KEYS = "CircleID INTEGER, DivisionID INTEGER, SubdivisionID INTEGER, SectionID INTEGER"

SCHEMA = [
    "CREATE TABLE circles (CircleID INTEGER PRIMARY KEY, CircleName TEXT NOT NULL)",
    "CREATE TABLE divisions (DivisionID INTEGER PRIMARY KEY, DivisionName TEXT NOT NULL, CircleID INTEGER)",
    "CREATE TABLE subdivisions (SubdivisionID INTEGER PRIMARY KEY, SubdivisionName TEXT NOT NULL, DivisionID INTEGER)",
    "CREATE TABLE sections (SectionID INTEGER PRIMARY KEY, SectionName TEXT NOT NULL, SubdivisionID INTEGER)",
    f"CREATE TABLE billing_efficiency ({GEO_KEYS}, Month INTEGER, Year INTEGER, BillingEfficiency REAL)",
    f"CREATE TABLE collection_efficiency ({GEO_KEYS}, Month INTEGER, Year INTEGER, CollectionEfficiency REAL)",
    f"CREATE TABLE atc_losses ({GEO_KEYS}, Month INTEGER, Year INTEGER, ATCLossPercent REAL)",
    f"CREATE TABLE outages ({GEO_KEYS}, Month INTEGER, Year INTEGER, OutageHours REAL)",
    f"CREATE TABLE revenue ({GEO_KEYS}, Month INTEGER, Year INTEGER, RevenueCollected REAL)",
    f"CREATE TABLE arrears ({GEO_KEYS}, ConsumerCategory TEXT, Year INTEGER, ArrearAmount REAL)",
    f"CREATE TABLE consumer_summary ({GEO_KEYS}, Year INTEGER, TotalConsumers INTEGER,"
    " MeteredConsumers INTEGER, UnmeteredConsumers INTEGER)",
    "CREATE TABLE districts (id INTEGER PRIMARY KEY, name TEXT NOT NULL)",
    "CREATE TABLE substations (id INTEGER PRIMARY KEY, name TEXT NOT NULL, district_id INTEGER)",
    "CREATE TABLE feeders (id INTEGER PRIMARY KEY, name TEXT NOT NULL, substation_id INTEGER)",
    "CREATE TABLE dtrs (id INTEGER PRIMARY KEY, name TEXT NOT NULL, feeder_id INTEGER)",
    "CREATE TABLE consumers (consumer_no TEXT PRIMARY KEY, dtr_id INTEGER, load_kw REAL)",
]

# section -> (circle, division, subdivision)
SECTION_PARENTS = {
    42: (5, 51, 511),
    43: (5, 51, 511),
    44: (5, 51, 512),
    7111: (7, 71, 711),
}


def _geo(section_id):
    circle, division, subdivision = SECTION_PARENTS[section_id]
    return {"c": circle, "d": division, "s": subdivision, "sec": section_id}


def _monthly(section_id, month, year, value):
    return dict(_geo(section_id), month=month, year=year, value=value)


BILLING = [
    _monthly(42, 4, 2023, 90.5),
    _monthly(42, 5, 2023, 91.0),
    _monthly(42, 6, 2023, 92.25),
    _monthly(43, 4, 2023, 80.5),
    _monthly(42, 4, 2022, 88.0),
    _monthly(7111, 4, 2023, 70.0),
]

OUTAGES = [
    _monthly(42, 4, 2023, 3.5),
    _monthly(43, 4, 2023, 1.5),
    _monthly(42, 4, 2021, 9.0),
]

REVENUE = [
    _monthly(42, 4, 2024, 125000.0),
    _monthly(42, 4, 2023, 118000.0),
]

ARREARS = [
    dict(_geo(42), category="Domestic", year=2023, value=1000.0),
    dict(_geo(42), category="Commercial", year=2023, value=2500.0),
    dict(_geo(43), category="Domestic", year=2023, value=500.0),
]

CONSUMER_SUMMARY = [
    dict(_geo(43), year=2023, total=800, metered=790, unmetered=10),
    dict(_geo(42), year=2023, total=1200, metered=1100, unmetered=100),
]


def seed_database(url):
    engine = create_engine(url)
    with engine.begin() as conn:
        for statement in SCHEMA:
            conn.execute(text(statement))

        conn.execute(
            text("INSERT INTO circles VALUES (:id, :name)"),
            [
                {"id": 1, "name": "North Circle"},
                {"id": 5, "name": "Central Circle"},
                {"id": 7, "name": "West Circle"},
            ],
        )
        conn.execute(
            text("INSERT INTO divisions VALUES (:id, :name, :parent)"),
            [
                {"id": 51, "name": "Pune Urban", "parent": 5},
                {"id": 52, "name": "Baramati", "parent": 5},
                {"id": 53, "name": "Akola", "parent": 5},
                {"id": 71, "name": "Solapur", "parent": 7},
            ],
        )
        conn.execute(
            text("INSERT INTO subdivisions VALUES (:id, :name, :parent)"),
            [
                {"id": 511, "name": "Shivajinagar", "parent": 51},
                {"id": 512, "name": "Kothrud", "parent": 51},
                {"id": 711, "name": "Pandharpur", "parent": 71},
            ],
        )
        conn.execute(
            text("INSERT INTO sections VALUES (:id, :name, :parent)"),
            [
                {"id": 42, "name": "Deccan", "parent": 511},
                {"id": 43, "name": "Model Colony", "parent": 511},
                {"id": 44, "name": "Karve Road", "parent": 512},
                {"id": 7111, "name": "Temple Road", "parent": 711},
            ],
        )

        for table_name, measure, rows in (
            ("billing_efficiency", "BillingEfficiency", BILLING),
            ("collection_efficiency", "CollectionEfficiency", BILLING[:2]),
            ("atc_losses", "ATCLossPercent", BILLING[:1]),
            ("outages", "OutageHours", OUTAGES),
            ("revenue", "RevenueCollected", REVENUE),
        ):
            conn.execute(
                text(
                    f"INSERT INTO {table_name} (CircleID, DivisionID, SubdivisionID, SectionID, Month, Year, {measure}) "
                    "VALUES (:c, :d, :s, :sec, :month, :year, :value)"
                ),
                rows,
            )

        conn.execute(
            text(
                "INSERT INTO arrears (CircleID, DivisionID, SubdivisionID, SectionID, ConsumerCategory, Year, ArrearAmount) "
                "VALUES (:c, :d, :s, :sec, :category, :year, :value)"
            ),
            ARREARS,
        )
        conn.execute(
            text(
                "INSERT INTO consumer_summary (CircleID, DivisionID, SubdivisionID, SectionID, Year, "
                "TotalConsumers, MeteredConsumers, UnmeteredConsumers) "
                "VALUES (:c, :d, :s, :sec, :year, :total, :metered, :unmetered)"
            ),
            CONSUMER_SUMMARY,
        )

        conn.execute(text("INSERT INTO districts VALUES (1, 'Agartala'), (2, 'Dhalai')"))
        conn.execute(
            text("INSERT INTO substations VALUES (10, 'Banamalipur', 1), (11, 'Jirania', 1), (20, 'Ambassa', 2)")
        )
        conn.execute(text("INSERT INTO feeders VALUES (100, 'College Tilla', 10), (101, 'Ramnagar', 10)"))
        conn.execute(text("INSERT INTO dtrs VALUES (1000, 'DTR-A', 100), (1001, 'DTR-B', 100), (1010, 'DTR-C', 101)"))
        conn.execute(
            text("INSERT INTO consumers VALUES (:no, :dtr, :load)"),
            [
                {"no": "C-1", "dtr": 1000, "load": 2.0},
                {"no": "C-2", "dtr": 1000, "load": 3.5},
                {"no": "C-3", "dtr": 1001, "load": 1.5},
                {"no": "C-4", "dtr": 1010, "load": 4.0},
            ],
        )
    engine.dispose()


@pytest.fixture
def db_url(tmp_path):
    url = f"sqlite:///{tmp_path / 'grid.db'}"
    seed_database(url)
    return url


@pytest.fixture
def source(db_url):
    data_source = DataSource(url=db_url)
    data_source.open()
    yield data_source
    data_source.close()


@pytest.fixture
def validator(source):
    return HierarchyValidator(source)


@pytest.fixture
def settings(db_url):
    return Settings(_env_file=None, database_url=db_url, kpi_database_url=None, log_level="WARNING")


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as test_client:
        yield test_client
