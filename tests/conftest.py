"""
Shared fixtures: an in-memory SQLite copy of the CPR tables.

To run tests: pytest tests/
"""
from typing import Dict, List, Optional

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

from core.data_source import CPRDataSource

DDL = [
    "CREATE TABLE Forecasts (ForecastID INTEGER, TemplateID INTEGER, Name TEXT)",
    "CREATE TABLE Templates (TemplateID INTEGER, TemplateString TEXT, SheetCount INTEGER)",
    "CREATE TABLE ForecastData (ForecastDataID INTEGER, ForecastID INTEGER, UploadDate TEXT, "
    "ForecastTitle TEXT, MetaDataCase TEXT, ForecastData TEXT)",
    "CREATE TABLE ForecastArchive (ForecastArchiveID INTEGER, ForecastID INTEGER, UploadDate TEXT, "
    "ForecastTitle TEXT, MetaDataCase TEXT, ForecastData TEXT)",
]


def make_payload(records: List[Dict[str, str]]) -> str:
    """Render records as an import/dataset/r document."""
    body = "".join(
        "<r>" + "".join(f'<c l="{label}">{value}</c>' for label, value in record.items()) + "</r>"
        for record in records
    )
    return f"<import><dataset>{body}</dataset></import>"


class CPRSeeder:
    """Inserts forecasts, templates and vintages into the test database."""

    def __init__(self, engine):
        self.engine = engine
        self._next_id = {"ForecastData": 1, "ForecastArchive": 1}

    def add_forecast(self, forecast_id: int, name: str, template_string: Optional[str], template_id: Optional[int] = None):
        template_id = forecast_id if template_id is None else template_id
        with self.engine.begin() as conn:
            conn.execute(
                text("INSERT INTO Forecasts VALUES (:id, :template_id, :name)"),
                {"id": forecast_id, "template_id": template_id, "name": name},
            )
            if template_string is not None:
                conn.execute(
                    text("INSERT INTO Templates VALUES (:template_id, :template_string, 1)"),
                    {"template_id": template_id, "template_string": template_string},
                )

    def add_vintage(
        self,
        forecast_id: int,
        title: str,
        upload_date: str,
        records: Optional[List[Dict[str, str]]] = None,
        table: str = "ForecastData",
        case: str = "Base",
        payload: Optional[str] = None,
    ) -> int:
        record_id = self._next_id[table]
        self._next_id[table] += 1
        if payload is None:
            payload = make_payload(records or [])
        with self.engine.begin() as conn:
            conn.execute(
                text(f"INSERT INTO {table} VALUES (:id, :forecast_id, :upload_date, :title, :case, :payload)"),
                {
                    "id": record_id,
                    "forecast_id": forecast_id,
                    "upload_date": upload_date,
                    "title": title,
                    "case": case,
                    "payload": payload,
                },
            )
        return record_id


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    with engine.begin() as conn:
        for ddl in DDL:
            conn.execute(text(ddl))
    yield engine
    engine.dispose()


@pytest.fixture
def seeder(engine):
    return CPRSeeder(engine)


@pytest.fixture
def source(engine):
    return CPRDataSource(engine, schema_prefix="")


@pytest.fixture
def henry_hub(seeder):
    """Henry Hub gas prices with two vintages, the older one archived."""
    seeder.add_forecast(1, "Henry Hub Natural Gas", "Year:::|Month:::|Price ($/MMBtu)::|")
    seeder.add_vintage(
        1,
        "FY18 Strategic PSP",
        "May  1 2018 10:30AM",
        [{"Year": "2018", "Month": "6", "Price ($/MMBtu)": "2.95"}],
        table="ForecastArchive",
    )
    seeder.add_vintage(
        1,
        "FY19 Budget",
        "Jan 10 2019  9:15AM",
        [
            {"Year": "2019", "Month": "1", "Price ($/MMBtu)": "3.10"},
            {"Year": "2019", "Month": "2", "Price ($/MMBtu)": "3.05"},
        ],
    )
    return seeder
