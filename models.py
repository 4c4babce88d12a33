"""
Pydantic models for CPR records and API responses.

Domain records are read-only projections of the CPR tables and live only for
the duration of one operation.
"""
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Tuple

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field


class Template(BaseModel):
    """
    Field layout of a forecast type's XML payload.

    Attributes:
        id: TemplateID
        template_string: "::|"-delimited field names, ":" marking annotations
        sheet_count: Expected record count as stored in CPR
    """
    model_config = ConfigDict(frozen=True)

    id: int
    template_string: Optional[str] = None
    sheet_count: Optional[int] = None


class ForecastType(BaseModel):
    """
    A named forecast series (e.g. a fuel price) and its template.

    Attributes:
        id: ForecastID
        template_id: TemplateID of the payload layout
        name: Display name, unique within the catalog
        template: Template row, when it was loaded alongside the forecast
    """
    model_config = ConfigDict(frozen=True)

    id: int
    template_id: int
    name: str
    template: Optional[Template] = Field(default=None, exclude=True)


class SourceTable(str, Enum):
    """Physical table a vintage was read from."""
    CURRENT = "ForecastData"
    ARCHIVE = "ForecastArchive"


class VintageSource(BaseModel):
    """Provenance of a vintage: its table and the id valid only within that table."""
    model_config = ConfigDict(frozen=True)

    table: SourceTable
    record_id: int


class VintageRecord(BaseModel):
    """
    One uploaded vintage (gen plan) of a forecast type.

    Attributes:
        title: ForecastTitle, e.g. "FY19 Budget"
        upload_date: UploadDate exactly as stored
        uploaded_at: Parsed upload timestamp
        source: Table and table-specific id the row came from
    """
    model_config = ConfigDict(frozen=True)

    title: str
    upload_date: str
    uploaded_at: datetime
    source: VintageSource


class TemplateField(BaseModel):
    """A single template field: the XML label and its result column name."""
    model_config = ConfigDict(frozen=True)

    source_name: str
    column_name: str


# Ordered fields parsed from a template string
FieldSpec = Tuple[TemplateField, ...]


class QueryStatus(str, Enum):
    OK = "ok"
    VINTAGE_NOT_FOUND = "vintage_not_found"


class ForecastDataResult(BaseModel):
    """
    Outcome of query_forecast_data.

    A vintage miss is reported with status VINTAGE_NOT_FOUND and an empty
    frame, which keeps it distinguishable from a vintage with zero records.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    forecast: ForecastType
    vintage: Optional[VintageRecord] = None
    status: QueryStatus = QueryStatus.OK
    message: Optional[str] = None
    data: pd.DataFrame = Field(default_factory=pd.DataFrame)

    @property
    def found(self) -> bool:
        return self.status is QueryStatus.OK


class ForecastDataResponse(BaseModel):
    """
    API response model for /forecasts/{name}/data.

    Attributes:
        forecast: Forecast type name
        vintage: Resolved vintage title (None on a vintage miss)
        status: "ok" or "vintage_not_found"
        message: Explanation when the vintage could not be matched
        columns: Column names derived from the template
        rows: One mapping per XML record
    """
    forecast: str
    vintage: Optional[str] = None
    status: QueryStatus
    message: Optional[str] = None
    columns: List[str] = Field(default_factory=list)
    rows: List[Dict[str, Optional[str]]] = Field(default_factory=list)


class MetricsResponse(BaseModel):
    """
    Metrics endpoint response model.

    Attributes:
        operations: Total number of public operations run
        sql_queries: Total number of SQL statements executed
        errors: Total number of failed operations
        vintage_misses: Queries that ended in a soft vintage miss
        avg_sql_time: Average SQL execution time
    """
    operations: int
    sql_queries: int
    errors: int
    vintage_misses: int
    avg_sql_time: float
