"""
Public CPR operations.

- list_forecast_types: the forecast catalog
- list_vintages: deduplicated gen plans of one forecast, newest first
- query_forecast_data: template-driven extraction of one vintage's payload

Every operation opens its own connection from the data source and releases
it on all exit paths. Nothing is cached between calls, so "most recent
vintage" always reflects the store at call time.
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from core.data_source import CPRDataSource
from core.errors import ForecastTypeNotFound, VintageNotFound
from core.sql_builder import forecasts_query, template_query
from core.templates import parse_template
from core.vintages import resolve_vintages, select_vintage
from core.xml_extractor import extract_fields
from models import ForecastDataResult, ForecastType, QueryStatus, Template, VintageRecord
from utils.metrics import metrics

log = logging.getLogger("cpr")


@contextmanager
def _tracked(name: str) -> Iterator[None]:
    metrics.log_operation(name)
    try:
        yield
    except Exception:
        metrics.log_error()
        raise


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value != value:
        return None
    return int(value)


def _forecast_from_row(row: Dict[str, Any], template: Optional[Template] = None) -> ForecastType:
    return ForecastType(
        id=int(row["ForecastID"]),
        template_id=int(row["TemplateID"]),
        name=str(row["Name"]),
        template=template,
    )


def fetch_forecast_types(conn) -> List[ForecastType]:
    return [_forecast_from_row(row) for row in conn.execute(forecasts_query(conn.schema_prefix))]


def fetch_template(conn, template_id: int) -> Template:
    """Load a template row; a missing row is treated as an empty template."""
    rows = conn.execute(template_query(conn.schema_prefix), {"template_id": template_id})
    if not rows:
        log.warning(f"⚠️ Template {template_id} not found; treating it as empty")
        return Template(id=template_id)

    row = rows[0]
    template_string = row.get("TemplateString")
    return Template(
        id=template_id,
        template_string=template_string if isinstance(template_string, str) else None,
        sheet_count=_optional_int(row.get("SheetCount")),
    )


def resolve_forecast(conn, name: str) -> ForecastType:
    """
    Find a forecast type by exact, case-sensitive name and attach its template.

    Raises:
        ForecastTypeNotFound: If no catalog entry has this name
    """
    for forecast in fetch_forecast_types(conn):
        if forecast.name == name:
            template = fetch_template(conn, forecast.template_id)
            return forecast.model_copy(update={"template": template})
    raise ForecastTypeNotFound(name)


def list_forecast_types(source: CPRDataSource) -> List[ForecastType]:
    """
    List every forecast type in the catalog.

    Returns:
        ForecastType entries (id, template_id, name) in catalog order
    """
    with _tracked("list_forecast_types"), source.connect() as conn:
        return fetch_forecast_types(conn)


def list_vintages(source: CPRDataSource, forecast_name: str) -> List[VintageRecord]:
    """
    List the gen plans available for a forecast type.

    Returns:
        One VintageRecord per distinct title (its latest upload), ordered
        most recent first

    Raises:
        ForecastTypeNotFound: If forecast_name matches no forecast type
        DateParseError: If an upload date is malformed
    """
    with _tracked("list_vintages"), source.connect() as conn:
        forecast = resolve_forecast(conn, forecast_name)
        return resolve_vintages(conn, forecast)


def query_forecast_data(
    source: CPRDataSource,
    forecast_name: str,
    vintage_title: Optional[str] = None,
) -> ForecastDataResult:
    """
    Extract one vintage of a forecast type as a flat table.

    Args:
        source: CPR data source
        forecast_name: Exact forecast type name (see list_forecast_types)
        vintage_title: Gen plan title (see list_vintages); None selects the
            most recent vintage

    Returns:
        ForecastDataResult. On an unmatched title the status is
        VINTAGE_NOT_FOUND and the frame is empty; callers should re-list
        vintages. A matched vintage with no records has status OK and an
        empty frame.

    Raises:
        ForecastTypeNotFound: If forecast_name matches no forecast type
        DateParseError: If an upload date is malformed
        DataSourceError: On connection or query failure

    Examples:
        >>> result = query_forecast_data(source, "Henry Hub Natural Gas")
        >>> result.vintage.title
        'FY19 Budget'
    """
    with _tracked("query_forecast_data"), source.connect() as conn:
        forecast = resolve_forecast(conn, forecast_name)
        vintages = resolve_vintages(conn, forecast)

        try:
            vintage = select_vintage(vintages, forecast.name, vintage_title)
        except VintageNotFound as e:
            metrics.log_vintage_miss()
            log.warning(f"⚠️ {e}")
            return ForecastDataResult(
                forecast=forecast,
                status=QueryStatus.VINTAGE_NOT_FOUND,
                message=str(e),
            )

        log.info(
            f"🎯 {forecast.name!r}: using vintage {vintage.title!r} "
            f"({vintage.upload_date}) from {vintage.source.table.value}"
        )

        fields = parse_template(forecast.template.template_string if forecast.template else None)
        data = extract_fields(conn, forecast, vintage, fields)
        return ForecastDataResult(forecast=forecast, vintage=vintage, data=data)
