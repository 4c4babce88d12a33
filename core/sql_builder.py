"""
Read-only query texts for the CPR tables, and the guard that checks them.

Handles:
- Table-name qualification (CPR.dbo.<table> by default)
- Fixed SELECT statements with bound parameters
- Whitelist validation using AST parsing before anything reaches the driver
"""
import re
import logging
from typing import Set

from sqlglot import parse_one, exp
from sqlglot.errors import ParseError

from config import (
    ALLOWED_TABLES,
    ARCHIVE_TABLE,
    CURRENT_TABLE,
    FORECASTS_TABLE,
    PAYLOAD_COLUMN,
    TEMPLATES_TABLE,
)
from core.errors import UnsafeQueryError
from models import SourceTable

log = logging.getLogger("cpr")

# Primary key column of each data table
ID_COLUMNS = {
    SourceTable.CURRENT: "ForecastDataID",
    SourceTable.ARCHIVE: "ForecastArchiveID",
}

TABLE_NAMES = {
    SourceTable.CURRENT: CURRENT_TABLE,
    SourceTable.ARCHIVE: ARCHIVE_TABLE,
}


def qualify(table: str, schema: str) -> str:
    """
    Prefix a table name with the configured schema.

    Examples:
        >>> qualify("Forecasts", "CPR.dbo")
        'CPR.dbo.Forecasts'

        >>> qualify("Forecasts", "")
        'Forecasts'
    """
    schema = (schema or "").strip().rstrip(".")
    return f"{schema}.{table}" if schema else table


def forecasts_query(schema: str) -> str:
    return f"SELECT ForecastID, TemplateID, Name FROM {qualify(FORECASTS_TABLE, schema)}"


def template_query(schema: str) -> str:
    return (
        f"SELECT TemplateID, TemplateString, SheetCount FROM {qualify(TEMPLATES_TABLE, schema)} "
        "WHERE TemplateID = :template_id"
    )


def vintages_query(source: SourceTable, schema: str) -> str:
    """
    List the Base-case uploads of one forecast in one data table.

    The table's own id column is selected as RecordID so current and archive
    rows share a shape.
    """
    return (
        f"SELECT {ID_COLUMNS[source]} AS RecordID, ForecastID, UploadDate, ForecastTitle, MetaDataCase "
        f"FROM {qualify(TABLE_NAMES[source], schema)} "
        "WHERE MetaDataCase = :metadata_case AND ForecastID = :forecast_id"
    )


def payload_query(source: SourceTable, schema: str) -> str:
    """Fetch the XML payload of exactly one resolved vintage row."""
    return (
        f"SELECT {PAYLOAD_COLUMN} FROM {qualify(TABLE_NAMES[source], schema)} "
        "WHERE MetaDataCase = :metadata_case AND ForecastID = :forecast_id "
        f"AND ForecastTitle = :title AND {ID_COLUMNS[source]} = :record_id"
    )


def ensure_read_only(sql: str) -> str:
    """
    Reject anything that is not a single SELECT over whitelisted CPR tables.

    Args:
        sql: SQL text about to be executed

    Returns:
        The SQL text with surrounding whitespace and trailing semicolons removed

    Raises:
        UnsafeQueryError: If the statement is not a SELECT, cannot be parsed,
            or references a table outside ALLOWED_TABLES

    Examples:
        >>> ensure_read_only("SELECT ForecastID FROM CPR.dbo.Forecasts")
        'SELECT ForecastID FROM CPR.dbo.Forecasts'

        >>> ensure_read_only("DELETE FROM CPR.dbo.Forecasts")
        # Raises UnsafeQueryError
    """
    sql = re.sub(r"--.*", "", sql)
    sql = sql.strip().rstrip(";").strip()

    if not sql.lower().startswith("select"):
        raise UnsafeQueryError("Only SELECT statements are allowed.")

    try:
        parsed_expression = parse_one(sql, read="tsql")
    except ParseError as e:
        log.error(f"SQL PARSE ERROR: {e}")
        raise UnsafeQueryError(f"Query could not be parsed for review: {e}") from e

    if not isinstance(parsed_expression, exp.Select):
        raise UnsafeQueryError("Only SELECT statements are allowed.")

    tables: Set[str] = set()
    for table_exp in parsed_expression.find_all(exp.Table):
        t_name = table_exp.name.lower()
        if t_name not in ALLOWED_TABLES:
            raise UnsafeQueryError(f"Unauthorized table `{t_name}`. Allowed: {sorted(ALLOWED_TABLES)}")
        tables.add(t_name)

    log.debug(f"Query guard passed. Tables: {sorted(tables)}")
    return sql
