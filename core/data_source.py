"""
Database access for the CPR store.

Handles:
- ODBC connection strings (trusted connection vs SQL Server authentication)
- SQLAlchemy engine creation with connection pooling
- Scoped connections that are released on every exit path
- Guarded read-only execution returning plain row mappings
"""
import time
import logging
import urllib.parse
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from pydantic import BaseModel
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from config import (
    CPR_DATABASE,
    CPR_DB_URL,
    CPR_DRIVER,
    CPR_PASSWORD,
    CPR_SCHEMA,
    CPR_SERVER,
    CPR_USERNAME,
    DATABASE_MAX_OVERFLOW,
    DATABASE_POOL_SIZE,
    SQL_TIMEOUT_SECONDS,
)
from core.errors import DataSourceError
from core.sql_builder import ensure_read_only
from utils.metrics import metrics

log = logging.getLogger("cpr")


class DataSourceOptions(BaseModel):
    """
    Connection options for the CPR database.

    Leave username and/or password as None to connect with the default
    identity (Windows authentication via a trusted connection).

    Attributes:
        username: SQL Server login
        password: SQL Server password
        driver_name: ODBC driver name
        server: Database host
        database: Database name
        url: Complete SQLAlchemy URL; overrides the ODBC settings when set
        schema_prefix: Qualifier prepended to table names
    """
    username: Optional[str] = None
    password: Optional[str] = None
    driver_name: str = CPR_DRIVER
    server: str = CPR_SERVER
    database: str = CPR_DATABASE
    url: Optional[str] = None
    schema_prefix: str = CPR_SCHEMA

    @property
    def uses_trusted_connection(self) -> bool:
        return self.username is None or self.password is None

    @classmethod
    def from_env(cls) -> "DataSourceOptions":
        return cls(
            username=CPR_USERNAME,
            password=CPR_PASSWORD,
            url=CPR_DB_URL,
        )


def build_odbc_connection_string(options: DataSourceOptions) -> str:
    """
    Build the ODBC connection string for the CPR server.

    Examples:
        >>> build_odbc_connection_string(DataSourceOptions(server="db", database="CPR"))
        'driver={SQL Server};server=db;database=CPR;trusted_connection=yes'
    """
    parts = [
        f"driver={{{options.driver_name}}}",
        f"server={options.server}",
        f"database={options.database}",
    ]
    if options.uses_trusted_connection:
        parts.append("trusted_connection=yes")
    else:
        parts.append(f"uid={options.username}")
        parts.append(f"pwd={options.password}")
    return ";".join(parts)


def build_connection_url(options: DataSourceOptions) -> str:
    """
    Convert options into a SQLAlchemy URL.

    An explicit url wins; otherwise the ODBC string is wrapped for the
    mssql+pyodbc dialect.
    """
    if options.url:
        return options.url
    odbc = build_odbc_connection_string(options)
    return "mssql+pyodbc:///?odbc_connect=" + urllib.parse.quote_plus(odbc)


def create_cpr_engine(options: DataSourceOptions) -> Engine:
    """Create a pooled engine; pool and timeout settings apply to SQL Server only."""
    url = build_connection_url(options)
    if not url.startswith("mssql"):
        return create_engine(url)

    return create_engine(
        url,
        pool_size=DATABASE_POOL_SIZE,
        max_overflow=DATABASE_MAX_OVERFLOW,
        pool_timeout=SQL_TIMEOUT_SECONDS,
        pool_pre_ping=True,
        connect_args={"timeout": SQL_TIMEOUT_SECONDS},
    )


class CPRConnection:
    """One open connection; executes guarded SELECTs and returns row mappings."""

    def __init__(self, conn: Connection, schema_prefix: str):
        self._conn = conn
        self.schema_prefix = schema_prefix

    def execute(self, sql: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Execute a read-only query.

        Args:
            sql: SELECT statement with :name bound parameters
            params: Values for the bound parameters

        Returns:
            List of {column: value} dictionaries in result order

        Raises:
            UnsafeQueryError: If the statement fails the read-only guard
            DataSourceError: If the driver reports any failure
        """
        safe_sql = ensure_read_only(sql)
        start = time.time()

        try:
            result = self._conn.execute(text(safe_sql), params or {})
            rows = [dict(row) for row in result.mappings().all()]
        except SQLAlchemyError as e:
            log.error(f"❌ Query failed: {e}")
            raise DataSourceError(f"Query failed: {e}") from e

        elapsed = time.time() - start
        metrics.log_sql_query(elapsed)
        log.info(f"⚡ SQL executed in {elapsed:.2f}s, returned {len(rows)} rows")
        return rows


class CPRDataSource:
    """
    Handle on the CPR database.

    The engine is created once and pooled; every operation takes its own
    connection through connect() and gives it back when the block exits.

    Examples:
        >>> source = CPRDataSource.from_options(DataSourceOptions(username="u", password="p"))
        >>> with source.connect() as conn:
        ...     rows = conn.execute("SELECT ForecastID, TemplateID, Name FROM CPR.dbo.Forecasts")
    """

    def __init__(self, engine: Engine, schema_prefix: str = CPR_SCHEMA):
        self.engine = engine
        self.schema_prefix = schema_prefix

    @classmethod
    def from_options(cls, options: DataSourceOptions) -> "CPRDataSource":
        return cls(create_cpr_engine(options), schema_prefix=options.schema_prefix)

    @classmethod
    def from_env(cls) -> "CPRDataSource":
        return cls.from_options(DataSourceOptions.from_env())

    @contextmanager
    def connect(self) -> Iterator[CPRConnection]:
        try:
            conn = self.engine.connect()
        except SQLAlchemyError as e:
            log.error(f"❌ Database connection failed: {e}")
            raise DataSourceError(f"Database connection failed: {e}") from e

        try:
            yield CPRConnection(conn, self.schema_prefix)
        finally:
            conn.close()

    def dispose(self) -> None:
        self.engine.dispose()
