# main.py: CPR forecast API

import time
import uuid
import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from functools import lru_cache
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from config import APP_SECRET_KEY
from core.cpr import list_forecast_types, list_vintages, query_forecast_data
from core.data_source import CPRDataSource
from core.errors import (
    DataSourceError,
    DateParseError,
    ForecastTypeNotFound,
    PayloadParseError,
    UnsafeQueryError,
)
from models import ForecastDataResponse, ForecastType, MetricsResponse, VintageRecord
from utils.metrics import metrics

# -----------------------------
# Boot + Config
# -----------------------------
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
log = logging.getLogger("cpr")

# Request ID tracking for observability
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


@lru_cache(maxsize=1)
def get_data_source() -> CPRDataSource:
    """Shared data source; the engine pools connections, each request takes its own."""
    return CPRDataSource.from_env()


def require_app_key(x_app_key: Optional[str] = Header(default=None, alias="X-App-Key")) -> None:
    if APP_SECRET_KEY and x_app_key != APP_SECRET_KEY:
        raise HTTPException(status_code=401, detail="Unauthorized")


# -----------------------------
# App
# -----------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Release pooled connections if a data source was ever created
    if get_data_source.cache_info().currsize:
        get_data_source().dispose()
        get_data_source.cache_clear()
        log.info("🔌 CPR connection pool disposed")


app = FastAPI(title="CPR Forecast API", version="1.0", lifespan=lifespan)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Add unique request ID to each request for tracing and debugging."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request_id_var.set(request_id)
        t0 = time.time()

        log.info(f"[{request_id}] {request.method} {request.url.path}")

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            log.info(f"[{request_id}] Response: {response.status_code} in {time.time() - t0:.2f}s")
            return response
        except Exception as e:
            log.error(f"[{request_id}] Error: {e}")
            raise


app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
)


def _raise_http(e: Exception):
    if isinstance(e, ForecastTypeNotFound):
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, DataSourceError):
        log.error(f"⚠️ Database error: {e}")
        raise HTTPException(status_code=503, detail="Database temporarily unavailable. Please try again later.")
    if isinstance(e, (DateParseError, PayloadParseError)):
        raise HTTPException(status_code=500, detail=f"CPR data integrity error: {e}")
    if isinstance(e, UnsafeQueryError):
        raise HTTPException(status_code=500, detail=f"Query rejected: {e}")
    raise e


@app.get("/forecasts", response_model=List[ForecastType], dependencies=[Depends(require_app_key)])
def get_forecasts(source: CPRDataSource = Depends(get_data_source)):
    try:
        return list_forecast_types(source)
    except (DataSourceError, UnsafeQueryError) as e:
        _raise_http(e)


@app.get(
    "/forecasts/{forecast_name:path}/vintages",
    response_model=List[VintageRecord],
    dependencies=[Depends(require_app_key)],
)
def get_vintages(forecast_name: str, source: CPRDataSource = Depends(get_data_source)):
    try:
        return list_vintages(source, forecast_name)
    except (ForecastTypeNotFound, DataSourceError, DateParseError, UnsafeQueryError) as e:
        _raise_http(e)


@app.get(
    "/forecasts/{forecast_name:path}/data",
    response_model=ForecastDataResponse,
    dependencies=[Depends(require_app_key)],
)
def get_forecast_data(
    forecast_name: str,
    vintage: Optional[str] = Query(default=None, description="Gen plan title; latest when omitted"),
    source: CPRDataSource = Depends(get_data_source),
):
    try:
        result = query_forecast_data(source, forecast_name, vintage)
    except (ForecastTypeNotFound, DataSourceError, DateParseError, PayloadParseError, UnsafeQueryError) as e:
        _raise_http(e)

    df = result.data.astype(object).where(result.data.notna(), None)
    return ForecastDataResponse(
        forecast=result.forecast.name,
        vintage=result.vintage.title if result.vintage else None,
        status=result.status,
        message=result.message,
        columns=[str(c) for c in df.columns],
        rows=df.to_dict(orient="records"),
    )


@app.get("/metrics", response_model=MetricsResponse)
def get_metrics():
    """Return application metrics for observability."""
    return metrics.get_stats()
