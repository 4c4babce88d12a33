"""
Error taxonomy for CPR lookups.

ForecastTypeNotFound and DataSourceError propagate to the caller.
VintageNotFound is raised by the vintage resolver but turned into a tagged
result by query_forecast_data, so batch callers can keep going.
"""


class CPRError(Exception):
    """Base class for all CPR lookup failures."""


class ForecastTypeNotFound(CPRError):
    """No forecast type in the catalog has the requested name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No forecast type named {name!r}. Run list_forecast_types to view available forecasts.")


class VintageNotFound(CPRError):
    """No deduplicated vintage of the forecast type carries the requested title."""

    def __init__(self, forecast_name: str, title):
        self.forecast_name = forecast_name
        self.title = title
        if title is None:
            message = f"Forecast {forecast_name!r} has no vintages."
        else:
            message = (
                f"Could not match vintage {title!r} for forecast {forecast_name!r}. "
                "Run list_vintages to view available forecast vintages."
            )
        super().__init__(message)


class DateParseError(CPRError):
    """An UploadDate value did not match the expected format."""

    def __init__(self, value, title=None):
        self.value = value
        self.title = title
        super().__init__(f"Unparseable upload date {value!r} (vintage {title!r})")


class DataSourceError(CPRError):
    """Connection or query failure at the database boundary."""


class UnsafeQueryError(CPRError):
    """A statement failed the read-only query guard."""


class PayloadParseError(CPRError):
    """A vintage's XML payload is not well-formed."""
