"""
Application configuration and constants.

Reads connection settings for the Characteristics of Power Resources (CPR)
database from the environment and defines the fixed names used to query it.
"""
import os
import re
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# ===================================================================
# Environment Variables
# ===================================================================

# Full SQLAlchemy URL (overrides the ODBC settings below when set)
CPR_DB_URL = os.getenv("CPR_DB_URL")

# ODBC connection settings
CPR_SERVER = os.getenv("CPR_SERVER", "sqlgpprod14db1.main.tva.gov")
CPR_DATABASE = os.getenv("CPR_DATABASE", "CPR")
CPR_DRIVER = os.getenv("CPR_DRIVER", "SQL Server")

# SQL Server authentication; leave either unset to use a trusted connection
CPR_USERNAME = os.getenv("CPR_USERNAME")
CPR_PASSWORD = os.getenv("CPR_PASSWORD")

# Qualifier prepended to every table name ("" for unqualified names)
CPR_SCHEMA = os.getenv("CPR_SCHEMA", "CPR.dbo")

# API Security (optional; when set, X-App-Key must match)
APP_SECRET_KEY = os.getenv("APP_SECRET_KEY")

# ===================================================================
# Database Configuration
# ===================================================================

SQL_TIMEOUT_SECONDS = int(os.getenv("SQL_TIMEOUT_SECONDS", "30"))
DATABASE_POOL_SIZE = int(os.getenv("DATABASE_POOL_SIZE", "5"))
DATABASE_MAX_OVERFLOW = int(os.getenv("DATABASE_MAX_OVERFLOW", "2"))

FORECASTS_TABLE = "Forecasts"
TEMPLATES_TABLE = "Templates"
CURRENT_TABLE = "ForecastData"
ARCHIVE_TABLE = "ForecastArchive"

# Tables the query guard lets through (everything is read-only)
ALLOWED_TABLES = {
    FORECASTS_TABLE.lower(),
    TEMPLATES_TABLE.lower(),
    CURRENT_TABLE.lower(),
    ARCHIVE_TABLE.lower(),
}

# Only the baseline variant is ever read; sensitivities are excluded
BASE_CASE = "Base"

# ===================================================================
# Payload Configuration
# ===================================================================

# Column holding the XML payload (same name in both data tables)
PAYLOAD_COLUMN = "ForecastData"

# Record nodes live at import/dataset/r; value nodes are c[@l=<field>]
PAYLOAD_ROOT_TAG = "import"
RECORD_PATH = "dataset/r"
VALUE_TAG = "c"
LABEL_ATTRIBUTE = "l"

# Template strings: fields separated by "::|", ":" marks a type annotation
TEMPLATE_DELIMITER = "::|"
TEMPLATE_MARKER = ":"

# SQL Server renders UploadDate like "May  1 2018 10:30AM"
UPLOAD_DATE_FORMATS = (
    "%b %d %Y %I:%M %p",
    "%b %d %Y %I:%M%p",
)
WHITESPACE_PATTERN = re.compile(r"\s+")
