"""
Field extraction from CPR XML payloads.

A payload looks like:

    <import>
      <dataset>
        <r><c l="Year">2020</c><c l="Price">2.61</c></r>
        ...
      </dataset>
    </import>

Every <r> becomes one result row; for each template field the first <c>
whose l attribute equals the field label supplies the value.
"""
import logging
import xml.etree.ElementTree as ET
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from config import BASE_CASE, LABEL_ATTRIBUTE, PAYLOAD_COLUMN, PAYLOAD_ROOT_TAG, RECORD_PATH, VALUE_TAG
from core.errors import PayloadParseError
from core.sql_builder import payload_query
from models import FieldSpec, ForecastType, VintageRecord

log = logging.getLogger("cpr")


def parse_records(payload: Any) -> List[ET.Element]:
    """
    Return the record nodes (import/dataset/r) of one payload.

    A missing payload or a document with a different root has no records.

    Raises:
        PayloadParseError: If the payload is not well-formed XML
    """
    if payload is None:
        return []

    try:
        root = ET.fromstring(payload)
    except ET.ParseError as e:
        raise PayloadParseError(f"Malformed forecast payload: {e}") from e

    if root.tag != PAYLOAD_ROOT_TAG:
        return []
    return root.findall(RECORD_PATH)


def record_values(record: ET.Element) -> Dict[str, str]:
    """Map each label to the full text of its first value node."""
    values: Dict[str, str] = {}
    for node in record.findall(VALUE_TAG):
        label = node.get(LABEL_ATTRIBUTE)
        if label is not None and label not in values:
            values[label] = "".join(node.itertext())
    return values


def extract_rows(payloads: Iterable[Any], fields: FieldSpec) -> pd.DataFrame:
    """
    Build the result table for a set of payloads.

    Args:
        payloads: Raw XML documents (str or bytes)
        fields: Parsed template fields

    Returns:
        DataFrame with one column per distinct column name (template order)
        and one row per record; labels absent from a record give None.
        An empty FieldSpec gives an empty DataFrame.

    Examples:
        >>> xml = '<import><dataset><r><c l="Year">2020</c></r></dataset></import>'
        >>> fields = (TemplateField(source_name="Year", column_name="Year"),)
        >>> extract_rows([xml], fields).to_dict("records")
        [{'Year': '2020'}]
    """
    if not fields:
        log.warning("⚠️ Template has no fields; returning an empty table")
        return pd.DataFrame()

    # Repeated column names collapse into one column; the later field wins
    columns = list(dict.fromkeys(field.column_name for field in fields))

    rows: List[Dict[str, Optional[str]]] = []
    for payload in payloads:
        for record in parse_records(payload):
            values = record_values(record)
            row: Dict[str, Optional[str]] = {}
            for field in fields:
                row[field.column_name] = values.get(field.source_name)
            rows.append(row)

    return pd.DataFrame(rows, columns=columns, dtype=object)


def extract_fields(conn, forecast: ForecastType, vintage: VintageRecord, fields: FieldSpec) -> pd.DataFrame:
    """Fetch the resolved vintage's payload and extract the template fields."""
    params = {
        "metadata_case": BASE_CASE,
        "forecast_id": forecast.id,
        "title": vintage.title,
        "record_id": vintage.source.record_id,
    }
    rows = conn.execute(payload_query(vintage.source.table, conn.schema_prefix), params)
    df = extract_rows((row[PAYLOAD_COLUMN] for row in rows), fields)
    log.info(
        f"🧾 Extracted {len(df)} records x {len(df.columns)} fields from "
        f"{vintage.source.table.value} for {forecast.name!r} / {vintage.title!r}"
    )
    return df
